"""
GoCardless direct-debit integration: REST client, mandate flow and webhooks.
"""
from .client import GoCardlessClient
from .flow import PaymentFlowOrchestrator
from .webhooks import WebhookProcessor

__all__ = ['GoCardlessClient', 'PaymentFlowOrchestrator', 'WebhookProcessor']
