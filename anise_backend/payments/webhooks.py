"""
GoCardless webhook ingestion.

Each event names a resource; the current state of that resource is fetched
from GoCardless and merged into the top-level payments, subscriptions or
mandates collection. Webhook signatures are not verified.
"""
import logging
from typing import Any, Dict, Optional

from ..store.base import SERVER_TIMESTAMP, DocumentStore, join_path
from ..utils import strip_reserved_fields
from ._rate_limited_log import rate_limited_log
from .client import GoCardlessClient

logger = logging.getLogger(__name__)

PROCESSED_EVENTS_COLLECTION = "webhookEvents"


class WebhookProcessor:
    """
    Applies GoCardless webhook events to the document store.

    Args:
        client: GoCardless client used to fetch current resource state
        store: Document store
        logger: Optional logger instance
    """

    def __init__(self, client: GoCardlessClient, store: DocumentStore,
                 logger: Optional[logging.Logger] = None):
        self.client = client
        self.store = store
        self.logger = logger or logging.getLogger(__name__)
        # resource_type -> (links key, lookup)
        self.resources = {
            "payments": ("payment", client.find_payment),
            "subscriptions": ("subscription", client.find_subscription),
            "mandates": ("mandate", client.find_mandate),
        }

    def handle(self, body: Any) -> Optional[Dict[str, int]]:
        """
        Process a webhook delivery.

        Returns:
            Counts of processed, duplicate and ignored events, or None when the
            payload has no events list

        Raises:
            ProviderError: If a resource lookup fails; the event stays unrecorded
                so a redelivery processes it again
        """
        events = body.get("events") if isinstance(body, dict) else None
        if not isinstance(events, list):
            self.logger.info("Ignoring webhook without an events list")
            return None

        counts = {"processed": 0, "duplicates": 0, "ignored": 0}
        for event in events:
            if not isinstance(event, dict):
                counts["ignored"] += 1
                continue
            event_id = event.get("id")
            marker = join_path(PROCESSED_EVENTS_COLLECTION, event_id) if event_id else None
            if marker and self.store.exists(marker):
                self.logger.debug(f"Skipping redelivered webhook event {event_id}")
                counts["duplicates"] += 1
                continue

            if self._apply(event):
                counts["processed"] += 1
            else:
                counts["ignored"] += 1

            if marker:
                self.store.set(marker, {
                    "resource_type": event.get("resource_type"),
                    "action": event.get("action"),
                    "processed_at": SERVER_TIMESTAMP,
                })
        self.logger.info(f"Webhook delivery handled: {counts}")
        return counts

    def _apply(self, event: Dict[str, Any]) -> bool:
        resource_type = event.get("resource_type")
        if resource_type not in self.resources:
            rate_limited_log(f"Ignoring webhook resource type {resource_type}", "info", self.logger)
            return False
        link_key, lookup = self.resources[resource_type]
        resource_id = (event.get("links") or {}).get(link_key)
        if not resource_id:
            self.logger.warning(f"Webhook event {event.get('id')} for {resource_type} has no {link_key} link")
            return False

        resource = strip_reserved_fields(lookup(resource_id))
        self.store.set(join_path(resource_type, resource_id), resource, merge=True)
        self.logger.info(f"Synced {resource_type} {resource_id} ({event.get('action')})")
        return True
