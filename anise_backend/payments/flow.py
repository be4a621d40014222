"""
Direct-debit mandate setup and one-shot payment operations.

The redirect flow moves NoFlow -> Started -> Completed:

- start_flow creates a GoCardless redirect flow with a fresh session token and
  stores it as users/{uid}/payments/current_flow (replacing any earlier flow)
- confirm_flow completes the flow with the session token; GoCardless returns
  the mandate and customer ids, which are stored under the user

Payments and subscriptions only need a confirmed mandate id.
"""
import logging
import secrets
from typing import Any, Dict, List, Optional

from ..exceptions import NotFoundError, ValidationError
from ..models import (
    CallerIdentity, ConfirmFlowRequest, CreatePaymentRequest, CreateSubscriptionRequest,
    StartFlowRequest, UpdateSubscriptionRequest, parse_request,
)
from ..store.base import SERVER_TIMESTAMP, DocumentStore, join_path
from .client import GoCardlessClient

logger = logging.getLogger(__name__)

FLOW_STARTED = "started"
FLOW_COMPLETED = "completed"

SUBSCRIPTION_STATUSES = (
    "pending_customer_approval", "customer_approval_denied", "active", "finished", "cancelled", "paused",
)


def new_session_token() -> str:
    return secrets.token_urlsafe(24)


def new_idempotency_key() -> str:
    return secrets.token_urlsafe(24)


class PaymentFlowOrchestrator:
    """
    Drives mandate setup and payment creation for a user.

    Args:
        client: GoCardless client
        store: Document store
        success_url: Where GoCardless sends the customer after the hosted form
        logger: Optional logger instance
    """

    def __init__(self, client: GoCardlessClient, store: DocumentStore, success_url: str,
                 logger: Optional[logging.Logger] = None):
        self.client = client
        self.store = store
        self.success_url = success_url
        self.logger = logger or logging.getLogger(__name__)

    @staticmethod
    def _payments_path(uid: str, doc: str) -> str:
        return join_path("users", uid, "payments", doc)

    def _prefilled_customer(self, identity: CallerIdentity, payload: StartFlowRequest) -> Dict[str, str]:
        profile = self.store.get(join_path("users", identity.uid))
        first_name, last_name, email = "", "", payload.email
        if profile:
            first_name = profile.get("firstName") or ""
            last_name = profile.get("lastName") or ""
            email = profile.get("email") or payload.email
        elif payload.name:
            parts = payload.name.strip().split(" ")
            first_name = parts[0]
            last_name = " ".join(parts[1:])
        return {"given_name": first_name, "family_name": last_name, "email": email or ""}

    def start_flow(self, identity: CallerIdentity, body: Any) -> Dict[str, Any]:
        """
        Start a redirect flow.

        Returns:
            {"redirect_url", "redirect_flow_id", "session_token"}
        """
        payload = parse_request(StartFlowRequest, body or {})
        session_token = new_session_token()
        flow = self.client.create_redirect_flow(
            session_token=session_token,
            success_redirect_url=self.success_url,
            prefilled_customer=self._prefilled_customer(identity, payload),
        )
        self.store.set(self._payments_path(identity.uid, "current_flow"), {
            "redirect_flow_id": flow["id"],
            "session_token": session_token,
            "created_at": SERVER_TIMESTAMP,
            "status": FLOW_STARTED,
        })
        self.logger.info(f"Started redirect flow {flow['id']} for user {identity.uid}")
        return {
            "redirect_url": flow.get("redirect_url"),
            "redirect_flow_id": flow["id"],
            "session_token": session_token,
        }

    def confirm_flow(self, identity: CallerIdentity, body: Any) -> Dict[str, Any]:
        """
        Complete a redirect flow and store the resulting mandate.

        Returns:
            {"mandate_id", "customer_id", "redirect_flow_id"}

        Raises:
            ProviderError: If GoCardless rejects the completion
        """
        payload = parse_request(ConfirmFlowRequest, body)
        flow = self.client.complete_redirect_flow(payload.redirect_flow_id, payload.session_token)
        links = flow.get("links") or {}
        mandate_id = links.get("mandate")
        customer_id = links.get("customer")

        batch = self.store.batch()
        batch.set(self._payments_path(identity.uid, "mandate"), {
            "mandate_id": mandate_id,
            "customer_id": customer_id,
            "created_at": SERVER_TIMESTAMP,
            "status": "active",
        })
        batch.set(join_path("users", identity.uid), {
            "gocardless": {"customer_id": customer_id, "mandate_id": mandate_id, "linked_at": SERVER_TIMESTAMP},
        }, merge=True)
        batch.set(self._payments_path(identity.uid, "current_flow"), {
            "redirect_flow_id": payload.redirect_flow_id,
            "mandate_id": mandate_id,
            "status": FLOW_COMPLETED,
            "completed_at": SERVER_TIMESTAMP,
        }, merge=True)
        batch.commit()

        self.logger.info(f"Completed redirect flow {payload.redirect_flow_id} for user {identity.uid}")
        return {"mandate_id": mandate_id, "customer_id": customer_id, "redirect_flow_id": payload.redirect_flow_id}

    def _mandate_for(self, identity: CallerIdentity, mandate_id: Optional[str]) -> str:
        if mandate_id:
            return mandate_id
        profile = self.store.get(join_path("users", identity.uid)) or {}
        mandate_id = (profile.get("gocardless") or {}).get("mandate_id")
        if not mandate_id:
            raise ValidationError("No GoCardless mandate linked to user. Please link your account first.")
        return mandate_id

    def create_payment(self, identity: CallerIdentity, body: Any) -> Dict[str, Any]:
        payload = parse_request(CreatePaymentRequest, body)
        mandate_id = self._mandate_for(identity, payload.mandate_id)
        payment = self.client.create_payment(
            payload.amount, payload.currency, mandate_id, metadata={"source": "anise-payment"},
            idempotency_key=payload.idempotency_key or new_idempotency_key(),
        )
        self.logger.info(f"Created payment {payment['id']} for user {identity.uid}")
        return {
            "payment_id": payment["id"],
            "status": payment.get("status"),
            "amount": payment.get("amount"),
            "currency": payment.get("currency"),
        }

    def create_subscription(self, identity: CallerIdentity, body: Any) -> Dict[str, Any]:
        payload = parse_request(CreateSubscriptionRequest, body)
        mandate_id = self._mandate_for(identity, payload.mandate_id)
        name = payload.name or "anise-subscription"
        subscription = self.client.create_subscription(
            payload.amount, payload.currency, mandate_id, payload.interval_unit, payload.interval,
            metadata={"name": name},
            idempotency_key=payload.idempotency_key or new_idempotency_key(),
        )
        self.store.set(join_path("users", identity.uid, "subscriptions", subscription["id"]), {
            "subscription_id": subscription["id"],
            "amount": subscription.get("amount"),
            "currency": subscription.get("currency"),
            "status": subscription.get("status"),
            "interval_unit": subscription.get("interval_unit"),
            "interval": subscription.get("interval"),
            "name": name,
            "created_at": SERVER_TIMESTAMP,
        })
        self.logger.info(f"Created subscription {subscription['id']} for user {identity.uid}")
        return {
            "subscription_id": subscription["id"],
            "status": subscription.get("status"),
            "amount": subscription.get("amount"),
            "currency": subscription.get("currency"),
            "interval_unit": subscription.get("interval_unit"),
            "interval": subscription.get("interval"),
        }

    def list_subscriptions(self, identity: CallerIdentity) -> List[Dict[str, Any]]:
        docs = self.store.query(join_path("users", identity.uid, "subscriptions"))
        return [doc.to_dict("id") for doc in docs]

    def _owned_subscription(self, identity: CallerIdentity, subscription_id: str) -> str:
        path = join_path("users", identity.uid, "subscriptions", subscription_id)
        if not self.store.exists(path):
            raise NotFoundError(f"Subscription {subscription_id} not found")
        return path

    def cancel_subscription(self, identity: CallerIdentity, subscription_id: str) -> Dict[str, Any]:
        path = self._owned_subscription(identity, subscription_id)
        subscription = self.client.cancel_subscription(subscription_id)
        status = subscription.get("status", "cancelled")
        self.store.update(path, {"status": status, "updated_at": SERVER_TIMESTAMP})
        self.logger.info(f"Cancelled subscription {subscription_id} for user {identity.uid}")
        return {"subscription_id": subscription_id, "status": status}

    def update_subscription_status(self, identity: CallerIdentity, body: Any) -> Dict[str, Any]:
        """Record a subscription status reported by the client (e.g. after a redirect)."""
        payload = parse_request(UpdateSubscriptionRequest, body)
        if payload.status not in SUBSCRIPTION_STATUSES:
            raise ValidationError(
                f"status must be one of {', '.join(SUBSCRIPTION_STATUSES)}",
                [{"field": "status", "error": "unknown subscription status"}],
            )
        path = self._owned_subscription(identity, payload.subscription_id)
        self.store.update(path, {"status": payload.status, "updated_at": SERVER_TIMESTAMP})
        return {"subscription_id": payload.subscription_id, "status": payload.status}

    def get_mandate(self, identity: CallerIdentity) -> Dict[str, Any]:
        mandate = self.store.get(self._payments_path(identity.uid, "mandate"))
        if mandate is None:
            raise NotFoundError("No mandate linked to this user")
        return mandate
