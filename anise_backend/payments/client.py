"""
GoCardless REST client.

A thin wrapper over the GoCardless Pro API. Requests are attempted once by
default; failures and non-2xx responses become ProviderError.
"""
import logging
from typing import Any, Dict, Optional

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from ..exceptions import ConfigurationError, ProviderError
from ..utils import require_secure_url, sanitize_for_log

logger = logging.getLogger(__name__)

API_VERSION = "2015-07-06"

BASE_URLS = {
    "sandbox": "https://api-sandbox.gocardless.com",
    "live": "https://api.gocardless.com",
}


class GoCardlessClient:
    """
    Client for the GoCardless redirect flow, payment, subscription and mandate resources.

    Args:
        access_token: GoCardless access token
        environment: "sandbox" or "live"
        timeout: Request timeout in seconds
        retry_count: Retries for idempotent GETs on 5xx and connection errors
        base_url: Override of the API root (must be https unless localhost)
        session: Pre-configured requests session
        logger: Optional logger instance
    """

    def __init__(
        self,
        access_token: Optional[str],
        environment: str = "sandbox",
        timeout: int = 30,
        retry_count: int = 0,
        base_url: Optional[str] = None,
        session: Optional[requests.Session] = None,
        logger: Optional[logging.Logger] = None,
    ):
        if environment not in BASE_URLS:
            raise ConfigurationError(f"GoCardless environment must be one of {', '.join(BASE_URLS)}")
        self.access_token = access_token
        self.environment = environment
        self.base_url = require_secure_url("GoCardless base_url", (base_url or BASE_URLS[environment]).rstrip("/"))
        self.timeout = timeout
        self.logger = logger or logging.getLogger(__name__)

        self.session = session or requests.Session()
        if session is None:
            retries = Retry(
                total=retry_count,
                backoff_factor=0.5,
                status_forcelist=[500, 502, 503, 504],
                allowed_methods=["GET"],
                raise_on_status=False,
            )
            self.session.mount("https://", HTTPAdapter(max_retries=retries))
            self.session.mount("http://", HTTPAdapter(max_retries=retries))

    def _headers(self, idempotency_key: Optional[str] = None) -> Dict[str, str]:
        if not self.access_token:
            raise ConfigurationError("GOCARDLESS_ACCESS_TOKEN is not set")
        headers = {
            "Authorization": f"Bearer {self.access_token}",
            "Content-Type": "application/json",
            "Accept": "application/json",
            "GoCardless-Version": API_VERSION,
        }
        if idempotency_key:
            headers["Idempotency-Key"] = idempotency_key
        return headers

    def _request(self, method: str, path: str, body: Optional[Dict[str, Any]] = None,
                 idempotency_key: Optional[str] = None) -> Dict[str, Any]:
        url = f"{self.base_url}{path}"
        self.logger.debug(f"GoCardless {method} {path}: {sanitize_for_log(body or {})}")
        try:
            response = self.session.request(
                method, url, json=body, headers=self._headers(idempotency_key), timeout=self.timeout,
            )
        except requests.RequestException as e:
            self.logger.error(f"GoCardless request {method} {path} failed: {e}")
            raise ProviderError(f"GoCardless request failed: {e}")

        try:
            data = response.json()
        except ValueError:
            data = {}

        if not response.ok:
            error = (data.get("error") or {}) if isinstance(data, dict) else {}
            message = error.get("message") or response.reason or "request rejected"
            self.logger.warning(f"GoCardless {method} {path} returned {response.status_code}: {message}")
            raise ProviderError(
                f"GoCardless API error: {message}",
                status_code=response.status_code,
                error_type=error.get("type"),
            )
        return data

    @staticmethod
    def _unwrap(data: Dict[str, Any], key: str) -> Dict[str, Any]:
        if key not in data:
            raise ProviderError(f"GoCardless response is missing '{key}'")
        return data[key]

    # -- redirect flows --------------------------------------------------------

    def create_redirect_flow(
        self,
        session_token: str,
        success_redirect_url: str,
        description: str = "Direct Debit Setup",
        prefilled_customer: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        body = {
            "redirect_flows": {
                "description": description,
                "session_token": session_token,
                "success_redirect_url": success_redirect_url,
                "prefilled_customer": prefilled_customer or {},
            }
        }
        return self._unwrap(self._request("POST", "/redirect_flows", body), "redirect_flows")

    def complete_redirect_flow(self, redirect_flow_id: str, session_token: str) -> Dict[str, Any]:
        """
        Complete a redirect flow once the customer has filled in the hosted form.

        Raises:
            ProviderError: If GoCardless rejects the completion (already completed,
                expired, or session token mismatch)
        """
        data = self._request(
            "POST", f"/redirect_flows/{redirect_flow_id}/actions/complete",
            {"data": {"session_token": session_token}},
        )
        return self._unwrap(data, "redirect_flows")

    # -- payments and subscriptions --------------------------------------------

    def create_payment(self, amount: int, currency: str, mandate_id: str,
                       metadata: Optional[Dict[str, str]] = None,
                       idempotency_key: Optional[str] = None) -> Dict[str, Any]:
        body = {
            "payments": {
                "amount": int(amount),
                "currency": currency.upper(),
                "links": {"mandate": mandate_id},
                "metadata": metadata or {},
            }
        }
        return self._unwrap(self._request("POST", "/payments", body, idempotency_key), "payments")

    def create_subscription(self, amount: int, currency: str, mandate_id: str, interval_unit: str,
                            interval: int = 1, metadata: Optional[Dict[str, str]] = None,
                            idempotency_key: Optional[str] = None) -> Dict[str, Any]:
        body = {
            "subscriptions": {
                "amount": int(amount),
                "currency": currency.upper(),
                "interval_unit": interval_unit,
                "interval": int(interval),
                "links": {"mandate": mandate_id},
                "metadata": metadata or {},
            }
        }
        return self._unwrap(self._request("POST", "/subscriptions", body, idempotency_key), "subscriptions")

    def cancel_subscription(self, subscription_id: str) -> Dict[str, Any]:
        data = self._request("POST", f"/subscriptions/{subscription_id}/actions/cancel", {"data": {}})
        return self._unwrap(data, "subscriptions")

    # -- lookups ---------------------------------------------------------------

    def find_payment(self, payment_id: str) -> Dict[str, Any]:
        return self._unwrap(self._request("GET", f"/payments/{payment_id}"), "payments")

    def find_subscription(self, subscription_id: str) -> Dict[str, Any]:
        return self._unwrap(self._request("GET", f"/subscriptions/{subscription_id}"), "subscriptions")

    def find_mandate(self, mandate_id: str) -> Dict[str, Any]:
        return self._unwrap(self._request("GET", f"/mandates/{mandate_id}"), "mandates")
