"""HTTP client for the external payment gateway (charges and payouts)."""

import logging
from decimal import Decimal
from typing import Any, Dict, Optional

import requests
from django.conf import settings

from services.exceptions import UpstreamServiceError

logger = logging.getLogger(__name__)


class PaymentGatewayClient:
    """
    Thin wrapper around the gateway's REST API.

    Every request carries our transaction ``reference`` so the gateway's
    webhook can be matched back to the pending Transaction.
    """

    def __init__(self, base_url: str, api_key: str = "", timeout: float = 10):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout

    def _post(self, path: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        url = f"{self.base_url}{path}"
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"

        try:
            response = requests.post(url, json=payload, headers=headers, timeout=self.timeout)
        except requests.RequestException as e:
            logger.warning("Payment gateway unreachable at %s: %s", url, e)
            raise UpstreamServiceError("Payment gateway is unreachable") from e

        if response.status_code >= 400:
            logger.warning("Payment gateway rejected %s: %s %s", path, response.status_code, response.text[:200])
            raise UpstreamServiceError(f"Payment gateway rejected the request ({response.status_code})")

        try:
            return response.json()
        except ValueError:
            return {}

    def initiate_charge(self, reference: str, amount: Decimal, phone_number: str = "", method: str = "") -> Dict[str, Any]:
        """Ask the gateway to collect ``amount`` from the payer."""
        return self._post("/payments/charge", {
            "reference": reference,
            "amount": str(amount),
            "phone_number": phone_number,
            "method": method,
        })

    def initiate_payout(self, reference: str, amount: Decimal, phone_number: str = "", account: Optional[str] = None) -> Dict[str, Any]:
        """Ask the gateway to pay ``amount`` out to the driver."""
        return self._post("/payments/payout", {
            "reference": reference,
            "amount": str(amount),
            "phone_number": phone_number,
            "account": account,
        })


def get_payment_gateway() -> PaymentGatewayClient:
    return PaymentGatewayClient(
        base_url=getattr(settings, "PAYMENT_GATEWAY_BASE_URL", "http://localhost:9000"),
        api_key=getattr(settings, "PAYMENT_GATEWAY_API_KEY", ""),
        timeout=getattr(settings, "PAYMENT_GATEWAY_TIMEOUT_SECONDS", 10),
    )
