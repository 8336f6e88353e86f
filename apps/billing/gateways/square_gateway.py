"""
Square Payment Gateway for the Dojo billing platform
Read-only lookups against the Square Payments REST API.
"""

from __future__ import annotations

import logging
from typing import Any, ClassVar

import requests

from apps.billing import config
from apps.common.types import ConfigurationError, ExternalGatewayError

from .base import (
    INTERNAL_FAILED,
    INTERNAL_SUCCEEDED,
    BasePaymentGateway,
    GatewayPaymentInfo,
    PaymentGatewayFactory,
)

logger = logging.getLogger(__name__)

HTTP_NOT_FOUND = 404


class SquareGateway(BasePaymentGateway):
    """
    🟦 Square payment gateway implementation

    Square payment ids carry no recognizable prefix, so reconciliation routes
    unprefixed references here whenever Square credentials are present.
    """

    STATUS_MAP: ClassVar[dict[str, str]] = {
        "approved": INTERNAL_SUCCEEDED,
        "completed": INTERNAL_SUCCEEDED,
        "captured": INTERNAL_SUCCEEDED,
        "failed": INTERNAL_FAILED,
        "canceled": INTERNAL_FAILED,
        "cancelled": INTERNAL_FAILED,
        "declined": INTERNAL_FAILED,
    }

    def __init__(self, session: requests.Session | None = None) -> None:
        super().__init__()
        self._access_token = config.get_square_access_token()
        if not self._access_token:
            raise ConfigurationError("Square access token not configured")
        self._base_url = config.get_square_base_url()
        self._timeout = config.get_square_request_timeout()
        self._session = session or requests.Session()

    @property
    def gateway_name(self) -> str:
        return "square"

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self._access_token}",
            "Square-Version": config.SQUARE_API_VERSION,
            "Content-Type": "application/json",
        }

    def retrieve_payment(self, reference: str) -> GatewayPaymentInfo:
        """
        Retrieve a Square payment

        Args:
            reference: Square payment id

        Returns:
            GatewayPaymentInfo; found=False on 404 or an empty payload
        """
        url = f"{self._base_url}/v2/payments/{reference}"
        try:
            response = self._session.get(url, headers=self._headers(), timeout=self._timeout)
        except requests.Timeout as e:
            raise ExternalGatewayError("square", f"Timed out after {self._timeout}s retrieving {reference}") from e
        except requests.RequestException as e:
            raise ExternalGatewayError("square", f"Request failed for {reference}: {e}") from e

        if response.status_code == HTTP_NOT_FOUND:
            self.logger.warning(f"⚠️ Square payment {reference} not found (404)")
            return GatewayPaymentInfo(reference=reference, status="not_found", found=False)

        if not response.ok:
            raise ExternalGatewayError(
                "square", f"API responded with {response.status_code}: {response.text or 'No body'}"
            )

        try:
            payload: dict[str, Any] = response.json()
        except ValueError as e:
            raise ExternalGatewayError("square", f"Invalid JSON for {reference}") from e

        payment = payload.get("payment")
        if not payment:
            if payload.get("errors"):
                self.logger.warning(f"⚠️ Square API returned errors for {reference}: {payload['errors']}")
            return GatewayPaymentInfo(reference=reference, status="not_found", found=False)

        source_type = payment.get("source_type")
        card = (payment.get("card_details") or {}).get("card") or {}
        return GatewayPaymentInfo(
            reference=payment.get("id") or reference,
            status=str(payment.get("status") or "pending").lower(),
            receipt_url=payment.get("receipt_url") or None,
            payment_method=source_type.lower() if isinstance(source_type, str) else None,
            card_last4=card.get("last_4") or None,
        )


# Register Square gateway with factory
PaymentGatewayFactory.register_gateway("square", SquareGateway)
