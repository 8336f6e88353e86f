"""
Stripe Payment Gateway for the Dojo billing platform
Read-only PaymentIntent lookups for checkout confirmation and reconciliation.
"""

from __future__ import annotations

import logging
from typing import Any, ClassVar

import stripe

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


# ===============================================================================
# STRIPE GATEWAY IMPLEMENTATION
# ===============================================================================


class StripeGateway(BasePaymentGateway):
    """
    💳 Stripe payment gateway implementation

    Retrieves PaymentIntents with the latest charge expanded so receipt URL,
    payment method type and card last4 come back in one call.
    """

    STATUS_MAP: ClassVar[dict[str, str]] = {
        "succeeded": INTERNAL_SUCCEEDED,
        "requires_payment_method": INTERNAL_FAILED,
        "canceled": INTERNAL_FAILED,
        "cancelled": INTERNAL_FAILED,
    }
    REFERENCE_PREFIXES: ClassVar[tuple[str, ...]] = ("pi_",)

    MAX_NETWORK_RETRIES = 2

    def __init__(self) -> None:
        super().__init__()
        self._api_key = config.get_stripe_secret_key()
        if not self._api_key:
            raise ConfigurationError("Stripe secret key not configured")
        self._timeout = config.get_stripe_request_timeout()
        stripe.max_network_retries = self.MAX_NETWORK_RETRIES
        # SDK default is 80s per request
        stripe.default_http_client = stripe.RequestsClient(timeout=self._timeout)

    @property
    def gateway_name(self) -> str:
        return "stripe"

    def retrieve_payment(self, reference: str) -> GatewayPaymentInfo:
        """
        Retrieve PaymentIntent status

        Args:
            reference: Stripe PaymentIntent ID (pi_...)

        Returns:
            GatewayPaymentInfo with raw status and receipt metadata
        """
        try:
            intent = stripe.PaymentIntent.retrieve(
                reference,
                expand=["latest_charge"],
                api_key=self._api_key,
                stripe_version=config.STRIPE_API_VERSION,
            )
        except stripe.InvalidRequestError as e:
            if getattr(e, "code", None) == "resource_missing":
                self.logger.warning(f"⚠️ Stripe PaymentIntent {reference} not found")
                return GatewayPaymentInfo(reference=reference, status="not_found", found=False)
            raise ExternalGatewayError("stripe", str(e)) from e
        except stripe.StripeError as e:
            self.logger.error(f"🔥 Stripe PaymentIntent retrieval failed for {reference}: {e}")
            raise ExternalGatewayError("stripe", str(e)) from e

        return self._to_payment_info(intent)

    @staticmethod
    def _to_payment_info(intent: Any) -> GatewayPaymentInfo:
        payment_method_types = getattr(intent, "payment_method_types", None) or []
        payment_method = payment_method_types[0] if payment_method_types else None
        receipt_url = None
        card_last4 = None

        # latest_charge is a bare id string unless the expand took effect
        latest_charge = getattr(intent, "latest_charge", None)
        if latest_charge is not None and not isinstance(latest_charge, str):
            receipt_url = getattr(latest_charge, "receipt_url", None) or None
            details = getattr(latest_charge, "payment_method_details", None)
            if details:
                payment_method = getattr(details, "type", None) or payment_method
                card = getattr(details, "card", None)
                if card:
                    card_last4 = getattr(card, "last4", None) or None

        return GatewayPaymentInfo(
            reference=intent.id,
            status=str(getattr(intent, "status", None) or "unknown").lower(),
            receipt_url=receipt_url,
            payment_method=payment_method,
            card_last4=card_last4,
        )


# Register Stripe gateway with factory
PaymentGatewayFactory.register_gateway("stripe", StripeGateway)
