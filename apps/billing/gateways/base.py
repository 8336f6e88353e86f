"""
Base Payment Gateway for the Dojo billing platform
Abstract read-only interface used by checkout confirmation and reconciliation.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import ClassVar

from apps.billing import config
from apps.common.types import ConfigurationError

logger = logging.getLogger(__name__)


# ===============================================================================
# TYPE DEFINITIONS
# ===============================================================================

INTERNAL_SUCCEEDED = "succeeded"
INTERNAL_FAILED = "failed"
INTERNAL_PENDING = "pending"


@dataclass(frozen=True)
class GatewayPaymentInfo:
    """What a gateway reports about one payment/intent"""

    reference: str
    status: str  # raw gateway vocabulary, lower-cased
    receipt_url: str | None = None
    payment_method: str | None = None
    card_last4: str | None = None
    found: bool = True


# ===============================================================================
# ABSTRACT BASE GATEWAY
# ===============================================================================


class BasePaymentGateway(ABC):
    """
    🏛️ Abstract base class for all payment gateways

    Each gateway declares, as data:
    - STATUS_MAP: raw gateway status -> internal succeeded/failed (anything else stays pending)
    - REFERENCE_PREFIXES: reference shapes that unambiguously belong to this gateway
    """

    STATUS_MAP: ClassVar[dict[str, str]] = {}
    REFERENCE_PREFIXES: ClassVar[tuple[str, ...]] = ()

    def __init__(self) -> None:
        self.logger = logging.getLogger(f"apps.billing.gateways.{self.__class__.__name__.lower()}")

    @property
    @abstractmethod
    def gateway_name(self) -> str:
        """Gateway identifier (e.g., 'stripe', 'square')"""

    @abstractmethod
    def retrieve_payment(self, reference: str) -> GatewayPaymentInfo:
        """
        Read-only lookup of a payment/intent at the gateway

        Args:
            reference: Gateway payment reference stored on Payment.gateway_reference

        Returns:
            GatewayPaymentInfo; found=False when the gateway has no such payment

        Raises:
            ExternalGatewayError: Network or API failure (retry next run)
        """

    @classmethod
    def is_configured(cls) -> bool:
        """True when this gateway's credentials are present."""
        return bool(config.get_gateway_credentials().get(cls.name_for_credentials(), ""))

    @classmethod
    def name_for_credentials(cls) -> str:
        return cls.__name__.removesuffix("Gateway").lower()

    @classmethod
    def owns_reference(cls, reference: str) -> bool:
        return any(reference.startswith(prefix) for prefix in cls.REFERENCE_PREFIXES)

    def map_status(self, raw_status: str | None) -> str:
        """Map raw gateway status onto the internal three-state model."""
        if not raw_status:
            return INTERNAL_PENDING
        return self.STATUS_MAP.get(raw_status.lower(), INTERNAL_PENDING)

    def validate_configuration(self) -> bool:
        """
        Validate gateway configuration (API keys, etc.)
        Override in subclasses for specific validation.

        Returns:
            True if configuration is valid
        """
        return self.is_configured()


# ===============================================================================
# GATEWAY FACTORY
# ===============================================================================


class PaymentGatewayFactory:
    """
    🏭 Factory for creating payment gateway instances

    Also answers "which gateway owns this reference?" for reconciliation.
    """

    _gateways: ClassVar[dict[str, type[BasePaymentGateway]]] = {}

    # Fallback order when a reference has no recognizable shape
    PREFERENCE_ORDER: ClassVar[tuple[str, ...]] = ("square", "stripe")

    @classmethod
    def register_gateway(cls, gateway_name: str, gateway_class: type[BasePaymentGateway]) -> None:
        """Register a payment gateway class"""
        cls._gateways[gateway_name] = gateway_class

    @classmethod
    def create_gateway(cls, gateway_name: str) -> BasePaymentGateway:
        """
        Create payment gateway instance

        Args:
            gateway_name: Gateway identifier ('stripe', 'square')

        Returns:
            Configured gateway instance

        Raises:
            ConfigurationError: If gateway not registered or its credentials are missing
        """
        if gateway_name not in cls._gateways:
            raise ConfigurationError(f"Payment gateway '{gateway_name}' not registered")

        gateway_class = cls._gateways[gateway_name]
        if not gateway_class.is_configured():
            raise ConfigurationError(f"Payment gateway '{gateway_name}' credentials missing")

        gateway = gateway_class()
        logger.debug(f"✅ Created {gateway_name} payment gateway")
        return gateway

    @classmethod
    def is_configured(cls, gateway_name: str) -> bool:
        gateway_class = cls._gateways.get(gateway_name)
        return bool(gateway_class and gateway_class.is_configured())

    @classmethod
    def list_available_gateways(cls) -> list[str]:
        """List all registered gateway names"""
        return list(cls._gateways.keys())

    @classmethod
    def list_configured_gateways(cls) -> list[str]:
        return [name for name in cls.PREFERENCE_ORDER if cls.is_configured(name)]

    @classmethod
    def detect_gateway(cls, reference: str | None) -> str | None:
        """
        Work out which gateway a reference belongs to.

        - A reference with a gateway's own prefix belongs to that gateway
          (even when its credentials are missing - the caller reports that).
        - Placeholders and unrecognized shapes go to the first configured
          gateway in PREFERENCE_ORDER.
        """
        if not reference:
            return None

        for name, gateway_class in cls._gateways.items():
            if gateway_class.owns_reference(reference):
                return name

        configured = cls.list_configured_gateways()
        return configured[0] if configured else None
