"""
Payment Gateway Implementations for the Dojo billing platform
Supports multiple payment providers with a unified read-only interface.
"""

from .base import BasePaymentGateway, GatewayPaymentInfo, PaymentGatewayFactory
from .square_gateway import SquareGateway
from .stripe_gateway import StripeGateway

__all__ = ["BasePaymentGateway", "GatewayPaymentInfo", "PaymentGatewayFactory", "SquareGateway", "StripeGateway"]
