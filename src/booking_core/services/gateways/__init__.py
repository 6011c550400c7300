"""Payment gateway variants, selected by configuration."""

from booking_core.config import BookingSettings

from ..ssm_service import SSMService, get_ssm_service
from .base import GatewayError, PaymentGateway
from .mock_gateway import MockGateway
from .stripe_gateway import StripeGateway


def build_gateways(
    settings: BookingSettings,
    ssm: SSMService | None = None,
) -> dict[str, PaymentGateway]:
    """Instantiate every gateway listed in ``settings.enabled_gateways``.

    Args:
        settings: Immutable booking settings
        ssm: SSM service for gateway secrets

    Returns:
        Mapping of gateway name to gateway instance

    Raises:
        ValueError: If a configured gateway name is unknown
    """
    gateways: dict[str, PaymentGateway] = {}
    for name in settings.enabled_gateways:
        if name == StripeGateway.name:
            gateways[name] = StripeGateway(settings, ssm or get_ssm_service())
        elif name == MockGateway.name:
            gateways[name] = MockGateway(settings)
        else:
            raise ValueError(f"Unknown payment gateway in configuration: {name}")
    return gateways


__all__ = [
    "GatewayError",
    "MockGateway",
    "PaymentGateway",
    "StripeGateway",
    "build_gateways",
]
