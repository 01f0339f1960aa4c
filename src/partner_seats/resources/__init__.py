"""Backend API resources."""
from .base import AsyncBaseResource
from .payment_methods import PaymentMethodsResource
from .pricing import PricingResource
from .processor import ProcessorResource
from .seats import SeatsResource

__all__ = [
    "AsyncBaseResource",
    "PricingResource",
    "PaymentMethodsResource",
    "ProcessorResource",
    "SeatsResource",
]
