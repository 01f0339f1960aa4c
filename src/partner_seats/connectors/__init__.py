"""Payment processor connectors."""
from .base import ProcessorConnector
from .stripe import StripeConnector

__all__ = [
    "ProcessorConnector",
    "StripeConnector",
]
