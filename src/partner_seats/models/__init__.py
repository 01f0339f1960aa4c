"""Models for the seat purchase client."""
from .base import FrozenSeatsModel, SeatsModel
from .credentials import (
    AcquiredCredential,
    CollectedPaymentDetails,
    ProcessorSetupResult,
    StoredCredential,
    TokenizationMode,
    TokenizationSession,
    parse_payment_methods,
)
from .pricing import DurationMonths, PriceQuote, QuoteKey, SessionsPerDay
from .purchase import (
    EXTEND_MIN_SEATS,
    NEW_BATCH_MIN_SEATS,
    BatchTarget,
    ExistingBatch,
    NewBatch,
    PendingPayload,
    PurchaseConfiguration,
    PurchaseResult,
    PurchaseState,
    StateTransition,
    default_minimum_seats,
)

__all__ = [
    "SeatsModel",
    "FrozenSeatsModel",
    # Pricing
    "SessionsPerDay",
    "DurationMonths",
    "QuoteKey",
    "PriceQuote",
    # Credentials
    "AcquiredCredential",
    "StoredCredential",
    "TokenizationMode",
    "TokenizationSession",
    "CollectedPaymentDetails",
    "ProcessorSetupResult",
    "parse_payment_methods",
    # Purchase
    "NEW_BATCH_MIN_SEATS",
    "EXTEND_MIN_SEATS",
    "NewBatch",
    "ExistingBatch",
    "BatchTarget",
    "default_minimum_seats",
    "PurchaseConfiguration",
    "PendingPayload",
    "PurchaseResult",
    "PurchaseState",
    "StateTransition",
]
