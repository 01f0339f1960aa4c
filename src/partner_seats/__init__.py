"""
Seat purchase client for the partner console.

Prices, pays for and confirms practice-session seats for candidate
batches, collecting a new card through the payment processor when none
is on file.
"""
from .acquisition import CredentialAcquisition
from .cache import CacheBackend, InMemoryCache
from .client import AsyncPartnerClient, RetryConfig
from .config import SeatsSettings, load_settings
from .configuration import PurchaseConfigurationState
from .confirmation import PurchaseConfirmation
from .connectors import ProcessorConnector, StripeConnector
from .credentials import CredentialStore
from .exceptions import (
    APIError,
    AuthenticationError,
    BackendUnavailable,
    CapacityAllocationFailed,
    ChargeDeclined,
    ConfirmationInFlight,
    CredentialRejected,
    CredentialsUnavailable,
    IdempotencyError,
    IdempotencyKeyConflict,
    IdempotencyOperationInProgress,
    InvalidConfiguration,
    InvalidTransition,
    NoCredentialSelected,
    PricingUnavailable,
    PurchaseCancelled,
    PurchaseInProgress,
    SeatPurchaseError,
    StaleQuote,
    TokenizationInitFailed,
)
from .idempotency import IdempotencyManager, InMemoryIdempotencyStore
from .logging_config import setup_logging
from .models import (
    CollectedPaymentDetails,
    DurationMonths,
    ExistingBatch,
    NewBatch,
    PendingPayload,
    PriceQuote,
    PurchaseConfiguration,
    PurchaseResult,
    PurchaseState,
    QuoteKey,
    SessionsPerDay,
    StoredCredential,
    TokenizationSession,
)
from .orchestrator import PurchaseAttempt, PurchaseOrchestrator
from .quotes import PricingEngine
from .session import PartnerSession

__version__ = "0.1.0"

__all__ = [
    "__version__",
    # Entry points
    "PartnerSession",
    "PurchaseOrchestrator",
    "PurchaseAttempt",
    "AsyncPartnerClient",
    "RetryConfig",
    "SeatsSettings",
    "load_settings",
    "setup_logging",
    # Components
    "PricingEngine",
    "CredentialStore",
    "PurchaseConfigurationState",
    "CredentialAcquisition",
    "PurchaseConfirmation",
    "IdempotencyManager",
    "InMemoryIdempotencyStore",
    "CacheBackend",
    "InMemoryCache",
    "ProcessorConnector",
    "StripeConnector",
    # Models
    "SessionsPerDay",
    "DurationMonths",
    "QuoteKey",
    "PriceQuote",
    "StoredCredential",
    "TokenizationSession",
    "CollectedPaymentDetails",
    "NewBatch",
    "ExistingBatch",
    "PurchaseConfiguration",
    "PendingPayload",
    "PurchaseResult",
    "PurchaseState",
    # Errors
    "SeatPurchaseError",
    "APIError",
    "AuthenticationError",
    "InvalidConfiguration",
    "PricingUnavailable",
    "StaleQuote",
    "NoCredentialSelected",
    "TokenizationInitFailed",
    "CredentialRejected",
    "CredentialsUnavailable",
    "ChargeDeclined",
    "CapacityAllocationFailed",
    "BackendUnavailable",
    "PurchaseInProgress",
    "InvalidTransition",
    "ConfirmationInFlight",
    "PurchaseCancelled",
    "IdempotencyError",
    "IdempotencyKeyConflict",
    "IdempotencyOperationInProgress",
]
