"""
authlife-core
=============
Authentication lifecycle consistency engine: OTP challenges, exactly-once
profile reconciliation and audit anomaly detection.

Usage:
    from authlife_core import OTPManager, ProfileReconciler, AnomalyDetector
"""

__version__ = "0.1.0"

# otp is imported before delivery: delivery depends on otp.models
from .errors import (
    AuthLifecycleError,
    ValidationError,
    RateLimited,
    DeliveryFailed,
    StorageError,
    DuplicateKey,
    TransientStorageError,
)
from .config import (
    OTPConfig,
    ReconcilerConfig,
    DetectorConfig,
    TwilioConfig,
    DatabaseConfig,
    EngineSettings,
)
from .otp import (
    Channel,
    VerificationStatus,
    ChallengeTicket,
    VerificationResult,
    ChallengeStore,
    OTPManager,
)
from .delivery import DeliveryDispatcher, DeliveryError, InMemoryDispatcher, TwilioDispatcher
from .profiles import AccountType, AccountMetadata, ProfileStore, ProfileReconciler, ReconcileResult
from .audit import (
    AuditAction,
    AuditEventStore,
    AuditRecorder,
    AnomalyDetector,
    AnomalyReport,
    DetectionScheduler,
    Severity,
    AnomalyKind,
)
from .rate_limit import StorageRateLimiter, RateLimitSurface
from .retry import RetryExhausted

__all__ = [
    "__version__",
    "AuthLifecycleError",
    "ValidationError",
    "RateLimited",
    "DeliveryFailed",
    "StorageError",
    "DuplicateKey",
    "TransientStorageError",
    "OTPConfig",
    "ReconcilerConfig",
    "DetectorConfig",
    "TwilioConfig",
    "DatabaseConfig",
    "EngineSettings",
    "Channel",
    "VerificationStatus",
    "ChallengeTicket",
    "VerificationResult",
    "ChallengeStore",
    "OTPManager",
    "DeliveryDispatcher",
    "DeliveryError",
    "InMemoryDispatcher",
    "TwilioDispatcher",
    "AccountType",
    "AccountMetadata",
    "ProfileStore",
    "ProfileReconciler",
    "ReconcileResult",
    "AuditAction",
    "AuditEventStore",
    "AuditRecorder",
    "AnomalyDetector",
    "AnomalyReport",
    "DetectionScheduler",
    "Severity",
    "AnomalyKind",
    "StorageRateLimiter",
    "RateLimitSurface",
    "RetryExhausted",
]
