"""Tribunal Core - Shared primitives for disputes and staking."""

from .collaborators import (
    InMemoryReputationDirectory,
    InMemoryTaskDirectory,
    RecordingEventPublisher,
    StaticWalletResolver,
)
from .config import CoreSettings, DisputePolicy, StakingPolicy, clear_config_cache, get_config
from .exceptions import (
    ConfigException,
    ConflictError,
    InsufficientJurorsError,
    NotFoundError,
    PermissionDeniedError,
    SettlementError,
    TribunalException,
    ValidationException,
)
from .interfaces import (
    ArtefactRecord,
    EventPublisher,
    JurorCandidate,
    ReputationDirectory,
    SubmissionRecord,
    TaskDirectory,
    TaskRecord,
    WalletResolver,
)
from .logging import AuditLogger, audit_logger, configure_logging, correlated, get_logger

__all__ = [
    # Config
    "CoreSettings",
    "DisputePolicy",
    "StakingPolicy",
    "clear_config_cache",
    "get_config",
    # Exceptions
    "TribunalException",
    "ValidationException",
    "ConfigException",
    "NotFoundError",
    "ConflictError",
    "PermissionDeniedError",
    "SettlementError",
    "InsufficientJurorsError",
    # Interfaces
    "ArtefactRecord",
    "JurorCandidate",
    "SubmissionRecord",
    "TaskRecord",
    "EventPublisher",
    "ReputationDirectory",
    "TaskDirectory",
    "WalletResolver",
    # In-memory collaborators
    "InMemoryReputationDirectory",
    "InMemoryTaskDirectory",
    "RecordingEventPublisher",
    "StaticWalletResolver",
    # Logging
    "AuditLogger",
    "audit_logger",
    "configure_logging",
    "correlated",
    "get_logger",
]
