# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""Custom exception hierarchy for Tribunal.

Provides specific exception types for different error categories,
enabling callers to map failures to responses without string matching.
"""

from __future__ import annotations

from typing import Any


class TribunalException(Exception):  # noqa: N818
    """Base exception for all Tribunal errors.

    All Tribunal-specific exceptions should inherit from this class.
    """

    def __init__(self, message: str, details: dict | None = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "error": self.__class__.__name__,
            "message": self.message,
            "details": self.details,
        }


class ValidationException(TribunalException):
    """Exception for validation errors.

    Raised when:
    - Appeal stake is below the required minimum
    - A split percentage or basis-point share is out of range
    - Required fields are missing
    """

    def __init__(self, message: str, field: str | None = None, value: Any = None):
        details = {}
        if field:
            details["field"] = field
        if value is not None:
            details["value"] = str(value)
        super().__init__(message, details)
        self.field = field
        self.value = value


class ConfigException(TribunalException):
    """Exception for configuration errors.

    Raised when:
    - Required environment variables are missing
    - A configured provider name is unknown
    """

    def __init__(self, message: str, missing_vars: list[str] | None = None):
        details = {}
        if missing_vars:
            details["missing_vars"] = missing_vars
        super().__init__(message, details)
        self.missing_vars = missing_vars or []


class NotFoundError(TribunalException):
    """Exception for resource not found errors.

    Raised when:
    - Requested dispute doesn't exist
    - No stake exists for a task/worker pair
    - The caller is not a juror on the dispute
    """

    def __init__(self, resource_type: str, resource_id: str):
        message = f"{resource_type} not found: {resource_id}"
        details = {
            "resource_type": resource_type,
            "resource_id": resource_id,
        }
        super().__init__(message, details)
        self.resource_type = resource_type
        self.resource_id = resource_id


class ConflictError(TribunalException):
    """Exception for conflict errors.

    Raised when:
    - Attempting to create a duplicate resource
    - Optimistic locking fails (a concurrent escalation won)
    - The entity is not in the state the operation requires
    """

    def __init__(self, message: str, existing_id: str | None = None):
        details = {}
        if existing_id:
            details["existing_id"] = existing_id
        super().__init__(message, details)
        self.existing_id = existing_id


class PermissionDeniedError(TribunalException):
    """Raised when an actor may not perform an operation on a dispute."""

    def __init__(self, message: str, actor_id: str | None = None):
        details = {}
        if actor_id:
            details["actor_id"] = actor_id
        super().__init__(message, details)
        self.actor_id = actor_id


class SettlementError(TribunalException):
    """Exception for settlement backend failures.

    Raised when:
    - The funds gateway is unreachable or times out
    - The gateway rejects a lock/release/slash request

    A settlement error never rolls back a recorded dispute decision.
    """

    def __init__(self, message: str, provider: str | None = None, operation: str | None = None):
        details = {}
        if provider:
            details["provider"] = provider
        if operation:
            details["operation"] = operation
        super().__init__(message, details)
        self.provider = provider
        self.operation = operation


class InsufficientJurorsError(TribunalException):
    """Raised when fewer eligible jurors exist than a jury requires."""

    def __init__(self, required: int, available: int):
        message = f"Not enough eligible jurors: need {required}, found {available}"
        super().__init__(message, {"required": required, "available": available})
        self.required = required
        self.available = available
