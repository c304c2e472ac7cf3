"""
Memoization Exceptions

Domain-specific exceptions for memoization and backend operations.
Producer failures are never wrapped: only backend and bookkeeping
failures are expressed through this hierarchy.
"""

from typing import Optional, Any, Dict


class LazyCacheException(Exception):
    """Base exception for lazycache errors.

    Carries a stable ``error_code`` and a ``details`` mapping for logging.
    """

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.error_code = error_code
        self.details = details or {}
        super().__init__(self.message)


class BackendError(LazyCacheException):
    """Raised when a shared cache or session capability fails."""

    def __init__(
        self,
        message: str = "Memoization backend failed",
        backend: Optional[str] = None,
        operation: Optional[str] = None,
        key: Optional[str] = None,
        original_error: Optional[Exception] = None,
    ):
        details: Dict[str, Any] = {}
        if backend:
            details["backend"] = backend
        if operation:
            details["operation"] = operation
        if key:
            details["key"] = key
        if original_error:
            details["original_error"] = str(original_error)
            details["original_error_type"] = type(original_error).__name__

        super().__init__(message=message, error_code="BACKEND_ERROR", details=details)
        self.backend = backend
        self.operation = operation
        self.key = key
        # Preserve exception context for debugging (exception chaining)
        if original_error:
            self.__cause__ = original_error


class BackendUnavailableError(LazyCacheException):
    """Raised when an operation needs a capability that is not configured."""

    def __init__(self, backend: str, operation: str):
        super().__init__(
            message=f"Backend '{backend}' is not configured, cannot {operation}",
            error_code="BACKEND_UNAVAILABLE",
            details={"backend": backend, "operation": operation},
        )
        self.backend = backend


class ReentrantMemoizationError(LazyCacheException):
    """Raised when a producer re-enters memoize() for the key it is computing."""

    def __init__(self, key: str, backend: str):
        super().__init__(
            message=(
                f"Reentrant memoization of '{key}' on backend '{backend}': "
                "the producer requested its own value"
            ),
            error_code="REENTRANT_MEMOIZATION",
            details={"key": key, "backend": backend},
        )
        self.key = key


class RegistryPathError(LazyCacheException):
    """Raised when the registry receives an unusable path."""

    def __init__(self, path: Any):
        super().__init__(
            message=f"Invalid registry path: {path!r}",
            error_code="REGISTRY_PATH_ERROR",
            details={"path": repr(path)},
        )
