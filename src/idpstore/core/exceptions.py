"""
Custom exceptions for idpstore.

Lookups that match nothing return ``None``; these exceptions cover store-level
validation only. Database driver errors are never wrapped and reach the caller
as ``sqlalchemy.exc`` exceptions.
"""

from typing import Any


class IdPStoreException(Exception):
    """
    Base exception for all idpstore errors.

    Carries a machine-readable code and structured details so callers can turn
    it into a user-facing message.
    """

    def __init__(
        self,
        message: str,
        code: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        self.message = message
        self.code = code or self.__class__.__name__
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to dictionary for API response."""
        return {
            "error": {
                "code": self.code,
                "message": self.message,
                "details": self.details,
            }
        }


# =============================================================================
# Validation Errors
# =============================================================================


class ValidationError(IdPStoreException):
    """Input rejected before any statement was issued."""

    def __init__(
        self,
        message: str = "Validation error",
        code: str = "VALIDATION_ERROR",
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message=message, code=code, details=details)


class UnknownColumnError(ValidationError):
    """Field or match key that is not a column of the target table."""

    def __init__(self, table: str, columns: list[str]) -> None:
        super().__init__(
            message=f"Unknown column(s) for table '{table}': {', '.join(columns)}",
            code="UNKNOWN_COLUMN",
            details={"table": table, "columns": columns},
        )


class EmptyMatchError(ValidationError):
    """A match clause with no conditions would touch every row."""

    def __init__(self, table: str) -> None:
        super().__init__(
            message=f"Refusing to modify '{table}' without a match condition",
            code="EMPTY_MATCH",
            details={"table": table},
        )


# =============================================================================
# Not Found Errors
# =============================================================================


class NotFoundError(IdPStoreException):
    """A referenced row does not exist."""

    def __init__(
        self,
        resource: str,
        identifier: Any | None = None,
    ) -> None:
        message = f"{resource} not found"
        if identifier is not None:
            message = f"{resource} with ID '{identifier}' not found"

        super().__init__(
            message=message,
            code="NOT_FOUND",
            details={"resource": resource, "identifier": identifier},
        )


class ServiceProviderNotFoundError(NotFoundError):
    """Owning Service Provider of a mapping or key pair does not exist."""

    def __init__(self, sp_id: Any | None = None) -> None:
        super().__init__(resource="Service Provider", identifier=sp_id)


# =============================================================================
# Schema Errors
# =============================================================================


class SchemaError(IdPStoreException):
    """Problem with the installed schema or its version marker."""


class InvalidSchemaVersionError(SchemaError):
    """Stored schema version cannot be parsed."""

    def __init__(self, version: str) -> None:
        super().__init__(
            message=f"Invalid schema version: {version!r}",
            code="INVALID_SCHEMA_VERSION",
            details={"version": version},
        )
