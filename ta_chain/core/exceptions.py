"""
Custom exception hierarchy for TA Chain.

Provides a structured exception hierarchy for different error categories:
- Indicator errors (resolution, binding, alignment, provider contract)
- Data errors (file loading, malformed records, read-only series)
- Configuration errors (invalid, missing, provider lifecycle)
"""

from __future__ import annotations

from typing import Any


class TAChainError(Exception):
    """Base exception for all TA Chain errors.

    All custom exceptions in the package inherit from this class.
    Provides structured error information including error code, message,
    and additional context.
    """

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Initialize the exception.

        Args:
            message: Human-readable error message.
            error_code: Optional error code for programmatic handling.
            details: Optional dictionary with additional error context.
        """
        super().__init__(message)
        self.message = message
        self.error_code = error_code or self.__class__.__name__
        self.details = details or {}

    def __str__(self) -> str:
        """Return formatted error string."""
        if self.details:
            return f"[{self.error_code}] {self.message} - Details: {self.details}"
        return f"[{self.error_code}] {self.message}"

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to dictionary for logging/serialization."""
        return {
            "error_type": self.__class__.__name__,
            "error_code": self.error_code,
            "message": self.message,
            "details": self.details,
        }


# =============================================================================
# Indicator Errors
# =============================================================================


class IndicatorError(TAChainError):
    """Base exception for indicator construction errors.

    Every indicator error is fatal to the construction in progress; no
    partially bound indicator is ever returned.
    """

    def __init__(
        self,
        message: str,
        computation: str | None = None,
        **kwargs: Any,
    ) -> None:
        details = kwargs.pop("details", {})
        if computation:
            details["computation"] = computation
        super().__init__(message, details=details, **kwargs)
        self.computation = computation


class UnknownComputationError(IndicatorError):
    """Raised when a computation name cannot be resolved by the provider."""

    pass


class ArityMismatchError(IndicatorError):
    """Raised when the number of operands differs from the declared arity."""

    def __init__(
        self,
        message: str,
        expected: int | None = None,
        actual: int | None = None,
        **kwargs: Any,
    ) -> None:
        details = kwargs.pop("details", {})
        if expected is not None:
            details["expected"] = expected
        if actual is not None:
            details["actual"] = actual
        super().__init__(message, details=details, **kwargs)
        self.expected = expected
        self.actual = actual


class UnknownOptionError(IndicatorError):
    """Raised when an option name is absent from the computation schema."""

    def __init__(
        self,
        message: str,
        option_name: str | None = None,
        **kwargs: Any,
    ) -> None:
        details = kwargs.pop("details", {})
        if option_name:
            details["option_name"] = option_name
        super().__init__(message, details=details, **kwargs)
        self.option_name = option_name


class OptionTypeMismatchError(IndicatorError):
    """Raised when an option value cannot supply the declared option kind.

    Examples:
        - Integer value bound to a real-valued slot
        - Real value bound to an integer-valued slot
    """

    def __init__(
        self,
        message: str,
        option_name: str | None = None,
        expected: str | None = None,
        actual: str | None = None,
        **kwargs: Any,
    ) -> None:
        details = kwargs.pop("details", {})
        if option_name:
            details["option_name"] = option_name
        if expected:
            details["expected"] = expected
        if actual:
            details["actual"] = actual
        super().__init__(message, details=details, **kwargs)
        self.option_name = option_name
        self.expected = expected
        self.actual = actual


class InputKindMismatchError(IndicatorError):
    """Raised when an operand kind differs from the declared input kind."""

    def __init__(
        self,
        message: str,
        input_index: int | None = None,
        expected: str | None = None,
        actual: str | None = None,
        **kwargs: Any,
    ) -> None:
        details = kwargs.pop("details", {})
        if input_index is not None:
            details["input_index"] = input_index
        if expected:
            details["expected"] = expected
        if actual:
            details["actual"] = actual
        super().__init__(message, details=details, **kwargs)
        self.input_index = input_index
        self.expected = expected
        self.actual = actual


class InsufficientDataError(IndicatorError):
    """Raised when the lookback leaves no room inside the visible window."""

    def __init__(
        self,
        message: str,
        output_first: int | None = None,
        visible_length: int | None = None,
        **kwargs: Any,
    ) -> None:
        details = kwargs.pop("details", {})
        if output_first is not None:
            details["output_first"] = output_first
        if visible_length is not None:
            details["visible_length"] = visible_length
        super().__init__(message, details=details, **kwargs)
        self.output_first = output_first
        self.visible_length = visible_length


class EngineInvariantViolationError(IndicatorError):
    """Raised when a provider breaks the binding contract.

    Not a user error. Never caught and retried inside the package.

    Examples:
        - Reported output start differs from the lookback
        - Reported element count differs from the valid region size
        - Provider refused a binding the schema declared as valid
    """

    pass


# =============================================================================
# Data Errors
# =============================================================================


class DataError(TAChainError):
    """Base exception for data-related errors."""

    pass


class DataFileNotFoundError(DataError):
    """Raised when a candle file does not exist or cannot be opened."""

    def __init__(
        self,
        message: str,
        path: str | None = None,
        **kwargs: Any,
    ) -> None:
        details = kwargs.pop("details", {})
        if path:
            details["path"] = path
        super().__init__(message, details=details, **kwargs)
        self.path = path


class MalformedRecordError(DataError):
    """Raised when a candle record fails to parse.

    Examples:
        - Price field that is not a number
        - Date token that is not a calendar date
        - Truncated trailing record
    """

    def __init__(
        self,
        message: str,
        path: str | None = None,
        line_number: int | None = None,
        token: str | None = None,
        **kwargs: Any,
    ) -> None:
        details = kwargs.pop("details", {})
        if path:
            details["path"] = path
        if line_number is not None:
            details["line_number"] = line_number
        if token is not None:
            details["token"] = token
        super().__init__(message, details=details, **kwargs)
        self.path = path
        self.line_number = line_number
        self.token = token


class ReadOnlySeriesError(DataError):
    """Raised when a frozen series is resized or extended."""

    pass


# =============================================================================
# Configuration Errors
# =============================================================================


class ConfigurationError(TAChainError):
    """Base exception for configuration-related errors."""

    pass


class InvalidConfigError(ConfigurationError):
    """Raised when configuration is invalid.

    Examples:
        - Invalid parameter value
        - Unknown provider name
        - Duplicate computation registration
    """

    def __init__(
        self,
        message: str,
        config_key: str | None = None,
        value: Any = None,
        expected: str | None = None,
        **kwargs: Any,
    ) -> None:
        details = kwargs.pop("details", {})
        if config_key:
            details["config_key"] = config_key
        if value is not None:
            details["value"] = str(value)
        if expected:
            details["expected"] = expected
        super().__init__(message, details=details, **kwargs)
        self.config_key = config_key
        self.value = value
        self.expected = expected


class MissingConfigError(ConfigurationError):
    """Raised when required configuration is missing.

    Examples:
        - Configuration file not found
        - Required key missing from config
    """

    def __init__(
        self,
        message: str,
        config_key: str | None = None,
        config_file: str | None = None,
        **kwargs: Any,
    ) -> None:
        details = kwargs.pop("details", {})
        if config_key:
            details["config_key"] = config_key
        if config_file:
            details["config_file"] = config_file
        super().__init__(message, details=details, **kwargs)
        self.config_key = config_key
        self.config_file = config_file


class ProviderNotInitializedError(ConfigurationError):
    """Raised when a computation provider is used outside its session."""

    def __init__(
        self,
        message: str,
        provider: str | None = None,
        **kwargs: Any,
    ) -> None:
        details = kwargs.pop("details", {})
        if provider:
            details["provider"] = provider
        super().__init__(message, details=details, **kwargs)
        self.provider = provider


class ProviderUnavailableError(ConfigurationError):
    """Raised when a provider's backing library cannot be imported."""

    def __init__(
        self,
        message: str,
        provider: str | None = None,
        **kwargs: Any,
    ) -> None:
        details = kwargs.pop("details", {})
        if provider:
            details["provider"] = provider
        super().__init__(message, details=details, **kwargs)
        self.provider = provider
