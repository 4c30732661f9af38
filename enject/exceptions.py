"""
Custom exceptions for enject - Keep secrets out of .env files
"""

from typing import Optional

from .constants import ERROR_SECRET_NOT_FOUND


class EnjectError(Exception):
    """Base exception for enject errors."""

    def __init__(self, message: str, original_exception: Optional[Exception] = None):
        """
        Initialize enject error.

        Args:
            message: Error message
            original_exception: Original exception that caused this error
        """
        self.message = message
        self.original_exception = original_exception
        super().__init__(self.message)


class ConfigError(EnjectError):
    """Configuration-related errors."""
    pass


class StoreNotInitializedError(ConfigError):
    """Raised when no store config is present where one is expected."""
    pass


class KdfParameterError(ConfigError):
    """Raised when key derivation parameters are unusable."""
    pass


class StoreError(EnjectError):
    """Encrypted store errors."""
    pass


class DecryptionFailedError(StoreError):
    """
    Raised when authenticated decryption fails.

    A wrong password and a tampered ciphertext produce the same error.
    """
    pass


class CorruptStoreError(StoreError):
    """Raised for structurally invalid store files or misuse of a locked store."""
    pass


class StoreIOError(StoreError):
    """Raised when reading or writing a store file fails."""
    pass


class TemplateError(EnjectError):
    """Template parsing and resolution errors."""
    pass


class MalformedTemplateLineError(TemplateError):
    """Raised when a template line is structurally invalid."""
    pass


class SecretNotFoundError(TemplateError):
    """Raised when a reference cannot be resolved."""

    def __init__(
        self,
        name: str,
        message: Optional[str] = None,
        original_exception: Optional[Exception] = None,
    ):
        """
        Initialize secret-not-found error.

        Args:
            name: Secret name, prefixed with the scope marker for global references
            message: Optional override for the default message
            original_exception: Original exception that caused this error
        """
        self.name = name
        super().__init__(
            message or ERROR_SECRET_NOT_FOUND.format(name=name), original_exception
        )


class ValidationError(EnjectError):
    """Input validation errors."""
    pass


class PathValidationError(ValidationError):
    """Raised when path validation fails."""
    pass


class SecretNameValidationError(ValidationError):
    """Raised when a secret name is invalid."""
    pass


class SecurityError(EnjectError):
    """Security-related errors."""
    pass


class StoreSecurityError(SecurityError):
    """Raised when store file security validation fails."""
    pass


class RunnerError(EnjectError):
    """Raised when the child process cannot be started."""
    pass
