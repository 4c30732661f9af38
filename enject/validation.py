"""
Input validation for enject - Keep secrets out of .env files
"""

import os
import logging
from pathlib import Path
from typing import Optional
from .constants import GLOBAL_SCOPE_MARKER
from .exceptions import (
    ValidationError,
    PathValidationError,
    SecretNameValidationError,
    StoreSecurityError,
)

logger = logging.getLogger(__name__)

# Constants for validation limits
MAX_NAME_LENGTH = 255
MIN_ASCII_VALUE = 33
MAX_ASCII_VALUE = 126

# Constants for error messages
ERROR_PATH_INVALID_FORMAT = "Invalid path format"
ERROR_NAME_RESERVED_PREFIX = (
    f"Secret name must not start with '{GLOBAL_SCOPE_MARKER}' (reserved for global references)"
)
ERROR_FILE_WORLD_READABLE = (
    "File is readable by group or others. Please restrict permissions to owner only."
)
ERROR_FILE_NOT_FOUND = "File not found: {path}"
ERROR_PATH_NOT_FILE = "Path is not a file: {path}"
ERROR_INVALID_PATH = "Invalid path: {error}"
ERROR_CANNOT_ACCESS_STORE = "Cannot access store file: {error}"


class BaseValidator:
    """Base class for validators with common validation logic."""

    @staticmethod
    def validate_non_empty_string(value: Optional[str], field_name: str) -> str:
        """Validate that a value is a non-empty string."""
        if not value or not isinstance(value, str):
            raise ValidationError(f"{field_name} must be a non-empty string")
        return value

    @staticmethod
    def validate_string_length(value: str, max_length: int, field_name: str) -> str:
        """Validate that a string does not exceed maximum length."""
        if len(value) > max_length:
            raise ValidationError(
                f"{field_name} too long (max {max_length} characters)"
            )
        return value

    @staticmethod
    def validate_ascii_chars(value: str, field_name: str) -> str:
        """Validate that a string contains only visible ASCII characters."""
        if any(
            ord(char) < MIN_ASCII_VALUE or ord(char) > MAX_ASCII_VALUE for char in value
        ):
            raise ValidationError(f"{field_name} contains invalid characters")
        return value


class PathValidator(BaseValidator):
    """Validates file paths with security checks."""

    @staticmethod
    def validate_file_path(path: Optional[str], must_exist: bool = True) -> Path:
        """
        Validate file path with security checks.

        Args:
            path: File path to validate
            must_exist: Whether the file must exist

        Returns:
            Validated Path object

        Raises:
            PathValidationError: If path is invalid or file doesn't exist when required
        """
        try:
            validated_path = BaseValidator.validate_non_empty_string(path, "Path")
        except ValidationError as e:
            raise PathValidationError(e.message)

        # Prevent directory traversal
        if ".." in Path(validated_path).parts:
            raise PathValidationError(ERROR_PATH_INVALID_FORMAT)

        try:
            expanded_path = Path(validated_path).expanduser().resolve()
        except (OSError, RuntimeError) as e:
            raise PathValidationError(ERROR_INVALID_PATH.format(error=e))

        if must_exist and not expanded_path.exists():
            raise PathValidationError(ERROR_FILE_NOT_FOUND.format(path=expanded_path))

        if must_exist and not expanded_path.is_file():
            raise PathValidationError(ERROR_PATH_NOT_FILE.format(path=expanded_path))

        return expanded_path


class SecretNameValidator(BaseValidator):
    """Validates names under which secrets are stored."""

    @staticmethod
    def validate_secret_name(name: Optional[str]) -> str:
        """
        Validate a secret name.

        Args:
            name: Secret name to validate

        Returns:
            Validated name

        Raises:
            SecretNameValidationError: If the name is invalid
        """
        try:
            validated = BaseValidator.validate_non_empty_string(name, "Secret name")
            validated = BaseValidator.validate_string_length(
                validated, MAX_NAME_LENGTH, "Secret name"
            )
            validated = BaseValidator.validate_ascii_chars(validated, "Secret name")
        except ValidationError as e:
            raise SecretNameValidationError(e.message)

        if validated.startswith(GLOBAL_SCOPE_MARKER):
            raise SecretNameValidationError(ERROR_NAME_RESERVED_PREFIX)

        return validated


class SecurityValidator:
    """Validates security aspects of store files."""

    @staticmethod
    def validate_store_security(store_path: str, config_path: Optional[str] = None) -> None:
        """
        Validate file permissions of the store and its config.

        A missing store file is fine (it is created on first save).

        Args:
            store_path: Path to the encrypted store file
            config_path: Optional path to the store configuration

        Raises:
            StoreSecurityError: If an existing file cannot be accessed
        """
        for path in filter(None, (store_path, config_path)):
            try:
                st = os.stat(path)
            except FileNotFoundError:
                continue
            except OSError as e:
                logger.error("%s %s", ERROR_CANNOT_ACCESS_STORE.format(error=e), path)
                raise StoreSecurityError(ERROR_CANNOT_ACCESS_STORE.format(error=e), e)

            # Only perform POSIX permission checks on POSIX systems
            if os.name == "posix" and st.st_mode & 0o044:
                logger.warning("%s %s", ERROR_FILE_WORLD_READABLE, path)
