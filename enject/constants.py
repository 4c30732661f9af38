#!/usr/bin/env python3
"""
Shared constants used across enject modules.

This module contains shared constants, error messages, and placeholder
prefixes to avoid circular imports between modules.
"""

# Placeholder tokens. The current token is written by templatize; the legacy
# token is still accepted when parsing.
REFERENCE_TOKEN = "en"
LEGACY_REFERENCE_TOKEN = "ev"
GLOBAL_SCOPE_MARKER = "global/"

LOCAL_PREFIX = f"{REFERENCE_TOKEN}://"
GLOBAL_PREFIX = f"{REFERENCE_TOKEN}://{GLOBAL_SCOPE_MARKER}"
LEGACY_LOCAL_PREFIX = f"{LEGACY_REFERENCE_TOKEN}://"
LEGACY_GLOBAL_PREFIX = f"{LEGACY_REFERENCE_TOKEN}://{GLOBAL_SCOPE_MARKER}"

SCOPE_LOCAL = "local"
SCOPE_GLOBAL = "global"

# (prefix, scope, is_legacy)
REFERENCE_PREFIXES = (
    (GLOBAL_PREFIX, SCOPE_GLOBAL, False),
    (LEGACY_GLOBAL_PREFIX, SCOPE_GLOBAL, True),
    (LOCAL_PREFIX, SCOPE_LOCAL, False),
    (LEGACY_LOCAL_PREFIX, SCOPE_LOCAL, True),
)

# Crypto sizes (bytes)
NONCE_LEN = 12
KEY_LEN = 32
SALT_LEN = 32

# Argon2id defaults
DEFAULT_M_COST = 65536  # KiB (64 MiB)
DEFAULT_T_COST = 3
DEFAULT_P_COST = 4

# Configuration constants
STORE_DIRNAME = ".enject"
LEGACY_STORE_DIRNAME = ".enveil"
CONFIG_FILENAME = "config"
STORE_FILENAME = "store"
STORE_SECTION = "store"
STORE_BACKEND = "password"
STORE_CONFIG_VERSION = 1
KDF_NAME = "argon2id"
DEFAULT_ENV_FILE = ".env"
GLOBAL_DIR_ENV_VAR = "ENJECT_GLOBAL_DIR"

# Constants for error messages
ERROR_STORE_NOT_INITIALIZED = (
    "Store not initialized in '{path}'. Run `enject init` first."
)
ERROR_ALREADY_INITIALIZED = (
    "enject is already initialized in '{path}'. To reinitialize, delete it first."
)
ERROR_DECRYPTION_FAILED = "Wrong enject store password, or store is corrupted."
ERROR_STORE_TOO_SHORT = "Store file too short to contain a nonce."
ERROR_STORE_NOT_UNLOCKED = "Store not unlocked."
ERROR_STORE_PAYLOAD_INVALID = "Decrypted store is not a map of names to strings"
ERROR_SECRET_NOT_FOUND = (
    "Secret '{name}' not found in store. Add it with: enject set {name}"
)
ERROR_MALFORMED_NO_EQUALS = "Malformed .env line {lineno} (no '=' found)"
ERROR_MALFORMED_EMPTY_KEY = "Malformed .env line {lineno} (empty key)"
ERROR_MALFORMED_EMPTY_NAME = (
    "Malformed {prefix} reference on line {lineno} (empty secret name)"
)
ERROR_SECTION_MISSING = "Section '[{section}]' missing in '{config_file}'"
ERROR_KEY_MISSING = "'{key}' key missing in '[{section}]' section"
ERROR_INVALID_SALT = "Invalid salt in '{config_file}' (expected {length} hex-encoded bytes)"
ERROR_COULD_NOT_READ_PASSWORD = "Could not read password"
ERROR_PASSWORDS_DO_NOT_MATCH = "Passwords do not match."
ERROR_EMPTY_PASSWORD = "enject store password must not be empty."
ERROR_EMPTY_SECRET = "Secret value must not be empty."
ERROR_NO_COMMAND = "No command provided."
ERROR_COMMAND_NOT_FOUND = "Command not found: {program}"
ERROR_ENV_FILE_NOT_FOUND = (
    "{path} not found. Create one with en:// references and try again."
)
