"""
AES-256-GCM + Argon2id password-based secret store.

On-disk format: ``nonce (12 bytes) || AES-256-GCM(JSON secret map)``.
No header and no embedded salt or KDF parameters; those come from the
store configuration and must be identical on every unlock.

Security Note:
    Never log secret values or passwords. Only key names and paths.
"""

import logging
import os
import secrets
import stat
import tempfile
from pathlib import Path
from types import MappingProxyType
from typing import Dict, List, Mapping, Optional, Union

import orjson
from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from .constants import (
    ERROR_DECRYPTION_FAILED,
    ERROR_STORE_NOT_UNLOCKED,
    ERROR_STORE_PAYLOAD_INVALID,
    ERROR_STORE_TOO_SHORT,
    NONCE_LEN,
)
from .exceptions import (
    CorruptStoreError,
    DecryptionFailedError,
    StoreIOError,
)
from .kdf import KdfParams, derived_key
from .secret import SecretString, wipe_buffer

logger = logging.getLogger(__name__)

TMP_PREFIX = ".store.tmp."


def atomic_write_bytes(path: Union[str, Path], data: Union[bytes, bytearray]) -> None:
    """
    Replace ``path`` with ``data`` so readers never see a partial file.

    Writes a uniquely named temporary file in the same directory, fsyncs it,
    then renames it over the target. On failure the previous file is left
    untouched and the temporary file is removed.

    A symlinked target is written through to the file it points at, and an
    existing file keeps its permission bits. New files are owner-only.

    Raises:
        StoreIOError: If any filesystem step fails
    """
    target = Path(path)
    if target.is_symlink():
        target = target.resolve()
    parent = target.parent

    try:
        existing_mode: Optional[int] = stat.S_IMODE(os.stat(target).st_mode)
    except FileNotFoundError:
        existing_mode = None
    except OSError as e:
        raise StoreIOError(f"Failed to stat '{target}'", e)

    try:
        fd, tmp_name = tempfile.mkstemp(prefix=TMP_PREFIX, dir=str(parent))
    except OSError as e:
        raise StoreIOError(f"Failed to create temporary file in '{parent}'", e)

    try:
        with os.fdopen(fd, "wb") as f:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())
        if existing_mode is not None:
            os.chmod(tmp_name, existing_mode)
        os.replace(tmp_name, target)
    except OSError as e:
        try:
            os.unlink(tmp_name)
        except FileNotFoundError:
            pass
        raise StoreIOError(f"Failed to write '{target}'", e)

    # Persist the rename itself; not every platform can fsync a directory
    if os.name == "posix":
        try:
            dir_fd = os.open(str(parent), os.O_RDONLY)
        except OSError:
            return
        try:
            os.fsync(dir_fd)
        except OSError:
            logger.debug("Directory fsync not supported for %s", parent)
        finally:
            os.close(dir_fd)


def _serialize(secrets_map: Mapping[str, SecretString]) -> bytearray:
    """Canonical encoding: JSON object with sorted keys."""
    plain = {name: value.expose() for name, value in secrets_map.items()}
    try:
        return bytearray(orjson.dumps(plain, option=orjson.OPT_SORT_KEYS))
    finally:
        plain.clear()


def _deserialize(plaintext: bytearray) -> Dict[str, SecretString]:
    try:
        parsed = orjson.loads(plaintext)
    except orjson.JSONDecodeError as e:
        raise CorruptStoreError(f"{ERROR_STORE_PAYLOAD_INVALID}: {e}", e)

    if not isinstance(parsed, dict) or not all(
        isinstance(k, str) and isinstance(v, str) for k, v in parsed.items()
    ):
        raise CorruptStoreError(ERROR_STORE_PAYLOAD_INVALID)

    result = {name: SecretString(value) for name, value in parsed.items()}
    parsed.clear()
    return result


class PasswordStore:
    """
    Password-protected secret store backed by a single encrypted file.

    This class provides:
    - Unlocking (decrypting) the store into memory
    - Reading and mutating secrets in memory
    - Saving (re-encrypting) the whole map with an atomic file replace
    """

    def __init__(self, store_path: Union[str, Path], kdf_params: KdfParams, salt: bytes):
        """
        Initialize PasswordStore with its file and key derivation settings.

        Args:
            store_path: Path to the encrypted store file
            kdf_params: Argon2id parameters from the store configuration
            salt: 32-byte salt from the store configuration
        """
        self.store_path = Path(store_path)
        self.kdf_params = kdf_params
        self.salt = bytes(salt)
        self._secrets: Optional[Dict[str, SecretString]] = None

    @classmethod
    def create_empty(
        cls,
        store_path: Union[str, Path],
        kdf_params: KdfParams,
        salt: bytes,
        password: SecretString,
    ) -> "PasswordStore":
        """Create a new empty store file encrypted with ``password``."""
        store = cls(store_path, kdf_params, salt)
        store._secrets = {}
        store.save(password)
        logger.info("Created empty store at %s", store.store_path)
        return store

    def unlock(self, password: SecretString) -> None:
        """
        Decrypt the store file and load secrets into memory.

        If the store file does not exist yet, an empty map is used.

        Raises:
            DecryptionFailedError: If authentication fails (wrong password or tampering)
            CorruptStoreError: If the file is too short or the plaintext is invalid
            StoreIOError: If the file cannot be read
        """
        if not self.store_path.exists():
            logger.debug("No store file at %s, starting empty", self.store_path)
            self._replace_secrets({})
            return

        try:
            blob = self.store_path.read_bytes()
        except OSError as e:
            raise StoreIOError(f"Failed to read store file '{self.store_path}'", e)

        if len(blob) < NONCE_LEN:
            raise CorruptStoreError(ERROR_STORE_TOO_SHORT)

        nonce, ciphertext = blob[:NONCE_LEN], blob[NONCE_LEN:]

        with derived_key(password, self.salt, self.kdf_params) as key:
            try:
                plaintext = bytearray(AESGCM(key).decrypt(nonce, ciphertext, None))
            except InvalidTag:
                raise DecryptionFailedError(ERROR_DECRYPTION_FAILED)

        try:
            secrets_map = _deserialize(plaintext)
        finally:
            wipe_buffer(plaintext)

        self._replace_secrets(secrets_map)
        logger.debug("Unlocked store %s (%d secrets)", self.store_path, len(secrets_map))

    def save(self, password: SecretString) -> None:
        """
        Encrypt the in-memory secrets under ``password`` and replace the store file.

        A fresh random nonce is generated on every call. Saving with a
        password different from the one used to unlock rotates the password;
        salt and KDF parameters are unchanged.

        Raises:
            CorruptStoreError: If the store is not unlocked
            StoreIOError: If the file cannot be written
        """
        secrets_map = self._secrets_ref()

        plaintext = _serialize(secrets_map)
        try:
            nonce = secrets.token_bytes(NONCE_LEN)
            with derived_key(password, self.salt, self.kdf_params) as key:
                ciphertext = AESGCM(key).encrypt(nonce, plaintext, None)
        finally:
            wipe_buffer(plaintext)

        atomic_write_bytes(self.store_path, nonce + ciphertext)
        logger.debug("Saved store %s (%d secrets)", self.store_path, len(secrets_map))

    def lock(self) -> None:
        """Wipe all in-memory secrets and return to the locked state."""
        self._replace_secrets(None)

    def is_unlocked(self) -> bool:
        """Check whether the secrets are loaded."""
        return self._secrets is not None

    def get(self, key: str) -> Optional[SecretString]:
        """Return the secret stored under ``key``, or None."""
        return self._secrets_ref().get(key)

    def set(self, key: str, value: Union[SecretString, str]) -> None:
        """
        Insert or replace a secret in memory.

        The store keeps its own copy; a SecretString passed in stays owned
        by the caller, who remains responsible for wiping it.
        """
        secrets_map = self._secrets_ref()
        if isinstance(value, SecretString):
            copied = SecretString(value.expose_bytes())
        else:
            copied = SecretString(value)
        previous = secrets_map.get(key)
        if previous is not None:
            previous.wipe()
        secrets_map[key] = copied

    def delete(self, key: str) -> bool:
        """Remove a secret from memory. Returns True if the key existed."""
        removed = self._secrets_ref().pop(key, None)
        if removed is None:
            return False
        removed.wipe()
        return True

    def list(self) -> List[str]:
        """Return the secret names in lexicographic order."""
        return sorted(self._secrets_ref())

    def as_mapping(self) -> Mapping[str, SecretString]:
        """Read-only view of the unlocked secrets, for the reference resolver."""
        return MappingProxyType(self._secrets_ref())

    def __enter__(self) -> "PasswordStore":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.lock()

    def _secrets_ref(self) -> Dict[str, SecretString]:
        if self._secrets is None:
            raise CorruptStoreError(ERROR_STORE_NOT_UNLOCKED)
        return self._secrets

    def _replace_secrets(self, new: Optional[Dict[str, SecretString]]) -> None:
        if self._secrets is not None:
            for value in self._secrets.values():
                value.wipe()
        self._secrets = new
