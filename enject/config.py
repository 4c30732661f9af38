import configparser
import io
import logging
import os
from pathlib import Path
from typing import Optional, Union

from enject.constants import (
    CONFIG_FILENAME,
    ERROR_INVALID_SALT,
    ERROR_KEY_MISSING,
    ERROR_SECTION_MISSING,
    ERROR_STORE_NOT_INITIALIZED,
    GLOBAL_DIR_ENV_VAR,
    KDF_NAME,
    LEGACY_STORE_DIRNAME,
    SALT_LEN,
    STORE_BACKEND,
    STORE_CONFIG_VERSION,
    STORE_DIRNAME,
    STORE_FILENAME,
    STORE_SECTION,
)
from enject.exceptions import (
    ConfigError,
    StoreIOError,
    StoreNotInitializedError,
)
from enject.kdf import KdfParams
from enject.store import PasswordStore, atomic_write_bytes
from enject.validation import SecurityValidator

logger = logging.getLogger(__name__)

REQUIRED_KEYS = ("backend", "version", "kdf", "m_cost", "t_cost", "p_cost", "salt")


def resolve_store_dir(project_root: Union[str, Path]) -> Path:
    """
    Return the store directory for a project root.

    Prefers ``.enject/``; falls back to a legacy ``.enveil/`` directory when
    it is the only one present.
    """
    root = Path(project_root)
    current = root / STORE_DIRNAME
    if current.exists():
        return current
    legacy = root / LEGACY_STORE_DIRNAME
    if legacy.exists():
        logger.warning(
            "Using legacy %s/ store in %s. Rename it to %s/ to silence this warning.",
            LEGACY_STORE_DIRNAME,
            root,
            STORE_DIRNAME,
        )
        return legacy
    return current


def global_store_dir() -> Path:
    """Directory of the global store ($ENJECT_GLOBAL_DIR or ~/.enject/global)."""
    override = os.environ.get(GLOBAL_DIR_ENV_VAR)
    if override:
        return Path(override).expanduser()
    return Path.home() / STORE_DIRNAME / "global"


class EnjectConfig:
    """Class to manage the store configuration file of one store directory."""

    def __init__(self, store_dir: Union[str, Path]):
        """Initialize with the store directory (holding config and store files)."""
        self.store_dir = Path(store_dir)
        self.config_path = self.store_dir / CONFIG_FILENAME
        self.store_path = self.store_dir / STORE_FILENAME
        self._config: Optional[configparser.ConfigParser] = None

    def _make_case_preserving_config(self) -> configparser.ConfigParser:
        """Create a ConfigParser that preserves option name case."""

        class _CasePreservingConfig(configparser.ConfigParser):
            def optionxform(self, optionstr: str) -> str:  # type: ignore[override]
                return optionstr

        return _CasePreservingConfig(interpolation=None)

    def exists(self) -> bool:
        return self.config_path.exists()

    def load(self) -> configparser.ConfigParser:
        """
        Load and validate the configuration file.

        Raises:
            StoreNotInitializedError: If the config file is missing
            ConfigError: If the file is unreadable or incomplete
        """
        if not self.exists():
            raise StoreNotInitializedError(
                ERROR_STORE_NOT_INITIALIZED.format(path=self.store_dir)
            )

        config = self._make_case_preserving_config()
        try:
            with open(self.config_path, encoding="utf-8") as f:
                config.read_file(f)
        except (OSError, configparser.Error) as e:
            raise ConfigError(f"Failed to parse config file: {str(e)}", e)

        if STORE_SECTION not in config:
            raise ConfigError(
                ERROR_SECTION_MISSING.format(
                    section=STORE_SECTION, config_file=self.config_path
                )
            )

        section = config[STORE_SECTION]
        for key in REQUIRED_KEYS:
            if not section.get(key):
                raise ConfigError(ERROR_KEY_MISSING.format(key=key, section=STORE_SECTION))

        if section["version"] != str(STORE_CONFIG_VERSION):
            raise ConfigError(f"Unsupported store config version: {section['version']}")
        if section["backend"] != STORE_BACKEND:
            raise ConfigError(f"Unsupported store backend: {section['backend']}")
        if section["kdf"] != KDF_NAME:
            raise ConfigError(f"Unsupported kdf: {section['kdf']}")

        self._config = config
        return config

    def get_config(self) -> configparser.ConfigParser:
        """Get the loaded configuration, loading it if necessary."""
        if self._config is None:
            self._config = self.load()
        return self._config

    def kdf_params(self) -> KdfParams:
        """Return the validated Argon2id parameters."""
        section = self.get_config()[STORE_SECTION]
        try:
            params = KdfParams(
                m_cost=section.getint("m_cost"),
                t_cost=section.getint("t_cost"),
                p_cost=section.getint("p_cost"),
            )
        except ValueError as e:
            raise ConfigError(f"Invalid KDF parameters in '{self.config_path}'", e)
        return params.validate()

    def salt_bytes(self) -> bytes:
        """Return the decoded 32-byte salt."""
        raw = self.get_config()[STORE_SECTION]["salt"]
        error = ERROR_INVALID_SALT.format(config_file=self.config_path, length=SALT_LEN)
        try:
            salt = bytes.fromhex(raw)
        except ValueError as e:
            raise ConfigError(error, e)
        if len(salt) != SALT_LEN:
            raise ConfigError(error)
        return salt

    def open_store(self) -> PasswordStore:
        """Build a (locked) PasswordStore from this configuration."""
        params = self.kdf_params()
        salt = self.salt_bytes()
        SecurityValidator.validate_store_security(
            str(self.store_path), str(self.config_path)
        )
        return PasswordStore(self.store_path, params, salt)

    def write(self, salt: bytes, params: KdfParams) -> None:
        """
        Write a fresh configuration file, creating the store directory.

        Raises:
            ConfigError: If the directory or file cannot be written
        """
        params.validate()
        if len(salt) != SALT_LEN:
            raise ConfigError(f"salt must be {SALT_LEN} bytes")

        config = self._make_case_preserving_config()
        config[STORE_SECTION] = {
            "backend": STORE_BACKEND,
            "version": str(STORE_CONFIG_VERSION),
            "kdf": KDF_NAME,
            "m_cost": str(params.m_cost),
            "t_cost": str(params.t_cost),
            "p_cost": str(params.p_cost),
            "salt": salt.hex(),
        }

        buf = io.StringIO()
        config.write(buf)
        try:
            self.store_dir.mkdir(mode=0o700, parents=True, exist_ok=True)
            atomic_write_bytes(self.config_path, buf.getvalue().encode("utf-8"))
        except (OSError, StoreIOError) as e:
            raise ConfigError(
                f"Failed to write configuration file '{self.config_path}'", e
            )

        self._config = config
        logger.info("Wrote store config to %s", self.config_path)
