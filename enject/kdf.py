"""
Argon2id key derivation for the password store.

The derived key is handed out through ``derived_key()``, a scoped context
manager that zeroes the key buffer when the block exits, whether it exits
normally or through an exception.
"""

import logging
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Iterator, Union

from argon2.exceptions import HashingError
from argon2.low_level import Type, hash_secret_raw

from .constants import (
    DEFAULT_M_COST,
    DEFAULT_P_COST,
    DEFAULT_T_COST,
    KEY_LEN,
    SALT_LEN,
)
from .exceptions import KdfParameterError
from .secret import SecretString, wipe_buffer

logger = logging.getLogger(__name__)

# Argon2 limits from the reference implementation
MIN_M_COST_PER_LANE = 8
MAX_P_COST = 0xFFFFFF


@dataclass(frozen=True)
class KdfParams:
    """Argon2id cost parameters. Changing them makes an existing store unreadable."""

    m_cost: int = DEFAULT_M_COST
    t_cost: int = DEFAULT_T_COST
    p_cost: int = DEFAULT_P_COST

    def validate(self) -> "KdfParams":
        """
        Check the parameter combination before handing it to Argon2.

        Raises:
            KdfParameterError: If any cost is degenerate
        """
        for name in ("m_cost", "t_cost", "p_cost"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int) or value < 1:
                raise KdfParameterError(f"{name} must be a positive integer, got {value!r}")
        if self.p_cost > MAX_P_COST:
            raise KdfParameterError(f"p_cost must be at most {MAX_P_COST}")
        if self.m_cost < MIN_M_COST_PER_LANE * self.p_cost:
            raise KdfParameterError(
                f"m_cost must be at least {MIN_M_COST_PER_LANE} * p_cost "
                f"({MIN_M_COST_PER_LANE * self.p_cost} KiB)"
            )
        return self


def derive_key(
    password: Union[SecretString, bytes], salt: bytes, params: KdfParams
) -> bytearray:
    """
    Derive a 32-byte key from a password and salt using Argon2id.

    Never fails on a wrong password; correctness is checked later by the
    AEAD tag. The caller must zero the returned buffer, or use
    ``derived_key()`` which does so.

    Args:
        password: Store password
        salt: 32-byte salt from the store configuration
        params: Argon2id cost parameters

    Returns:
        Mutable 32-byte key buffer

    Raises:
        KdfParameterError: If the salt or cost parameters are invalid
    """
    params.validate()
    if len(salt) != SALT_LEN:
        raise KdfParameterError(f"salt must be {SALT_LEN} bytes, got {len(salt)}")

    secret = password.expose_bytes() if isinstance(password, SecretString) else password
    logger.debug(
        "Deriving key with Argon2id (m_cost=%d, t_cost=%d, p_cost=%d)",
        params.m_cost,
        params.t_cost,
        params.p_cost,
    )
    try:
        raw = hash_secret_raw(
            secret=secret,
            salt=bytes(salt),
            time_cost=params.t_cost,
            memory_cost=params.m_cost,
            parallelism=params.p_cost,
            hash_len=KEY_LEN,
            type=Type.ID,
        )
    except HashingError as e:
        raise KdfParameterError(f"Argon2id rejected the parameters: {e}", e)
    return bytearray(raw)


@contextmanager
def derived_key(
    password: Union[SecretString, bytes], salt: bytes, params: KdfParams
) -> Iterator[bytearray]:
    """Derive a key for exactly one encrypt or decrypt and zero it afterwards."""
    key = derive_key(password, salt, params)
    try:
        yield key
    finally:
        wipe_buffer(key)
