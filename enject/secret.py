"""
Wipeable container for passwords and secret values.

Security Note:
    Python cannot guarantee that no other copy of a secret exists in memory
    (interned str objects, library-internal bytes). SecretString keeps the
    one copy it owns in a mutable buffer and overwrites it on release, and
    refuses to be printed, pickled or copied.
"""

import hmac
from typing import Union

REDACTED = "********"


class SecretString:
    """A secret value backed by a bytearray that is zeroed on release."""

    __slots__ = ("_buf",)

    def __init__(self, value: Union[str, bytes, bytearray]):
        if isinstance(value, str):
            self._buf = bytearray(value.encode("utf-8"))
        elif isinstance(value, (bytes, bytearray)):
            self._buf = bytearray(value)
        else:
            raise TypeError(
                f"SecretString expects str or bytes, got {type(value).__name__}"
            )

    def expose(self) -> str:
        """Return the secret as text. The caller owns the returned copy."""
        return self._buf.decode("utf-8")

    def expose_bytes(self) -> bytes:
        """Return the secret as UTF-8 bytes. The caller owns the returned copy."""
        return bytes(self._buf)

    def wipe(self) -> None:
        """Overwrite the buffer with zeros and empty it."""
        wipe_buffer(self._buf)
        self._buf.clear()

    @property
    def wiped(self) -> bool:
        return len(self._buf) == 0

    def __enter__(self) -> "SecretString":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.wipe()

    def __del__(self) -> None:
        # __slots__ attribute may be missing if __init__ raised
        buf = getattr(self, "_buf", None)
        if buf is not None:
            self.wipe()

    def __len__(self) -> int:
        return len(self._buf)

    def __bool__(self) -> bool:
        return len(self._buf) > 0

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, SecretString):
            return NotImplemented
        return hmac.compare_digest(bytes(self._buf), bytes(other._buf))

    __hash__ = None  # type: ignore[assignment]

    def __repr__(self) -> str:
        return f"SecretString('{REDACTED}')"

    def __str__(self) -> str:
        return REDACTED

    def __format__(self, format_spec: str) -> str:
        return REDACTED

    def __reduce__(self):
        raise TypeError("SecretString cannot be pickled or copied")


def wipe_buffer(buf: bytearray) -> None:
    """Zero a mutable buffer in place."""
    for i in range(len(buf)):
        buf[i] = 0
