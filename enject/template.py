"""
.env template parsing, reference resolution and templatizing.

A template line is one of:

- ``Passthrough``: blank line or ``#`` comment, kept verbatim
- ``Plain``: ``KEY=value``, passed through unchanged
- ``LocalRef``: ``KEY=en://name``, resolved from the project store
- ``GlobalRef``: ``KEY=en://global/name``, resolved from the global store

The legacy ``ev://`` token is accepted as a synonym for ``en://``.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Mapping, Sequence, Tuple, Union

from .constants import (
    ERROR_MALFORMED_EMPTY_KEY,
    ERROR_MALFORMED_EMPTY_NAME,
    ERROR_MALFORMED_NO_EQUALS,
    GLOBAL_PREFIX,
    GLOBAL_SCOPE_MARKER,
    LOCAL_PREFIX,
    REFERENCE_PREFIXES,
    SCOPE_GLOBAL,
)
from .exceptions import MalformedTemplateLineError, SecretNotFoundError
from .secret import SecretString

logger = logging.getLogger(__name__)

# Longest prefix first so "en://global/" wins over "en://"
_PREFIX_CANDIDATES: Tuple[Tuple[str, str, bool], ...] = tuple(
    sorted(REFERENCE_PREFIXES, key=lambda candidate: len(candidate[0]), reverse=True)
)


@dataclass(frozen=True)
class Passthrough:
    raw: str


@dataclass(frozen=True)
class Plain:
    key: str
    value: str


@dataclass(frozen=True)
class LocalRef:
    key: str
    secret_name: str
    legacy: bool = field(default=False, compare=False)


@dataclass(frozen=True)
class GlobalRef:
    key: str
    secret_name: str
    legacy: bool = field(default=False, compare=False)


EnvLine = Union[Passthrough, Plain, LocalRef, GlobalRef]
SecretMap = Mapping[str, Union[SecretString, str]]


def _split_lines(text: str) -> Iterator[str]:
    """Split on LF or CRLF only; a trailing newline does not start a new line."""
    if not text:
        return
    lines = text.split("\n")
    if lines[-1] == "":
        lines.pop()
    for line in lines:
        yield line[:-1] if line.endswith("\r") else line


def parse_line(line: str, lineno: int = 1) -> EnvLine:
    """
    Classify a single template line.

    Args:
        line: Raw line without its newline
        lineno: 1-based line number, used only in error messages

    Returns:
        The parsed EnvLine

    Raises:
        MalformedTemplateLineError: If the line has no '=', an empty key,
            or a reference with an empty secret name
    """
    trimmed = line.rstrip()

    if not trimmed or trimmed.startswith("#"):
        return Passthrough(line)

    key, sep, value = trimmed.partition("=")
    if not sep:
        raise MalformedTemplateLineError(ERROR_MALFORMED_NO_EQUALS.format(lineno=lineno))

    key = key.strip()
    if not key:
        raise MalformedTemplateLineError(ERROR_MALFORMED_EMPTY_KEY.format(lineno=lineno))

    for prefix, scope, is_legacy in _PREFIX_CANDIDATES:
        if not value.startswith(prefix):
            continue
        secret_name = value[len(prefix):]
        if not secret_name:
            raise MalformedTemplateLineError(
                ERROR_MALFORMED_EMPTY_NAME.format(prefix=prefix, lineno=lineno)
            )
        if scope == SCOPE_GLOBAL:
            return GlobalRef(key, secret_name, legacy=is_legacy)
        return LocalRef(key, secret_name, legacy=is_legacy)

    return Plain(key, value)


def parse(text: str) -> List[EnvLine]:
    """
    Parse .env template text into an ordered list of lines.

    All-or-nothing: a single malformed line fails the whole parse.
    """
    return [parse_line(line, lineno) for lineno, line in enumerate(_split_lines(text), 1)]


def count_legacy_references(lines: Sequence[EnvLine]) -> int:
    """Number of references written with the legacy token."""
    return sum(
        1 for line in lines if isinstance(line, (LocalRef, GlobalRef)) and line.legacy
    )


def has_global_references(lines: Sequence[EnvLine]) -> bool:
    return any(isinstance(line, GlobalRef) for line in lines)


def _reveal(value: Union[SecretString, str]) -> str:
    return value.expose() if isinstance(value, SecretString) else value


def resolve(
    lines: Sequence[EnvLine],
    local_secrets: SecretMap,
    global_secrets: SecretMap,
) -> Dict[str, str]:
    """
    Resolve references into a flat environment map.

    Args:
        lines: Parsed template lines
        local_secrets: Secrets of the project store
        global_secrets: Secrets of the global store, possibly empty

    Returns:
        Mapping of variable name to value for every non-passthrough line

    Raises:
        SecretNotFoundError: On the first unresolved reference. Global misses
            are reported as ``global/<name>``. No partial map is returned.
    """
    env: Dict[str, str] = {}

    for line in lines:
        if isinstance(line, Passthrough):
            continue
        if isinstance(line, Plain):
            env[line.key] = line.value
        elif isinstance(line, LocalRef):
            value = local_secrets.get(line.secret_name)
            if value is None:
                env.clear()
                raise SecretNotFoundError(line.secret_name)
            env[line.key] = _reveal(value)
        elif isinstance(line, GlobalRef):
            value = global_secrets.get(line.secret_name)
            if value is None:
                env.clear()
                raise SecretNotFoundError(f"{GLOBAL_SCOPE_MARKER}{line.secret_name}")
            env[line.key] = _reveal(value)

    logger.debug("Resolved %d variables", len(env))
    return env


def format_line(line: EnvLine) -> str:
    """Serialize a line back to template text using the current token."""
    if isinstance(line, Passthrough):
        return line.raw
    if isinstance(line, Plain):
        return f"{line.key}={line.value}"
    if isinstance(line, LocalRef):
        return f"{line.key}={LOCAL_PREFIX}{line.secret_name}"
    return f"{line.key}={GLOBAL_PREFIX}{line.secret_name}"


def templatize(lines: Sequence[EnvLine]) -> List[str]:
    """
    Rewrite plain assignments as local references named after their key.

    Existing references are kept (rewritten to the current token), so the
    operation is idempotent on templatized input.
    """
    out: List[str] = []
    for line in lines:
        if isinstance(line, Plain):
            out.append(format_line(LocalRef(line.key, line.key)))
        else:
            out.append(format_line(line))
    return out
