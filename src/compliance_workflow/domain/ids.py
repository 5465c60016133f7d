"""Prefixed ULID identifiers for workflows, artifacts and verdicts."""

from __future__ import annotations

import secrets
import time
from collections.abc import Callable
from typing import Final

CROCKFORD_BASE32_ALPHABET: Final[str] = "0123456789ABCDEFGHJKMNPQRSTVWXYZ"
ULID_LENGTH: Final[int] = 26
ULID_RANDOM_BYTES: Final[int] = 10
ULID_MAX_TIMESTAMP_MS: Final[int] = (1 << 48) - 1
_SEPARATOR: Final[str] = "-"

WORKFLOW_ID_PREFIX: Final[str] = "wf"
ARTIFACT_ID_PREFIX: Final[str] = "art"
VERDICT_ID_PREFIX: Final[str] = "vd"

_DECODE_TABLE: Final[dict[str, int]] = {
    char: index for index, char in enumerate(CROCKFORD_BASE32_ALPHABET)
}

RandBytes = Callable[[int], bytes]


def generate_ulid(*, timestamp_ms: int | None = None, randbytes: RandBytes | None = None) -> str:
    """Generate a ULID as a 26-character uppercase Crockford Base32 string."""
    ts_ms = time.time_ns() // 1_000_000 if timestamp_ms is None else timestamp_ms
    if isinstance(ts_ms, bool) or not isinstance(ts_ms, int):
        raise ValueError(f"timestamp_ms must be an int, got {type(ts_ms).__name__}")
    if not 0 <= ts_ms <= ULID_MAX_TIMESTAMP_MS:
        raise ValueError(f"timestamp_ms out of range: expected 0..{ULID_MAX_TIMESTAMP_MS}")

    provider = secrets.token_bytes if randbytes is None else randbytes
    random_part = bytes(provider(ULID_RANDOM_BYTES))
    if len(random_part) != ULID_RANDOM_BYTES:
        raise ValueError(f"randbytes must return exactly {ULID_RANDOM_BYTES} bytes")

    value = (ts_ms << 80) | int.from_bytes(random_part, "big")
    chars = ["0"] * ULID_LENGTH
    for index in range(ULID_LENGTH - 1, -1, -1):
        chars[index] = CROCKFORD_BASE32_ALPHABET[value & 0b11111]
        value >>= 5
    return "".join(chars)


def validate_ulid(value: str) -> None:
    """Raise ``ValueError`` unless ``value`` is a well-formed ULID."""
    if not isinstance(value, str):
        raise ValueError(f"ulid must be a string, got {type(value).__name__}")
    if len(value) != ULID_LENGTH:
        raise ValueError(f"ulid length must be {ULID_LENGTH}, got {len(value)}")
    if value[0].upper() not in "01234567":
        raise ValueError("ulid overflow: value exceeds maximum 128-bit ULID")
    for index, char in enumerate(value):
        if char.upper() not in _DECODE_TABLE:
            raise ValueError(f"invalid ULID character {char!r} at index {index}")


def generate_prefixed_id(prefix: str, *, timestamp_ms: int | None = None) -> str:
    """Generate an ID in the form ``<prefix>-<ulid>``."""
    if not prefix or _SEPARATOR in prefix:
        raise ValueError(f"invalid id prefix {prefix!r}")
    return f"{prefix}{_SEPARATOR}{generate_ulid(timestamp_ms=timestamp_ms)}"


def validate_prefixed_id(id_str: str, expected_prefix: str) -> None:
    if not isinstance(id_str, str):
        raise ValueError(f"prefixed id must be a string, got {type(id_str).__name__}")
    lead = f"{expected_prefix}{_SEPARATOR}"
    if not id_str.startswith(lead):
        raise ValueError(f"expected prefix '{lead}' (got {id_str!r})")
    try:
        validate_ulid(id_str[len(lead) :])
    except ValueError as exc:
        raise ValueError(f"invalid ULID part for prefix '{expected_prefix}': {exc}") from exc


def generate_workflow_id() -> str:
    return generate_prefixed_id(WORKFLOW_ID_PREFIX)


def validate_workflow_id(id_str: str) -> None:
    validate_prefixed_id(id_str, WORKFLOW_ID_PREFIX)


def generate_artifact_id() -> str:
    return generate_prefixed_id(ARTIFACT_ID_PREFIX)


def validate_artifact_id(id_str: str) -> None:
    validate_prefixed_id(id_str, ARTIFACT_ID_PREFIX)


def generate_verdict_id() -> str:
    return generate_prefixed_id(VERDICT_ID_PREFIX)


def validate_verdict_id(id_str: str) -> None:
    validate_prefixed_id(id_str, VERDICT_ID_PREFIX)


__all__ = [
    "ARTIFACT_ID_PREFIX",
    "CROCKFORD_BASE32_ALPHABET",
    "ULID_LENGTH",
    "VERDICT_ID_PREFIX",
    "WORKFLOW_ID_PREFIX",
    "generate_artifact_id",
    "generate_prefixed_id",
    "generate_ulid",
    "generate_verdict_id",
    "generate_workflow_id",
    "validate_artifact_id",
    "validate_prefixed_id",
    "validate_ulid",
    "validate_verdict_id",
    "validate_workflow_id",
]
