"""Unit tests for prefixed ULID identifiers."""

from __future__ import annotations

import pytest

from compliance_workflow.domain import ids


def test_generate_ulid_is_deterministic_for_fixed_inputs() -> None:
    value = ids.generate_ulid(timestamp_ms=0, randbytes=lambda size: bytes(size))
    assert value == "0" * ids.ULID_LENGTH
    ids.validate_ulid(value)


def test_generate_ulid_encodes_timestamp_prefix() -> None:
    early = ids.generate_ulid(timestamp_ms=1_000, randbytes=lambda size: b"\xff" * size)
    late = ids.generate_ulid(timestamp_ms=2_000, randbytes=lambda size: b"\x00" * size)
    assert early < late


@pytest.mark.parametrize(
    ("kwargs", "fragment"),
    [
        ({"timestamp_ms": -1}, "out of range"),
        ({"timestamp_ms": 1 << 48}, "out of range"),
        ({"timestamp_ms": 0, "randbytes": lambda size: b"\x00"}, "exactly 10 bytes"),
    ],
)
def test_generate_ulid_rejects_bad_inputs(kwargs: dict[str, object], fragment: str) -> None:
    with pytest.raises(ValueError, match=fragment):
        ids.generate_ulid(**kwargs)  # type: ignore[arg-type]


def test_prefixed_ids_validate_their_own_prefix() -> None:
    workflow_id = ids.generate_workflow_id()
    artifact_id = ids.generate_artifact_id()
    verdict_id = ids.generate_verdict_id()

    ids.validate_workflow_id(workflow_id)
    ids.validate_artifact_id(artifact_id)
    ids.validate_verdict_id(verdict_id)

    with pytest.raises(ValueError, match="expected prefix"):
        ids.validate_workflow_id(artifact_id)
    with pytest.raises(ValueError, match="invalid ULID part"):
        ids.validate_verdict_id("vd-not-a-ulid")


def test_prefix_must_not_contain_separator() -> None:
    with pytest.raises(ValueError, match="invalid id prefix"):
        ids.generate_prefixed_id("a-b")
