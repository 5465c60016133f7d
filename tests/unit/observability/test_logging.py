"""
compliance-workflow — unit tests for observability logging

Purpose
- Validate structured JSON logging with redaction, correlation metadata, and queue-backed reliability.

What this test file should cover
- JSON line validity and redaction guarantees.
- Correlation field propagation, including fields bound by workflow operations.
- Multi-threaded logging stability.
- Queue drain/shutdown behavior.
"""

from __future__ import annotations

import json
import logging
import logging.handlers
import threading
from typing import TYPE_CHECKING
from uuid import uuid4

import pytest

from compliance_workflow.domain.models import Phase
from compliance_workflow.observability.logging import (
    LoggingConfig,
    correlation_scope,
    default_log_redactor,
    get_correlation_context,
    parse_log_level,
    setup_logging,
    setup_structured_logging,
    shutdown_logging,
)

if TYPE_CHECKING:
    from collections.abc import Iterator
    from pathlib import Path


@pytest.fixture(autouse=True)
def _cleanup_logging() -> Iterator[None]:
    yield
    shutdown_logging()


def _logger_name() -> str:
    return f"compliance_workflow.tests.logging.{uuid4().hex}"


def _read_json_lines(path: Path) -> list[dict[str, object]]:
    lines = path.read_text(encoding="utf-8").splitlines()
    return [json.loads(line) for line in lines]


def test_json_logging_redacts_secrets_and_preserves_correlation_fields(tmp_path: Path) -> None:
    logger_name = _logger_name()
    handle = setup_structured_logging(
        LoggingConfig(
            session_id="session-redaction",
            base_log_dir=tmp_path,
            logger_name=logger_name,
        )
    )
    logger = logging.getLogger(logger_name)

    with correlation_scope(workflow_id="wf-123", phase="planning"):
        logger.info(
            "payload token=tok-FAKE and api_key=sk-FAKE123456789012345",
            extra={"nested": {"password": "hunter2", "safe": "ok"}},
        )

    shutdown_logging(handle)

    assert handle.log_path == tmp_path / "session-redaction" / "compliance.jsonl"
    parsed = _read_json_lines(handle.log_path)
    assert len(parsed) == 1
    first = parsed[0]
    assert first["session_id"] == "session-redaction"
    assert first["workflow_id"] == "wf-123"
    assert first["phase"] == "planning"
    assert first["level"] == "INFO"
    assert first["fields"] == {"nested": {"password": "***REDACTED***", "safe": "ok"}}

    line = handle.log_path.read_text(encoding="utf-8")
    assert "tok-FAKE" not in line
    assert "sk-FAKE" not in line
    assert "hunter2" not in line


def test_setup_logging_wrapper_uses_observability_config(tmp_path: Path) -> None:
    handle = setup_logging(
        {
            "log_level": "INFO",
            "log_dir": str(tmp_path / "ignored"),
            "redact_secrets": True,
        },
        session_id="session-wrapper",
        log_dir=tmp_path,
    )

    logging.getLogger("compliance_workflow.tests").info("hello", extra={"token": "t-123"})
    logging.getLogger("compliance_workflow.tests").debug("below threshold")
    shutdown_logging()

    assert handle.is_shutdown
    content = (tmp_path / "session-wrapper" / "compliance.jsonl").read_text(encoding="utf-8")
    assert "t-123" not in content
    assert "below threshold" not in content
    assert not (tmp_path / "ignored").exists()


def test_redaction_can_be_disabled(tmp_path: Path) -> None:
    handle = setup_logging(
        {"log_dir": str(tmp_path), "redact_secrets": False}, session_id="session-plain"
    )
    logging.getLogger("compliance_workflow.tests").info("token=visible")
    shutdown_logging(handle)
    assert "token=visible" in handle.log_path.read_text(encoding="utf-8")


def test_workflow_operations_emit_correlated_records(
    tmp_path: Path, make_handle, artifacts
) -> None:
    handle = setup_logging({"log_dir": str(tmp_path)}, session_id="session-workflow")
    workflow = make_handle()
    workflow.answer_clarification("name", "approved")
    workflow.answer_clarification("email", "rejected")
    workflow.submit_artifact(Phase.CLARIFY, artifacts.clarify())
    shutdown_logging(handle)

    records = _read_json_lines(handle.log_path)
    messages = [record["message"] for record in records]
    assert messages[0] == "workflow created"
    assert "artifact submitted" in messages
    assert "verdict recorded" in messages

    submitted = next(record for record in records if record["message"] == "artifact submitted")
    assert submitted["workflow_id"] == workflow.workflow_id
    assert submitted["task_id"] == "signup-form"
    assert submitted["phase"] == "clarifying"
    assert submitted["fields"]["artifact_phase"] == "clarify"

    transition = [record for record in records if record["message"] == "phase transition"][-1]
    assert transition["fields"]["to_phase"] == "planning"
    assert all(record["session_id"] == "session-workflow" for record in records)


def test_correlation_scope_nests_and_resets() -> None:
    with correlation_scope(workflow_id="wf-1"):
        with correlation_scope(phase="plan"):
            assert get_correlation_context() == {"workflow_id": "wf-1", "phase": "plan"}
        with correlation_scope(workflow_id=None):
            assert get_correlation_context() == {}
        assert get_correlation_context() == {"workflow_id": "wf-1"}
    assert get_correlation_context() == {}


def test_default_redactor_handles_bearer_tokens_and_lists() -> None:
    redacted = default_log_redactor(
        {"headers": ["Bearer abc.def", "ok"], "client_secret": "s", "note": "password = hunter2"}
    )
    assert redacted == {
        "headers": ["Bearer ***REDACTED***", "ok"],
        "client_secret": "***REDACTED***",
        "note": "password=***REDACTED***",
    }


@pytest.mark.parametrize(("value", "expected"), [("debug", logging.DEBUG), (" WARNING ", logging.WARNING), (15, 15)])
def test_parse_log_level(value: int | str, expected: int) -> None:
    assert parse_log_level(value) == expected


def test_parse_log_level_rejects_unknown() -> None:
    with pytest.raises(ValueError, match="unsupported logging level"):
        parse_log_level("TRACE")


def test_invalid_logging_config_is_rejected(tmp_path: Path) -> None:
    with pytest.raises(ValueError, match="queue_size"):
        setup_structured_logging(LoggingConfig(session_id="s", base_log_dir=tmp_path, queue_size=0))
    with pytest.raises(ValueError, match="path separators"):
        setup_structured_logging(
            LoggingConfig(session_id="s", base_log_dir=tmp_path, log_filename="a/b.jsonl")
        )
    with pytest.raises(ValueError, match="session_id"):
        setup_structured_logging(LoggingConfig(session_id=" ", base_log_dir=tmp_path))


def test_multithreaded_logging_produces_valid_json_lines(tmp_path: Path) -> None:
    logger_name = _logger_name()
    handle = setup_structured_logging(
        LoggingConfig(
            session_id="session-threaded",
            base_log_dir=tmp_path,
            logger_name=logger_name,
            queue_size=4096,
        )
    )
    logger = logging.getLogger(logger_name)

    total_threads = 8
    per_thread = 40

    def worker(thread_idx: int) -> None:
        with correlation_scope(workflow_id=f"wf-{thread_idx}"):
            for i in range(per_thread):
                logger.info(
                    f"thread={thread_idx} index={i} token=tok-secret-{thread_idx}-{i}",
                    extra={"api_key": f"sk-FAKE-{thread_idx}-{i}"},
                )

    threads = [threading.Thread(target=worker, args=(idx,)) for idx in range(total_threads)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    shutdown_logging(handle)

    lines = handle.log_path.read_text(encoding="utf-8").splitlines()
    assert len(lines) == total_threads * per_thread
    for line in lines:
        parsed = json.loads(line)
        assert parsed["message"].startswith(f"thread={parsed['workflow_id'][3:]} ")
        assert "tok-secret" not in line
        assert "sk-FAKE" not in line


def test_queue_handler_non_blocking_and_shutdown_flushes(tmp_path: Path) -> None:
    logger_name = _logger_name()
    handle = setup_structured_logging(
        LoggingConfig(
            session_id="session-flush",
            base_log_dir=tmp_path,
            logger_name=logger_name,
            queue_size=10_000,
        )
    )
    logger = logging.getLogger(logger_name)

    queue_handlers = [h for h in logger.handlers if isinstance(h, logging.handlers.QueueHandler)]
    assert queue_handlers, "expected queue-backed non-blocking logging"

    expected = 300
    for i in range(expected):
        logger.info("message %s", i)

    shutdown_logging(handle)
    shutdown_logging(handle)

    lines = handle.log_path.read_text(encoding="utf-8").splitlines()
    assert handle.dropped_records == 0
    assert len(lines) == expected
    assert logger.handlers == []
