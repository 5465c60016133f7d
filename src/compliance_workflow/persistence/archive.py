"""
SQLite archive of serialized workflow states.

One row per workflow, upserted on every terminal transition. Each row stores
the canonical JSON of the ``WorkflowState`` plus its SHA-256 checksum, which
is verified on load.
"""

from __future__ import annotations

import hashlib
import logging
import sqlite3
import threading
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path
from typing import Final

from compliance_workflow.constants import ARCHIVE_DB_SCHEMA_VERSION
from compliance_workflow.domain.models import WorkflowPhase
from compliance_workflow.workflow.state import WorkflowState

logger = logging.getLogger(__name__)

DEFAULT_BUSY_TIMEOUT_MS: Final[int] = 5_000

_SCHEMA_VERSIONS_TABLE_SQL: Final[str] = """
CREATE TABLE IF NOT EXISTS schema_versions (
    version INTEGER PRIMARY KEY CHECK (version > 0),
    name TEXT NOT NULL,
    checksum TEXT NOT NULL CHECK (length(checksum) = 64),
    applied_at TEXT NOT NULL
)
"""

_PHASE_VALUES: Final[str] = ", ".join(f"'{phase.value}'" for phase in WorkflowPhase)

_MIGRATION_0001_STATEMENTS: Final[tuple[str, ...]] = (
    f"""
    CREATE TABLE IF NOT EXISTS workflows (
        workflow_id TEXT PRIMARY KEY,
        task_id TEXT NOT NULL,
        phase TEXT NOT NULL CHECK (phase IN ({_PHASE_VALUES})),
        generation INTEGER NOT NULL CHECK (generation >= 0),
        state_json TEXT NOT NULL,
        checksum TEXT NOT NULL CHECK (length(checksum) = 64),
        archived_at TEXT NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_workflows_task ON workflows(task_id, archived_at DESC)",
    "CREATE INDEX IF NOT EXISTS idx_workflows_archived ON workflows(archived_at DESC)",
)


@dataclass(frozen=True, slots=True)
class _Migration:
    version: int
    name: str
    statements: tuple[str, ...]
    checksum: str


def _migration_checksum(version: int, name: str, statements: Sequence[str]) -> str:
    digest = hashlib.sha256()
    digest.update(f"{version}:{name}\n".encode())
    for statement in statements:
        normalized = "\n".join(line.rstrip() for line in statement.strip().splitlines())
        digest.update(normalized.encode("utf-8"))
        digest.update(b"\n--\n")
    return digest.hexdigest()


_MIGRATIONS: Final[tuple[_Migration, ...]] = (
    _Migration(
        version=1,
        name="workflow_archive",
        statements=_MIGRATION_0001_STATEMENTS,
        checksum=_migration_checksum(1, "workflow_archive", _MIGRATION_0001_STATEMENTS),
    ),
)


class ArchiveError(RuntimeError):
    """Base class for workflow archive errors."""


class ArchiveMigrationError(ArchiveError):
    """Schema cannot be brought to the supported version."""


class ArchiveCorruptionError(ArchiveError):
    """Stored state does not match its checksum or cannot be decoded."""


class ArchiveNotFoundError(ArchiveError, KeyError):
    """No archived workflow with the requested id."""

    def __str__(self) -> str:
        return str(self.args[0]) if self.args else "workflow not archived"


@dataclass(frozen=True, slots=True)
class ArchivedWorkflow:
    workflow_id: str
    task_id: str
    phase: WorkflowPhase
    generation: int
    checksum: str
    archived_at: str


class WorkflowArchive:
    """Workflow state store backed by one SQLite file."""

    def __init__(self, path: str | Path, *, busy_timeout_ms: int = DEFAULT_BUSY_TIMEOUT_MS) -> None:
        if busy_timeout_ms < 0:
            raise ValueError("busy_timeout_ms must be >= 0")
        self._path = Path(path).expanduser()
        self._busy_timeout_ms = busy_timeout_ms
        self._migrate_lock = threading.Lock()
        self._migrated = False

    @property
    def path(self) -> Path:
        return self._path

    @contextmanager
    def connection(self) -> Iterator[sqlite3.Connection]:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(
            self._path,
            timeout=self._busy_timeout_ms / 1000.0,
            isolation_level=None,
            check_same_thread=False,
        )
        conn.row_factory = sqlite3.Row
        try:
            conn.execute("PRAGMA journal_mode=WAL")
            conn.execute(f"PRAGMA busy_timeout={self._busy_timeout_ms}")
            yield conn
        finally:
            conn.close()

    @contextmanager
    def transaction(self, conn: sqlite3.Connection) -> Iterator[sqlite3.Connection]:
        conn.execute("BEGIN IMMEDIATE")
        try:
            yield conn
        except Exception:
            conn.execute("ROLLBACK")
            raise
        else:
            conn.execute("COMMIT")

    def migrate(self) -> int:
        """Apply migrations idempotently and return the schema version."""
        with self._migrate_lock, self.connection() as conn:
            conn.execute(_SCHEMA_VERSIONS_TABLE_SQL)
            applied = {
                int(row["version"]): str(row["checksum"])
                for row in conn.execute("SELECT version, checksum FROM schema_versions")
            }
            current = max(applied, default=0)
            if current > ARCHIVE_DB_SCHEMA_VERSION:
                raise ArchiveMigrationError(
                    "archive schema is newer than supported "
                    f"(db={current}, code={ARCHIVE_DB_SCHEMA_VERSION})"
                )
            for migration in _MIGRATIONS:
                recorded = applied.get(migration.version)
                if recorded is not None:
                    if recorded != migration.checksum:
                        raise ArchiveMigrationError(
                            f"migration checksum mismatch for version {migration.version}: "
                            f"db={recorded} code={migration.checksum}"
                        )
                    continue
                with self.transaction(conn) as tx:
                    for statement in migration.statements:
                        tx.execute(statement)
                    tx.execute(
                        """
                        INSERT INTO schema_versions (version, name, checksum, applied_at)
                        VALUES (?, ?, ?, ?)
                        """,
                        (migration.version, migration.name, migration.checksum, _utc_now_iso()),
                    )
                applied[migration.version] = migration.checksum
            self._migrated = True
            return max(applied, default=0)

    def save(self, state: WorkflowState) -> ArchivedWorkflow:
        """Upsert the canonical serialization of ``state``."""
        self._ensure_schema()
        state_json = state.to_json()
        record = ArchivedWorkflow(
            workflow_id=state.workflow_id,
            task_id=state.task.task_id,
            phase=state.current_phase,
            generation=state.generation,
            checksum=state_checksum(state_json),
            archived_at=_utc_now_iso(),
        )
        try:
            with self.connection() as conn, self.transaction(conn) as tx:
                tx.execute(
                    """
                    INSERT INTO workflows
                        (workflow_id, task_id, phase, generation, state_json, checksum, archived_at)
                    VALUES (?, ?, ?, ?, ?, ?, ?)
                    ON CONFLICT(workflow_id) DO UPDATE SET
                        task_id = excluded.task_id,
                        phase = excluded.phase,
                        generation = excluded.generation,
                        state_json = excluded.state_json,
                        checksum = excluded.checksum,
                        archived_at = excluded.archived_at
                    """,
                    (
                        record.workflow_id,
                        record.task_id,
                        record.phase.value,
                        record.generation,
                        state_json,
                        record.checksum,
                        record.archived_at,
                    ),
                )
        except sqlite3.Error as exc:
            raise ArchiveError(f"failed to archive workflow {state.workflow_id}: {exc}") from exc
        logger.info(
            "workflow archived",
            extra={
                "workflow_id": record.workflow_id,
                "archived_phase": record.phase.value,
                "archive_path": str(self._path),
            },
        )
        return record

    def load(self, workflow_id: str) -> WorkflowState:
        self._ensure_schema()
        with self.connection() as conn:
            row = conn.execute(
                "SELECT state_json, checksum FROM workflows WHERE workflow_id = ?",
                (workflow_id,),
            ).fetchone()
        if row is None:
            raise ArchiveNotFoundError(f"workflow {workflow_id!r} is not archived")
        state_json = str(row["state_json"])
        expected = str(row["checksum"])
        actual = state_checksum(state_json)
        if actual != expected:
            raise ArchiveCorruptionError(
                f"checksum mismatch for workflow {workflow_id}: stored={expected} actual={actual}"
            )
        try:
            return WorkflowState.from_json(state_json)
        except ValueError as exc:
            raise ArchiveCorruptionError(f"cannot decode workflow {workflow_id}: {exc}") from exc

    def list_workflows(self, *, task_id: str | None = None) -> tuple[ArchivedWorkflow, ...]:
        self._ensure_schema()
        sql = (
            "SELECT workflow_id, task_id, phase, generation, checksum, archived_at FROM workflows"
        )
        params: tuple[str, ...] = ()
        if task_id is not None:
            sql += " WHERE task_id = ?"
            params = (task_id,)
        sql += " ORDER BY archived_at DESC, workflow_id ASC"
        with self.connection() as conn:
            rows = conn.execute(sql, params).fetchall()
        return tuple(
            ArchivedWorkflow(
                workflow_id=str(row["workflow_id"]),
                task_id=str(row["task_id"]),
                phase=WorkflowPhase(str(row["phase"])),
                generation=int(row["generation"]),
                checksum=str(row["checksum"]),
                archived_at=str(row["archived_at"]),
            )
            for row in rows
        )

    def _ensure_schema(self) -> None:
        if not self._migrated:
            self.migrate()


def state_checksum(state_json: str) -> str:
    return hashlib.sha256(state_json.encode("utf-8")).hexdigest()


def _utc_now_iso() -> str:
    return datetime.now(UTC).isoformat(timespec="microseconds").replace("+00:00", "Z")


__all__ = [
    "ArchiveCorruptionError",
    "ArchiveError",
    "ArchiveMigrationError",
    "ArchiveNotFoundError",
    "ArchivedWorkflow",
    "WorkflowArchive",
    "state_checksum",
]
