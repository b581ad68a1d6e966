"""Rule execution log persisted in SQLite."""

import asyncio
import json
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional

import aiosqlite

from .errors import FrameworkError


@dataclass
class ExecutionRecord:
    """One stored rule run."""
    id: int
    rule_id: str
    triggered_at: float
    conditions_met: bool
    skipped_reason: Optional[str]
    duration_ms: float
    action_results: list[dict[str, Any]]

    @property
    def failed_action_ids(self) -> list[str]:
        return [r["actionId"] for r in self.action_results if r.get("status") == "FAILED"]

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "ruleId": self.rule_id,
            "triggeredAt": self.triggered_at,
            "conditionsMet": self.conditions_met,
            "skippedReason": self.skipped_reason,
            "durationMs": self.duration_ms,
            "actionResults": self.action_results,
        }


class ExecutionLogStore:
    """Append-only log of rule runs, for auditing partial failures."""

    def __init__(self, db_path: str = "./data/executions.db"):
        self.db_path = Path(db_path)
        self._db: Optional[aiosqlite.Connection] = None
        self._lock = asyncio.Lock()

    async def initialize(self) -> None:
        """Open the database and create tables."""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._db = await aiosqlite.connect(str(self.db_path))
        self._db.row_factory = aiosqlite.Row

        await self._db.executescript("""
            CREATE TABLE IF NOT EXISTS rule_executions (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                rule_id TEXT NOT NULL,
                triggered_at REAL NOT NULL,
                conditions_met INTEGER NOT NULL,
                skipped_reason TEXT,
                duration_ms REAL DEFAULT 0,
                results_json TEXT NOT NULL
            );

            CREATE INDEX IF NOT EXISTS idx_rule_executions_rule
                ON rule_executions(rule_id, triggered_at);
        """)
        await self._db.commit()

    async def close(self) -> None:
        """Close the database connection."""
        if self._db:
            await self._db.close()
            self._db = None

    def _require_db(self) -> aiosqlite.Connection:
        if self._db is None:
            raise FrameworkError("Execution log store is not initialized", retryable=False)
        return self._db

    async def record(self, result) -> int:
        """Store a RuleExecutionResult; returns the new row id."""
        db = self._require_db()
        async with self._lock:
            cursor = await db.execute(
                """
                INSERT INTO rule_executions
                    (rule_id, triggered_at, conditions_met, skipped_reason,
                     duration_ms, results_json)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (
                    result.rule_id,
                    time.time(),
                    int(result.conditions_met),
                    result.skipped_reason,
                    result.duration_ms,
                    json.dumps([r.to_dict() for r in result.action_results], default=str),
                ),
            )
            await db.commit()
            return cursor.lastrowid

    async def list_for_rule(self, rule_id: str, limit: int = 50) -> list[ExecutionRecord]:
        """Most recent runs of a rule, newest first."""
        db = self._require_db()
        async with db.execute(
            """
            SELECT * FROM rule_executions
            WHERE rule_id = ?
            ORDER BY triggered_at DESC, id DESC
            LIMIT ?
            """,
            (rule_id, limit),
        ) as cursor:
            rows = await cursor.fetchall()

        return [
            ExecutionRecord(
                id=row["id"],
                rule_id=row["rule_id"],
                triggered_at=row["triggered_at"],
                conditions_met=bool(row["conditions_met"]),
                skipped_reason=row["skipped_reason"],
                duration_ms=row["duration_ms"],
                action_results=json.loads(row["results_json"]),
            )
            for row in rows
        ]
