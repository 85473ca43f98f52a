"""Deduplication and fire-and-forget persistence of pipeline-created logs.

Enriched food/exercise entries are compared against the day's log snapshot
taken at the start of the turn. Entries that are new get saved on background
tasks (with an embedding so later similarity searches find them); the turn
does not wait for them. A PersistenceReport collects what happened to each
entry and is logged once every save has finished.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable

from app.core.embeddings import embed_text_async
from app.core.logging import get_logger, log_with_context
from app.core.schemas_conversation import (
    ExerciseLogEntry,
    FoodLogEntry,
    LogEntry,
    LogKind,
    PersistOutcome,
)
from app.db.daily_logs import save_log

logger = get_logger(__name__)

# Strong references so pending saves aren't garbage collected mid-flight
_BACKGROUND_TASKS: set[asyncio.Task] = set()

DedupKey = tuple[str, str, str]

EMBED_TEXT_BUILDERS: dict[LogKind, Callable[[Any], str]] = {
    LogKind.FOOD: lambda e: _join(
        e.name, " (", e.meal_type, "): ", e.description, f", {e.calories:g} kcal"
    ),
    LogKind.EXERCISE: lambda e: _join(
        e.name, " (", e.type, ", ", e.intensity, "): ", e.description,
        f", {e.duration:g} min, {e.calories_burned:g} kcal burned",
    ),
}


def _join(*parts: Any) -> str:
    return "".join(str(p) for p in parts if p)


def dedup_key(entry: LogEntry) -> DedupKey:
    """(kind, name, meal_type|type), trimmed and lowercased."""
    discriminant = entry.meal_type if isinstance(entry, FoodLogEntry) else entry.type
    return (
        entry.kind.value,
        (entry.name or "").strip().lower(),
        (discriminant or "").strip().lower(),
    )


def find_duplicates(
    entries: Iterable[LogEntry], snapshot: Iterable[LogEntry]
) -> tuple[list[LogEntry], list[LogEntry]]:
    """
    Split entries into (new, duplicate) against a snapshot of existing logs.

    Matching is exact on the dedup key; near-identical names are not merged.
    """
    existing = {dedup_key(log) for log in snapshot}
    new, duplicates = [], []
    for entry in entries:
        (duplicates if dedup_key(entry) in existing else new).append(entry)
    return new, duplicates


@dataclass
class PersistenceReport:
    """What happened to each enriched log in one turn."""

    turn_id: str | None = None
    outcomes: list[PersistOutcome] = field(default_factory=list)
    scheduled: list[LogEntry] = field(default_factory=list)
    tasks: list[asyncio.Task] = field(default_factory=list)

    @property
    def scheduled_food(self) -> list[FoodLogEntry]:
        return [e for e in self.scheduled if isinstance(e, FoodLogEntry)]

    @property
    def scheduled_exercise(self) -> list[ExerciseLogEntry]:
        return [e for e in self.scheduled if isinstance(e, ExerciseLogEntry)]

    def count(self, status: str) -> int:
        return sum(1 for o in self.outcomes if o.status == status)

    async def wait(self) -> list[PersistOutcome]:
        """Wait for every scheduled save. The pipeline itself never calls this."""
        if self.tasks:
            await asyncio.gather(*self.tasks, return_exceptions=True)
        return self.outcomes

    def _log_if_complete(self, _task: asyncio.Task | None = None) -> None:
        if any(not t.done() for t in self.tasks):
            return
        log_with_context(
            logger,
            logging.INFO,
            f"Agentic persistence finished: {self.count('saved')} saved, "
            f"{self.count('duplicate')} duplicate, {self.count('error')} failed",
            turn_id=self.turn_id,
            stage="persist_logs",
            outcomes=[
                f"{o.kind.value}:{o.name}:{o.status}" + (f"({o.detail})" if o.detail else "")
                for o in self.outcomes
            ],
        )


def build_log_record(entry: LogEntry, embedding: list[float] | None) -> dict[str, Any]:
    """Row dict for an insert, with the embedding column when available."""
    record = entry.model_dump(mode="json", exclude_none=True, exclude={"id"})
    if embedding is not None:
        record["embedding"] = embedding
    return record


async def _save_entry(entry: LogEntry, report: PersistenceReport) -> None:
    try:
        embedding = await embed_text_async(EMBED_TEXT_BUILDERS[entry.kind](entry))
        await save_log(entry.kind, build_log_record(entry, embedding))
        report.outcomes.append(PersistOutcome(kind=entry.kind, name=entry.name, status="saved"))
    except asyncio.CancelledError:
        report.outcomes.append(
            PersistOutcome(kind=entry.kind, name=entry.name, status="error", detail="cancelled")
        )
        raise
    except Exception as e:
        logger.error(
            f"Failed to persist agentic {entry.kind.value} log '{entry.name}': {e}",
            extra={"turn_id": report.turn_id},
        )
        report.outcomes.append(
            PersistOutcome(kind=entry.kind, name=entry.name, status="error", detail=str(e))
        )


def schedule_log_saves(
    entries: list[LogEntry],
    snapshot_food: list[FoodLogEntry],
    snapshot_exercise: list[ExerciseLogEntry],
    turn_id: str | None = None,
) -> PersistenceReport:
    """
    Deduplicate enriched entries and start background saves for the new ones.

    Must be called from a running event loop. Returns immediately; the
    report's ``tasks`` complete on their own.
    """
    report = PersistenceReport(turn_id=turn_id)
    new, duplicates = find_duplicates(entries, [*snapshot_food, *snapshot_exercise])

    for entry in duplicates:
        logger.info(
            f"Skipping duplicate {entry.kind.value} log '{entry.name}'",
            extra={"turn_id": turn_id},
        )
        report.outcomes.append(
            PersistOutcome(
                kind=entry.kind,
                name=entry.name,
                status="duplicate",
                detail="matches an existing log for the target date",
            )
        )

    for entry in new:
        task = asyncio.create_task(_save_entry(entry, report))
        _BACKGROUND_TASKS.add(task)
        task.add_done_callback(_BACKGROUND_TASKS.discard)
        task.add_done_callback(report._log_if_complete)
        report.scheduled.append(entry)
        report.tasks.append(task)

    if not report.tasks:
        report._log_if_complete()

    return report
