from __future__ import annotations
import logging
from typing import List, Optional, Tuple

from ..core.errors import CorruptRecord
from ..core.types import LogEntry, LogSummary, SubjectSummary
from .kv import KeyValueStore

_LOGGER = logging.getLogger(__name__)

def _parse(key: str, record: dict) -> LogEntry:
    try:
        return LogEntry.from_dict(record)
    except (AttributeError, KeyError, TypeError, ValueError) as e:
        raise CorruptRecord(key, str(e)) from e

class EvaluationLogStore:
    """Un enregistrement immuable par session consommée, clé = session_id."""

    def __init__(self, kv: KeyValueStore) -> None:
        self.kv = kv

    async def save(self, entry: LogEntry) -> str:
        if await self.kv.get(entry.session_id) is not None:
            raise ValueError(f"Entrée de journal déjà écrite pour la session {entry.session_id}")
        await self.kv.put(entry.session_id, entry.to_dict())
        return entry.session_id

    async def load(self, session_id: str) -> Optional[LogEntry]:
        record = await self.kv.get(session_id)
        return None if record is None else _parse(session_id, record)

    async def list_entries(self) -> List[LogEntry]:
        """Toutes les entrées lisibles, de la plus récente à la plus ancienne."""
        entries: List[LogEntry] = []
        for key, record in await self.kv.list():
            try:
                entries.append(_parse(key, record))
            except CorruptRecord as e:
                _LOGGER.warning("Entrée ignorée: %s", e)
        entries.sort(key=lambda e: (e.timestamp, e.attempt_number), reverse=True)
        return entries

    async def count_attempts(self, subject_name: str) -> int:
        return sum(1 for e in await self.list_entries() if e.subject_name == subject_name)

    async def query(self, session_id: str | None = None, limit: int = 10) -> Tuple[List[LogEntry], LogSummary]:
        if session_id:
            entry = await self.load(session_id)
            logs = [entry] if entry else []
            return logs, build_summary(logs)
        everything = await self.list_entries()
        return everything[: max(1, limit)], build_summary(everything)

def build_summary(entries: List[LogEntry]) -> LogSummary:
    """`entries` doit être trié du plus récent au plus ancien (la première occurrence fait foi)."""
    subjects: dict[str, SubjectSummary] = {}
    for e in entries:
        s = subjects.get(e.subject_name)
        if s is None:
            s = subjects[e.subject_name] = SubjectSummary(final_passed=e.passed, final_score=e.average_score)
        s.attempts += 1
    passed = sum(1 for e in entries if e.passed)
    return LogSummary(
        total_evaluations=len(entries),
        passed_count=passed,
        failed_count=len(entries) - passed,
        subjects=subjects,
    )
