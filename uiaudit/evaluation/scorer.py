"""Notation d'une soumission groupée : réussite par item et résultat global."""
from __future__ import annotations
from typing import Dict, Iterable, List

from ..core.errors import MissingScores, ScoreOutOfRange
from ..core.types import EvaluationSession, ItemResult, LogEntry, ScoreEntry, now_iso

def index_entries(entries: Iterable[ScoreEntry]) -> Dict[str, ScoreEntry]:
    # première occurrence retenue pour un id donné
    out: Dict[str, ScoreEntry] = {}
    for e in entries:
        out.setdefault(e.id, e)
    return out

def check_coverage(session: EvaluationSession, by_id: Dict[str, ScoreEntry]) -> None:
    expected = [item.id for item in session.checklist]
    missing = [i for i in expected if i not in by_id]
    if missing:
        raise MissingScores(missing, expected)
    for i in expected:
        score = by_id[i].score
        if isinstance(score, bool) or not isinstance(score, (int, float)):
            raise ScoreOutOfRange(f"Score non numérique pour '{i}': {score!r}")
        if not (session.score_min <= score <= session.score_max):
            raise ScoreOutOfRange(f"Score {score} hors échelle [{session.score_min}, {session.score_max}] pour '{i}'")

def evaluate_scores(session: EvaluationSession, by_id: Dict[str, ScoreEntry], attempt_number: int) -> LogEntry:
    results: List[ItemResult] = []
    for item in session.checklist:
        entry = by_id[item.id]
        results.append(ItemResult(
            id=item.id,
            name=item.name,
            score=entry.score,
            passed=entry.score >= session.passing_score,
            reason=entry.reason,
            suggestion=entry.suggestion,
        ))
    average = round(sum(r.score for r in results) / len(results), 2) if results else 0.0
    return LogEntry(
        session_id=session.session_id,
        subject_name=session.subject_name,
        type=session.type,
        attempt_number=attempt_number,
        passed=all(r.passed for r in results),
        average_score=average,
        results=tuple(results),
        timestamp=now_iso(),
    )
