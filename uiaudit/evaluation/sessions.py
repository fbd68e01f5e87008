"""Mode ad hoc : sessions de notation à usage unique (écran ou cohérence de style)."""
from __future__ import annotations
import asyncio, logging, time, uuid
from typing import Callable, Dict, Iterable, List, Mapping, Optional, Sequence

from ..core.errors import SessionNotFound
from ..core.types import EVALUATION_TYPES, EvaluationSession, LogEntry, ScoreEntry
from ..memory.evaluation_log import EvaluationLogStore
from .checklist import ChecklistRegistry
from .scorer import check_coverage, evaluate_scores, index_entries

_LOGGER = logging.getLogger(__name__)

class SessionStore:
    """Stockage volatil des sessions en cours."""

    def create(self, session: EvaluationSession) -> None:  # pragma: no cover - interface
        raise NotImplementedError

    def get(self, session_id: str) -> Optional[EvaluationSession]:  # pragma: no cover - interface
        raise NotImplementedError

    def delete(self, session_id: str) -> bool:  # pragma: no cover - interface
        raise NotImplementedError

    def all(self) -> List[EvaluationSession]:  # pragma: no cover - interface
        raise NotImplementedError

    def pop(self, session_id: str) -> Optional[EvaluationSession]:
        session = self.get(session_id)
        if session is not None:
            self.delete(session_id)
        return session

class InMemorySessionStore(SessionStore):
    def __init__(self) -> None:
        self._sessions: Dict[str, EvaluationSession] = {}

    def create(self, session: EvaluationSession) -> None:
        self._sessions[session.session_id] = session

    def get(self, session_id: str) -> Optional[EvaluationSession]:
        return self._sessions.get(session_id)

    def delete(self, session_id: str) -> bool:
        return self._sessions.pop(session_id, None) is not None

    def all(self) -> List[EvaluationSession]:
        return list(self._sessions.values())

    def __len__(self) -> int:
        return len(self._sessions)

def _as_entry(raw) -> ScoreEntry:
    return raw if isinstance(raw, ScoreEntry) else ScoreEntry.from_dict(raw)

class SessionEvaluator:
    def __init__(
        self,
        registries: Mapping[str, ChecklistRegistry],
        log_store: EvaluationLogStore,
        session_store: SessionStore | None = None,
        *,
        ttl_seconds: float = 0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.registries = registries
        self.log_store = log_store
        self.sessions = session_store or InMemorySessionStore()
        self.ttl_seconds = ttl_seconds
        self.clock = clock
        # compteur de tentatives par sujet : lecture + écriture sans entrelacement
        self._attempt_lock = asyncio.Lock()

    def _expired(self, session: EvaluationSession) -> bool:
        return bool(self.ttl_seconds) and self.clock() - session.created_monotonic > self.ttl_seconds

    def purge_expired(self) -> int:
        expired = [s.session_id for s in self.sessions.all() if self._expired(s)]
        for sid in expired:
            self.sessions.delete(sid)
        return len(expired)

    def _live(self, session_id: str) -> EvaluationSession:
        session = self.sessions.get(session_id)
        if session is None:
            raise SessionNotFound(session_id)
        if self._expired(session):
            self.sessions.delete(session_id)
            raise SessionNotFound(session_id)
        return session

    async def create_session(self, type: str, subject_name: str | None = None, *, screens_compared: Sequence[str] = ()) -> EvaluationSession:
        if type not in EVALUATION_TYPES:
            raise ValueError(f"Type d'évaluation inconnu: {type} (attendu: {', '.join(EVALUATION_TYPES)})")
        registry = self.registries[type]
        # instantané : une modification ultérieure du registre ne touche pas cette session
        session = EvaluationSession(
            session_id=str(uuid.uuid4()),
            type=type,
            subject_name=subject_name or "unnamed",
            checklist=registry.snapshot(),
            passing_score=registry.passing_score,
            screens_compared=list(screens_compared),
            score_min=registry.score_min,
            score_max=registry.score_max,
            created_monotonic=self.clock(),
        )
        self.sessions.create(session)
        _LOGGER.info("Session %s créée (%s, %s)", session.session_id, type, session.subject_name)
        return session

    async def create_style_session(self, screen_names: Sequence[str]) -> EvaluationSession:
        names = [n for n in screen_names if n]
        if len(names) < 2:
            raise ValueError("Au moins deux écrans sont nécessaires pour comparer leur style")
        return await self.create_session("style", " vs ".join(names), screens_compared=names)

    async def submit_session(self, session_id: str, entries: Iterable[ScoreEntry | dict]) -> LogEntry:
        session = self._live(session_id)
        by_id = index_entries(_as_entry(e) for e in entries)
        # soumission partielle refusée : la session reste ouverte
        check_coverage(session, by_id)
        # consommée avant tout point de suspension : une seconde soumission échoue
        self.sessions.delete(session_id)

        async with self._attempt_lock:
            attempt = await self.log_store.count_attempts(session.subject_name) + 1
            entry = evaluate_scores(session, by_id, attempt)
            await self.log_store.save(entry)
        _LOGGER.info(
            "Session %s évaluée: %s (moyenne %s, tentative %s)",
            session_id, "OK" if entry.passed else "ÉCHEC", entry.average_score, attempt,
        )
        return entry
