"""Façade : assemble registres, stockages, machine à états, rapports et sessions à partir des Settings.

Les transports (CLI, API HTTP) n'appellent que cette classe.
"""
from __future__ import annotations
import time
from typing import Callable, Iterable, List, Optional, Sequence, Tuple

from .config import Settings
from .core.errors import IncompleteSubmission
from .core.types import AdvanceResult, ChecklistDimension, EvaluationSession, LogEntry, LogSummary, PendingState, ScoreEntry, Step
from .device.base import DeviceDriver
from .device.recorder import ActionRecorder
from .evaluation.checklist import registries_from_settings
from .evaluation.report import CaseStatus, ReportAggregator
from .evaluation.sessions import SessionEvaluator, SessionStore
from .evaluation.state_machine import ObservationPolicy, StepStateMachine
from .evaluation.tokens import TokenIssuer
from .memory.audit_log import AuditLogStore
from .memory.evaluation_log import EvaluationLogStore
from .memory.kv import KeyValueStore, open_kv

class AuditService:
    def __init__(
        self,
        settings: Settings,
        *,
        cases_kv: KeyValueStore | None = None,
        evaluations_kv: KeyValueStore | None = None,
        session_store: SessionStore | None = None,
        driver: DeviceDriver | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.settings = settings
        ev = settings.evaluation
        self.registries = registries_from_settings(settings)
        self.audit_log = AuditLogStore(cases_kv or open_kv(settings, "cases"))
        self.evaluation_log = EvaluationLogStore(evaluations_kv or open_kv(settings, "evaluations"))
        self.tokens = TokenIssuer(secret=settings.security.token_secret, nbytes=settings.security.token_bytes)
        self.policy = ObservationPolicy(auto_score_ids=tuple(ev.auto_score_without_expectation))
        self.state_machine = StepStateMachine(self.audit_log, self.registries["step"], self.tokens, self.policy)
        self.reports = ReportAggregator(self.audit_log, self.registries["step"])
        self.evaluator = SessionEvaluator(
            {"screen": self.registries["screen"], "style": self.registries["style"]},
            self.evaluation_log,
            session_store,
            ttl_seconds=ev.session_ttl_seconds,
            clock=clock,
        )
        self.recorder = ActionRecorder(driver, self.audit_log) if driver is not None else None

    # ---------------- Étapes ----------------
    async def register_step(
        self,
        case_name: str,
        step_index: int,
        description: str,
        action_type: str,
        screenshot_ref: str,
        coordinates: Optional[dict] = None,
        expected_outcome: Optional[str] = None,
    ) -> Step:
        return await self.audit_log.register_step(
            case_name, step_index, description, action_type, screenshot_ref, coordinates, expected_outcome
        )

    async def get_pending_state(self, case_name: str, step_index: int) -> PendingState:
        return await self.state_machine.get_pending_state(case_name, step_index)

    async def submit_and_advance(self, case_name: str, step_index: int, token: str, score: float, reason: str) -> AdvanceResult:
        return await self.state_machine.submit_and_advance(case_name, step_index, token, score, reason)

    async def evaluate(
        self,
        case_name: str,
        step_index: int,
        token: str | None = None,
        score: float | None = None,
        reason: str | None = None,
    ) -> PendingState | AdvanceResult:
        """Appel unifié : sans jeton/score/raison -> état courant ; avec les trois -> soumission."""
        given = sum(v is not None for v in (token, score, reason))
        if given == 0:
            return await self.get_pending_state(case_name, step_index)
        if given < 3:
            raise IncompleteSubmission("evaluationToken, score et reason doivent être fournis ensemble, ou omis ensemble")
        return await self.submit_and_advance(case_name, step_index, token, score, reason)

    # ---------------- Rapports ----------------
    async def build_report(self, case_names: Sequence[str] | None = None) -> str:
        return await self.reports.build_report(case_names)

    async def case_statuses(self, case_names: Sequence[str] | None = None) -> List[CaseStatus]:
        return await self.reports.statuses(case_names)

    # ---------------- Sessions ----------------
    async def create_session(self, type: str, subject_name: str | None = None) -> EvaluationSession:
        return await self.evaluator.create_session(type, subject_name)

    async def create_style_session(self, screen_names: Sequence[str]) -> EvaluationSession:
        return await self.evaluator.create_style_session(screen_names)

    async def submit_session(self, session_id: str, scores: Iterable[ScoreEntry | dict]) -> LogEntry:
        return await self.evaluator.submit_session(session_id, scores)

    async def query_logs(self, session_id: str | None = None, limit: int = 10) -> Tuple[List[LogEntry], LogSummary]:
        return await self.evaluation_log.query(session_id, limit)

    # ---------------- Critères ----------------
    def get_criteria(self, dimension_id: str | None = None) -> List[ChecklistDimension]:
        registry = self.registries["step"]
        if dimension_id is None:
            return list(registry.list_dimensions())
        return [registry.find(dimension_id)]
