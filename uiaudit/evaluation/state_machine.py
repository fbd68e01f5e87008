"""Machine à états d'évaluation d'une étape.

États : 0..N (valeur de `current_dim_index`, N = taille du registre).
Transition unique : soumission avec le jeton courant, strictement n -> n+1.
État initial 0 à l'enregistrement de l'étape ; état final N (évaluations
figées, jeton effacé).
"""
from __future__ import annotations
import logging
from dataclasses import dataclass
from typing import Tuple

from ..core.errors import AlreadyComplete, AlreadyScored, InvalidToken, StepNotFound
from ..core.types import AdvanceResult, Case, DimensionScore, PendingState, Step
from ..memory.audit_log import AuditLogStore
from .checklist import ChecklistRegistry
from .tokens import TokenIssuer

_LOGGER = logging.getLogger(__name__)

AUTO_SCORE_REASON = "No expected outcome recorded for this step; scored automatically."

@dataclass(frozen=True)
class ObservationPolicy:
    """Dimensions notées d'office (score maximal) pour une étape sans résultat attendu."""
    auto_score_ids: Tuple[str, ...] = ()
    reason: str = AUTO_SCORE_REASON

    def applies(self, step: Step, dimension_id: str) -> bool:
        return not step.expected_outcome and dimension_id in self.auto_score_ids

class StepStateMachine:
    def __init__(
        self,
        store: AuditLogStore,
        registry: ChecklistRegistry,
        tokens: TokenIssuer | None = None,
        policy: ObservationPolicy | None = None,
    ) -> None:
        self.store = store
        self.registry = registry
        self.tokens = tokens or TokenIssuer()
        self.policy = policy or ObservationPolicy()

    # ---------------- Helpers (appelés sous le verrou du cas) ----------------
    @staticmethod
    def _step(case: Case, step_index: int) -> Step:
        step = case.steps.get(step_index)
        if step is None:
            raise StepNotFound(case.name, step_index)
        return step

    def _is_complete(self, step: Step) -> bool:
        return step.current_dim_index >= len(self.registry)

    def _issue(self, case: Case, step: Step) -> None:
        step.token_generation += 1
        step.evaluation_token = self.tokens.issue(case.name, step.step_index, step.token_generation)

    def _record(self, step: Step, dimension_id: str, score: float, reason: str) -> None:
        if dimension_id in step.evaluations:
            raise AlreadyScored(f"Dimension '{dimension_id}' déjà notée pour l'étape {step.step_index}")
        step.evaluations[dimension_id] = DimensionScore(score=score, reason=reason)
        step.current_dim_index += 1

    def _auto_advance(self, case: Case, step: Step) -> None:
        ids = self.registry.ids()
        while not self._is_complete(step) and self.policy.applies(step, ids[step.current_dim_index]):
            dim_id = ids[step.current_dim_index]
            self._record(step, dim_id, self.registry.score_max, self.policy.reason)
            step.evaluation_token = None
            _LOGGER.info("[%s] étape %s: %s notée automatiquement", case.name, step.step_index, dim_id)

    def _pending(self, case: Case, step: Step) -> PendingState:
        self._auto_advance(case, step)
        total = len(self.registry)
        if self._is_complete(step):
            step.evaluation_token = None
            return PendingState(completed=True, step_index=step.step_index, position=total, total=total)

        stale = step.evaluation_token and not self.tokens.is_bound(
            step.evaluation_token, case_name=case.name, step_index=step.step_index, generation=step.token_generation
        )
        if not step.evaluation_token or stale:
            self._issue(case, step)

        dim = self.registry.list_dimensions()[step.current_dim_index]
        return PendingState(
            completed=False,
            step_index=step.step_index,
            dimension_id=dim.id,
            dimension_name=dim.name,
            prompt_text=dim.prompt_text,
            scoring_guide=dim.scoring_guide,
            token=step.evaluation_token,
            position=step.current_dim_index + 1,
            total=total,
        )

    # ---------------- API ----------------
    async def get_pending_state(self, case_name: str, step_index: int) -> PendingState:
        """Dimension courante + jeton ; idempotent tant qu'aucune soumission n'a eu lieu."""
        return await self.store.mutate_case(case_name, lambda case: self._pending(case, self._step(case, step_index)))

    async def submit_and_advance(
        self, case_name: str, step_index: int, token: str, score: float, reason: str
    ) -> AdvanceResult:
        def apply(case: Case) -> str:
            step = self._step(case, step_index)
            if self._is_complete(step):
                raise AlreadyComplete(case_name, step_index)
            if not self.tokens.matches(
                step.evaluation_token, token,
                case_name=case_name, step_index=step_index, generation=step.token_generation,
            ):
                raise InvalidToken(
                    "Jeton invalide. Redemander l'état courant ; ne pas deviner les jetons ni soumettre en parallèle."
                )
            self.registry.validate_score(score)
            dim_id = self.registry.ids()[step.current_dim_index]
            self._record(step, dim_id, score, reason)
            # l'ancien jeton ne peut plus être rejoué
            if self._is_complete(step):
                step.evaluation_token = None
            else:
                self._issue(case, step)
            return dim_id

        dim_id = await self.store.mutate_case(case_name, apply)
        _LOGGER.info("[%s] étape %s: %s = %s", case_name, step_index, dim_id, score)
        next_state = await self.get_pending_state(case_name, step_index)
        return AdvanceResult(completed_dimension_id=dim_id, score=score, next_state=next_state)
