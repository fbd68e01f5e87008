from __future__ import annotations
import asyncio, logging, weakref
from typing import Awaitable, Callable, List, Optional, TypeVar

from ..core.errors import AlreadyScored, CaseNotFound, CorruptRecord, InvalidStepError, StepNotFound
from ..core.types import ACTION_TYPES, Case, DimensionScore, Step, now_iso
from .kv import KeyValueStore

_LOGGER = logging.getLogger(__name__)

T = TypeVar("T")

class AuditLogStore:
    """Seul écrivain des cas et des étapes.

    Toute modification passe par `mutate_case`, qui sérialise par cas la
    séquence lecture -> modification -> réécriture complète de l'enregistrement.
    """

    def __init__(self, kv: KeyValueStore) -> None:
        self.kv = kv
        # un verrou ne vit que tant qu'une opération sur le cas le référence
        self._locks: weakref.WeakValueDictionary[str, asyncio.Lock] = weakref.WeakValueDictionary()

    def _lock(self, case_name: str) -> asyncio.Lock:
        lock = self._locks.get(case_name)
        if lock is None:
            lock = self._locks[case_name] = asyncio.Lock()
        return lock

    # ---------------- Lecture / écriture brutes ----------------
    async def read_case(self, name: str) -> Optional[Case]:
        record = await self.kv.get(name)
        if record is None:
            return None
        try:
            return Case.from_dict(record)
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            raise CorruptRecord(name, str(e)) from e

    async def require_case(self, name: str) -> Case:
        case = await self.read_case(name)
        if case is None:
            raise CaseNotFound(name)
        return case

    async def write_case(self, case: Case) -> None:
        await self.kv.put(case.name, case.to_dict())

    async def list_cases(self) -> List[Case]:
        cases: List[Case] = []
        for key, record in await self.kv.list():
            try:
                cases.append(Case.from_dict(record))
            except (AttributeError, KeyError, TypeError, ValueError) as e:
                _LOGGER.warning("Cas ignoré (%s): %s", key, e)
        return cases

    async def mutate_case(
        self,
        name: str,
        fn: Callable[[Optional[Case]], Awaitable[T] | T],
        *,
        create: bool = False,
    ) -> T:
        """Applique `fn` au cas courant puis le réécrit, sous verrou du cas.

        Sans `create`, un cas absent lève CaseNotFound. `fn` peut être
        synchrone ou une coroutine ; sa valeur de retour est renvoyée. Si `fn`
        lève, rien n'est écrit ; si le cas n'a pas changé, rien n'est écrit non plus.
        """
        async with self._lock(name):
            case = await self.read_case(name)
            before = None
            if case is None:
                if not create:
                    raise CaseNotFound(name)
                case = Case(name=name)
            else:
                before = case.to_dict()
            result = fn(case)
            if asyncio.iscoroutine(result):
                result = await result
            if case.to_dict() != before:
                await self.write_case(case)
            return result

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
        if not isinstance(step_index, int) or isinstance(step_index, bool) or step_index < 1:
            raise InvalidStepError(f"Index d'étape invalide: {step_index!r} (entier >= 1 attendu)")
        if action_type not in ACTION_TYPES:
            raise InvalidStepError(f"Type d'action inconnu: {action_type} (attendu: {', '.join(ACTION_TYPES)})")

        def apply(case: Case) -> Step:
            previous = case.steps.get(step_index)
            step = Step(
                step_index=step_index,
                description=description,
                action_type=action_type,
                screenshot_ref=screenshot_ref,
                coordinates=dict(coordinates) if coordinates else None,
                expected_outcome=expected_outcome,
                created_at=now_iso(),
            )
            if previous is not None:
                # la progression d'évaluation survit à une nouvelle description
                step.evaluations = previous.evaluations
                step.current_dim_index = previous.current_dim_index
                step.evaluation_token = previous.evaluation_token
                step.token_generation = previous.token_generation
            case.steps[step_index] = step
            return step

        step = await self.mutate_case(case_name, apply, create=True)
        _LOGGER.debug("Étape %s enregistrée pour %s (%s)", step_index, case_name, action_type)
        return step

    async def record_dimension_score(
        self, case_name: str, step_index: int, dimension_id: str, score: float, reason: str
    ) -> None:
        def apply(case: Case) -> None:
            step = case.steps.get(step_index)
            if step is None:
                raise StepNotFound(case_name, step_index)
            if dimension_id in step.evaluations:
                raise AlreadyScored(f"Dimension '{dimension_id}' déjà notée pour l'étape {step_index} du cas {case_name}")
            step.evaluations[dimension_id] = DimensionScore(score=score, reason=reason)

        await self.mutate_case(case_name, apply)

    async def next_step_index(self, case_name: str) -> int:
        case = await self.read_case(case_name)
        if case is None or not case.steps:
            return 1
        return max(case.steps) + 1
