from __future__ import annotations
import asyncio, logging, weakref
from dataclasses import dataclass
from typing import Optional

from ..core.errors import InvalidStepError
from ..core.types import Step
from ..memory.audit_log import AuditLogStore
from .base import ActionResult, DeviceDriver, Screenshot

_LOGGER = logging.getLogger(__name__)

@dataclass
class RecordedAction:
    success: bool
    step: Optional[Step] = None
    screenshot: Optional[Screenshot] = None
    error: Optional[str] = None

def _check_ratio(**values: float) -> None:
    for name, v in values.items():
        if isinstance(v, bool) or not isinstance(v, (int, float)) or not (0 <= v <= 1):
            raise InvalidStepError(f"{name}={v!r}: ratio entre 0 et 1 attendu")

class ActionRecorder:
    """Exécute une action appareil puis enregistre l'étape correspondante (capture comprise).

    Une action en échec n'enregistre aucune étape.
    """

    def __init__(self, driver: DeviceDriver, store: AuditLogStore) -> None:
        self.driver = driver
        self.store = store
        # un verrou ne vit que tant qu'une opération sur le cas le référence
        self._locks: weakref.WeakValueDictionary[str, asyncio.Lock] = weakref.WeakValueDictionary()

    async def launch_app(self, app_id: str) -> ActionResult:
        return await self.driver.launch_app(app_id)

    async def _record(
        self,
        case_name: str,
        description: str,
        action_type: str,
        *,
        coordinates: Optional[dict],
        step_index: Optional[int],
        expected_outcome: Optional[str],
    ) -> RecordedAction:
        shot = await self.driver.screenshot()
        lock = self._locks.get(case_name)
        if lock is None:
            lock = self._locks[case_name] = asyncio.Lock()
        async with lock:
            index = step_index if step_index is not None else await self.store.next_step_index(case_name)
            step = await self.store.register_step(
                case_name, index, description, action_type, shot.reference,
                coordinates=coordinates, expected_outcome=expected_outcome,
            )
        _LOGGER.info("[%s] étape %s enregistrée (%s -> %s)", case_name, index, action_type, shot.reference)
        return RecordedAction(success=True, step=step, screenshot=shot)

    async def screenshot(
        self, case_name: str, description: str, *, step_index: Optional[int] = None, expected_outcome: Optional[str] = None
    ) -> RecordedAction:
        return await self._record(
            case_name, description, "screenshot",
            coordinates=None, step_index=step_index, expected_outcome=expected_outcome,
        )

    async def tap(
        self, case_name: str, x: float, y: float, description: str, *,
        step_index: Optional[int] = None, expected_outcome: Optional[str] = None,
    ) -> RecordedAction:
        _check_ratio(x=x, y=y)
        res = await self.driver.tap(x, y)
        if not res.success:
            return RecordedAction(success=False, error=res.error)
        return await self._record(
            case_name, description, "tap",
            coordinates={"x": x, "y": y}, step_index=step_index, expected_outcome=expected_outcome,
        )

    async def swipe(
        self, case_name: str, x0: float, y0: float, x1: float, y1: float, description: str, *,
        step_index: Optional[int] = None, expected_outcome: Optional[str] = None,
    ) -> RecordedAction:
        _check_ratio(x0=x0, y0=y0, x1=x1, y1=y1)
        res = await self.driver.swipe(x0, y0, x1, y1)
        if not res.success:
            return RecordedAction(success=False, error=res.error)
        return await self._record(
            case_name, description, "swipe",
            coordinates={"x0": x0, "y0": y0, "x1": x1, "y1": y1},
            step_index=step_index, expected_outcome=expected_outcome,
        )
