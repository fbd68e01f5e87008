from __future__ import annotations
from typing import List, Optional, Tuple

from .base import ActionResult, DeviceDriver, Screenshot

# PNG 1x1 minimal
_PNG_1PX = (
    b"\x89PNG\r\n\x1a\n\x00\x00\x00\rIHDR\x00\x00\x00\x01\x00\x00\x00\x01\x08\x06\x00\x00\x00\x1f\x15\xc4\x89"
    b"\x00\x00\x00\rIDATx\x9cc\xf8\x0f\x00\x00\x01\x01\x00\x05\x18\xd8N\x00\x00\x00\x00IEND\xaeB`\x82"
)

class DummyDriver(DeviceDriver):
    """
    Pilote déterministe pour tests/démo.
    Chaque capture renvoie `dummy://shot/<n>` ; `fail_on` force l'échec d'une action ("tap", "swipe", "launch").
    """
    def __init__(self, *, width: int = 1170, height: int = 2532, fail_on: Optional[str] = None) -> None:
        self.width = width
        self.height = height
        self.fail_on = fail_on
        self.calls: List[Tuple] = []
        self._shots = 0

    def _result(self, kind: str) -> ActionResult:
        if self.fail_on == kind:
            return ActionResult(success=False, error=f"{kind} simulé en échec")
        return ActionResult(success=True)

    async def launch_app(self, app_id: str) -> ActionResult:
        self.calls.append(("launch", app_id))
        return self._result("launch")

    async def screenshot(self) -> Screenshot:
        self._shots += 1
        self.calls.append(("screenshot",))
        return Screenshot(data=_PNG_1PX, width=self.width, height=self.height, reference=f"dummy://shot/{self._shots}")

    async def tap(self, x: float, y: float) -> ActionResult:
        self.calls.append(("tap", x, y))
        return self._result("tap")

    async def swipe(self, x0: float, y0: float, x1: float, y1: float) -> ActionResult:
        self.calls.append(("swipe", x0, y0, x1, y1))
        return self._result("swipe")
