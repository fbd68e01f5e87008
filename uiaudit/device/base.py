from __future__ import annotations
from dataclasses import dataclass
from typing import Optional

class DeviceError(RuntimeError):
    """Échec côté appareil (capture impossible, outil absent...)."""

@dataclass
class ActionResult:
    success: bool
    error: Optional[str] = None

@dataclass
class Screenshot:
    data: bytes
    width: int
    height: int
    reference: str  # poignée opaque conservée sur l'étape

class DeviceDriver:
    """Pilote d'appareil externe. Coordonnées en ratios 0-1 ; la conversion en points lui appartient."""

    async def launch_app(self, app_id: str) -> ActionResult:  # pragma: no cover - interface
        raise NotImplementedError

    async def screenshot(self) -> Screenshot:  # pragma: no cover - interface
        raise NotImplementedError

    async def tap(self, x: float, y: float) -> ActionResult:  # pragma: no cover - interface
        raise NotImplementedError

    async def swipe(self, x0: float, y0: float, x1: float, y1: float) -> ActionResult:  # pragma: no cover - interface
        raise NotImplementedError
