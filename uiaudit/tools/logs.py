from __future__ import annotations
from pathlib import Path
from ..config import Settings
from ..core.types import now_iso

LOG_FILENAME = "uiaudit.log"

def _one_line(text: str) -> str:
    return " ".join(str(text).split())

def log_event(settings: Settings, message: str, *, source: str = "cli") -> Path:
    """Journal d'opérations : `<log_dir>/uiaudit.log`, une ligne `ts | source | message` par appel."""
    path = Path(settings.general.log_dir) / LOG_FILENAME
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("a", encoding="utf-8") as f:
        f.write(f"{now_iso()} | {source} | {_one_line(message)}\n")
    return path
