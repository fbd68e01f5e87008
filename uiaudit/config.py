from __future__ import annotations
from dataclasses import dataclass, field, fields
from pathlib import Path
import tomllib, os

PROFILES = ["standard", "legacy"]
STORAGE_BACKENDS = ["files", "sqlite", "memory"]

@dataclass
class General:
    profile: str = "standard"
    data_dir: str = "data"
    log_dir: str = "data/logs"

@dataclass
class Evaluation:
    passing_score: float = 8
    score_min: float = 0
    score_max: float = 10
    step_dimensions: list[str] = field(default_factory=lambda: ["overlap", "layout", "info_clarity", "style", "action_result"])
    screen_checklist: list[str] = field(default_factory=lambda: ["overlap", "layout", "info_clarity", "ambiguity"])
    style_checklist: list[str] = field(default_factory=lambda: ["color_consistency", "component_consistency", "typography_consistency"])
    # dimensions notées automatiquement (score_max) quand l'étape n'a pas de résultat attendu
    auto_score_without_expectation: list[str] = field(default_factory=list)
    session_ttl_seconds: float = 0  # 0 = pas d'expiration
    # rubriques supplémentaires déclarées en [[evaluation.dimensions]]
    dimensions: list[dict] = field(default_factory=list)

@dataclass
class Security:
    token_secret: str = ""
    token_bytes: int = 8

@dataclass
class Storage:
    backend: str = "files"
    cases_dir: str = "data/cases"
    evaluations_dir: str = "data/evaluations"
    db_path: str = "data/audit.db"

@dataclass
class Settings:
    general: General
    evaluation: Evaluation
    security: Security
    storage: Storage

def _load_toml_if_exists(path: Path) -> dict:
    if path.exists():
        with path.open("rb") as f:
            return tomllib.load(f)
    return {}

def _first_toml(cfg_dir: Path, name: str) -> dict:
    # config/<name>.toml, sinon config/profiles/<name>.toml
    return _load_toml_if_exists(cfg_dir / f"{name}.toml") or _load_toml_if_exists(cfg_dir / "profiles" / f"{name}.toml")

def _read_profile_toml(config_path: Path, profile: str) -> dict:
    """defaults.toml surchargé section par section par <profile>.toml (fusion superficielle)."""
    cfg_dir = config_path if config_path.is_dir() else config_path.parent
    merged = _first_toml(cfg_dir, "defaults")
    for section, values in _first_toml(cfg_dir, profile).items():
        if isinstance(values, dict) and isinstance(merged.get(section), dict):
            merged[section].update(values)
        else:
            merged[section] = values
    return merged

def _filter_for_dataclass(cls, data: dict | None) -> dict:
    """Ne garde que les clés connues du dataclass (évite TypeError sur clés en trop)."""
    allowed = {f.name for f in fields(cls)}
    return {k: v for k, v in (data or {}).items() if k in allowed}

def load_settings(config: str | None, profile: str, overrides: dict | None = None) -> Settings:
    if profile not in PROFILES:
        raise ValueError(f"Profil inconnu: {profile} (attendu: {', '.join(PROFILES)})")
    config_path = Path(config) if config else Path("config")
    raw = _read_profile_toml(config_path, profile)

    # Secret des jetons via env prioritaire
    if "security" not in raw:
        raw["security"] = {}
    env_secret = os.environ.get("UIAUDIT_TOKEN_SECRET")
    if env_secret:
        raw["security"]["token_secret"] = env_secret

    g = General(**_filter_for_dataclass(General, raw.get("general")))
    g.profile = profile
    ev = Evaluation(**_filter_for_dataclass(Evaluation, raw.get("evaluation")))
    sec = Security(**_filter_for_dataclass(Security, raw.get("security")))
    st = Storage(**_filter_for_dataclass(Storage, raw.get("storage")))
    if st.backend not in STORAGE_BACKENDS:
        raise ValueError(f"Backend de stockage inconnu: {st.backend}")

    # Overrides (General + backend de stockage)
    if overrides:
        for k, v in overrides.items():
            if hasattr(g, k):
                setattr(g, k, v)
            elif hasattr(st, k):
                setattr(st, k, v)

    return Settings(general=g, evaluation=ev, security=sec, storage=st)
