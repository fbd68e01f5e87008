from __future__ import annotations
from dataclasses import dataclass, field, asdict
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

ACTION_TYPES = ("tap", "swipe", "screenshot")
EVALUATION_TYPES = ("screen", "style")

def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="seconds").replace("+00:00", "Z")

def _mapping(value, what: str) -> dict:
    # enregistrement JSON valide mais de forme inattendue : ValueError comme une erreur de parsing
    if not isinstance(value, dict):
        raise ValueError(f"{what}: objet attendu, reçu {type(value).__name__}")
    return value

# ---------------- Checklist ----------------
@dataclass(frozen=True)
class ChecklistDimension:
    id: str
    name: str
    prompt_text: str
    scoring_guide: str

    def as_dict(self) -> dict:
        return asdict(self)

# ---------------- Cas / étapes ----------------
@dataclass(frozen=True)
class DimensionScore:
    score: float
    reason: str

@dataclass
class Step:
    step_index: int
    description: str
    action_type: str
    screenshot_ref: str
    coordinates: Optional[dict] = None
    expected_outcome: Optional[str] = None
    created_at: str = field(default_factory=now_iso)
    evaluations: Dict[str, DimensionScore] = field(default_factory=dict)
    current_dim_index: int = 0
    evaluation_token: Optional[str] = None
    token_generation: int = 0

    def to_dict(self) -> dict:
        d = asdict(self)
        d["evaluations"] = {k: {"score": v.score, "reason": v.reason} for k, v in self.evaluations.items()}
        return d

    @classmethod
    def from_dict(cls, data: dict) -> "Step":
        data = _mapping(data, "step")
        evaluations = {
            k: DimensionScore(score=_mapping(v, f"evaluations.{k}")["score"], reason=v.get("reason", ""))
            for k, v in _mapping(data.get("evaluations") or {}, "evaluations").items()
        }
        return cls(
            step_index=int(data["step_index"]),
            description=data.get("description", ""),
            action_type=data.get("action_type", "screenshot"),
            screenshot_ref=data.get("screenshot_ref", ""),
            coordinates=data.get("coordinates"),
            expected_outcome=data.get("expected_outcome"),
            created_at=data.get("created_at") or now_iso(),
            evaluations=evaluations,
            current_dim_index=int(data.get("current_dim_index", 0)),
            evaluation_token=data.get("evaluation_token"),
            token_generation=int(data.get("token_generation", 0)),
        )

@dataclass
class Case:
    name: str
    steps: Dict[int, Step] = field(default_factory=dict)

    def ordered_steps(self) -> List[Step]:
        return [self.steps[i] for i in sorted(self.steps)]

    def to_dict(self) -> dict:
        # clés JSON = chaînes
        return {"case_name": self.name, "steps": {str(i): s.to_dict() for i, s in self.steps.items()}}

    @classmethod
    def from_dict(cls, data: dict) -> "Case":
        data = _mapping(data, "case")
        steps = {int(k): Step.from_dict(v) for k, v in _mapping(data.get("steps") or {}, "steps").items()}
        return cls(name=data["case_name"], steps=steps)

# ---------------- Machine à états ----------------
@dataclass
class PendingState:
    completed: bool
    step_index: int
    dimension_id: Optional[str] = None
    dimension_name: Optional[str] = None
    prompt_text: Optional[str] = None
    scoring_guide: Optional[str] = None
    token: Optional[str] = None
    position: int = 0
    total: int = 0

    def as_dict(self) -> dict:
        if self.completed:
            return {"completed": True, "step_index": self.step_index, "total": self.total}
        return asdict(self)

@dataclass
class AdvanceResult:
    completed_dimension_id: str
    score: float
    next_state: PendingState

    def as_dict(self) -> dict:
        return {
            "completed_dimension_id": self.completed_dimension_id,
            "score": self.score,
            "next_state": self.next_state.as_dict(),
        }

# ---------------- Sessions (mode ad hoc) ----------------
@dataclass
class EvaluationSession:
    session_id: str
    type: str
    subject_name: str
    checklist: List[ChecklistDimension]
    passing_score: float
    created_at: str = field(default_factory=now_iso)
    screens_compared: List[str] = field(default_factory=list)
    score_min: float = 0
    score_max: float = 10
    created_monotonic: float = 0.0

    def as_dict(self) -> dict:
        return {
            "session_id": self.session_id,
            "type": self.type,
            "subject_name": self.subject_name,
            "checklist": [c.as_dict() for c in self.checklist],
            "passing_score": self.passing_score,
            "score_range": [self.score_min, self.score_max],
            "created_at": self.created_at,
            "screens_compared": list(self.screens_compared),
        }

@dataclass
class ScoreEntry:
    id: str
    score: float
    reason: str = ""
    suggestion: Optional[str] = None

    @classmethod
    def from_dict(cls, data: dict) -> "ScoreEntry":
        data = _mapping(data, "score")
        if "id" not in data or "score" not in data:
            raise ValueError(f"Entrée de score incomplète (id et score requis): {data!r}")
        return cls(id=str(data["id"]), score=data["score"], reason=data.get("reason", ""), suggestion=data.get("suggestion"))

@dataclass(frozen=True)
class ItemResult:
    id: str
    name: str
    score: float
    passed: bool
    reason: str
    suggestion: Optional[str] = None

@dataclass(frozen=True)
class LogEntry:
    session_id: str
    subject_name: str
    type: str
    attempt_number: int
    passed: bool
    average_score: float
    results: tuple = ()
    timestamp: str = field(default_factory=now_iso)

    @property
    def failed_items(self) -> List[str]:
        return [r.id for r in self.results if not r.passed]

    def to_dict(self) -> dict:
        return {
            "meta": {
                "session_id": self.session_id,
                "timestamp": self.timestamp,
                "subject_name": self.subject_name,
                "attempt_number": self.attempt_number,
                "type": self.type,
            },
            "summary": {"passed": self.passed, "average_score": self.average_score},
            "failures": [asdict(r) for r in self.results if not r.passed],
            "passes": [asdict(r) for r in self.results if r.passed],
            "results": [asdict(r) for r in self.results],
        }

    @classmethod
    def from_dict(cls, data: dict) -> "LogEntry":
        data = _mapping(data, "log")
        meta, summary = _mapping(data.get("meta"), "meta"), _mapping(data.get("summary"), "summary")
        raw = data.get("results")
        if raw is None:
            raw = (data.get("failures") or []) + (data.get("passes") or [])
        if not isinstance(raw, list):
            raise ValueError("results: liste attendue")
        results = [ItemResult(**_mapping(r, "result")) for r in raw]
        return cls(
            session_id=meta["session_id"],
            subject_name=meta["subject_name"],
            type=meta.get("type", "screen"),
            attempt_number=int(meta["attempt_number"]),
            passed=bool(summary["passed"]),
            average_score=summary["average_score"],
            results=tuple(results),
            timestamp=meta["timestamp"],
        )

@dataclass
class SubjectSummary:
    attempts: int = 0
    final_passed: bool = False
    final_score: float = 0

@dataclass
class LogSummary:
    total_evaluations: int
    passed_count: int
    failed_count: int
    subjects: Dict[str, SubjectSummary] = field(default_factory=dict)

    def as_dict(self) -> Dict[str, Any]:
        return asdict(self)
