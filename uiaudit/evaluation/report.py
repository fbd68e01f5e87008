"""Agrégation du journal d'audit en rapports Markdown (lecture seule)."""
from __future__ import annotations
import logging
from dataclasses import dataclass, field, asdict
from typing import List, Optional, Sequence

from ..core.errors import CorruptRecord
from ..core.types import Case
from ..memory.audit_log import AuditLogStore
from .checklist import ChecklistRegistry

NO_LOGS_MESSAGE = "No audit logs found. Use the device interaction tools to create a new case."
SEPARATOR = "\n---\n\n"

_LOGGER = logging.getLogger(__name__)

@dataclass(frozen=True)
class MissingItem:
    step_index: int
    missing: List[str]

@dataclass(frozen=True)
class FailedItem:
    step_index: int
    dimension_id: str
    score: float
    reason: str

@dataclass
class CaseStatus:
    case_name: str
    complete: bool
    missing: List[MissingItem] = field(default_factory=list)
    scored_count: int = 0
    # renseignés uniquement quand le cas est complet
    average_score: Optional[float] = None
    passed: Optional[bool] = None
    failed_items: List[FailedItem] = field(default_factory=list)

    def as_dict(self) -> dict:
        return asdict(self)

class ReportAggregator:
    def __init__(self, store: AuditLogStore, registry: ChecklistRegistry) -> None:
        self.store = store
        self.registry = registry

    # ---------------- Calcul ----------------
    def summarize(self, case: Case) -> CaseStatus:
        required = self.registry.ids()
        threshold = self.registry.passing_score
        missing: List[MissingItem] = []
        failed: List[FailedItem] = []
        total = 0.0
        count = 0
        for step in case.ordered_steps():
            gaps = [d for d in required if d not in step.evaluations]
            if gaps:
                missing.append(MissingItem(step.step_index, gaps))
            for dim_id, ev in step.evaluations.items():
                total += ev.score
                count += 1
                if ev.score < threshold:
                    failed.append(FailedItem(step.step_index, dim_id, ev.score, ev.reason))

        if missing:
            # pas de verdict tant qu'il manque une dimension
            return CaseStatus(case.name, complete=False, missing=missing, scored_count=count)
        return CaseStatus(
            case.name,
            complete=True,
            scored_count=count,
            average_score=(total / count) if count else 0.0,
            passed=not failed,
            failed_items=failed,
        )

    async def collect(self, case_names: Sequence[str] | None = None) -> List[Case]:
        if not case_names:
            return sorted(await self.store.list_cases(), key=lambda c: c.name)
        cases: List[Case] = []
        for name in case_names:
            try:
                case = await self.store.read_case(name)
            except CorruptRecord as e:
                _LOGGER.warning("Cas ignoré dans le rapport: %s", e)
                continue
            if case is not None:
                cases.append(case)
        return cases

    async def statuses(self, case_names: Sequence[str] | None = None) -> List[CaseStatus]:
        return [self.summarize(c) for c in await self.collect(case_names)]

    # ---------------- Rendu ----------------
    def _render_steps(self, case: Case) -> str:
        threshold = self.registry.passing_score
        lines: List[str] = []
        for step in case.ordered_steps():
            lines.append(f"### Step {step.step_index}: {step.description}")
            action = step.action_type
            if step.coordinates:
                coords = ", ".join(f"{k}: {v}" for k, v in step.coordinates.items())
                action += f" ({coords})"
            lines.append(f"- **Action**: {action}")
            if step.expected_outcome:
                lines.append(f"- **Expected Outcome**: {step.expected_outcome}")
            for dim_id in self.registry.ids():
                ev = step.evaluations.get(dim_id)
                if ev is None:
                    lines.append(f"- **{dim_id}**: Missing Evaluation")
                else:
                    tag = "Pass" if ev.score >= threshold else "Fail"
                    lines.append(f"- **{dim_id}**: Score {ev.score} {tag} - {ev.reason}")
            lines.append("")
        return "\n".join(lines) + "\n"

    def render_case(self, case: Case, status: CaseStatus | None = None) -> str:
        status = status or self.summarize(case)
        if not status.complete:
            md = f"# Audit Progress Report: {case.name}\n"
            md += "**Status**: Evaluation Incomplete\n\n"
            md += "## Pending Evaluations\n"
            md += "The following dimensions must be evaluated before the final report can be produced:\n"
            for item in status.missing:
                md += f"- Step {item.step_index}: Missing [{', '.join(item.missing)}]\n"
            md += "\n## Evaluated Records\n"
            return md + self._render_steps(case)

        md = f"# Final Audit Report: {case.name}\n"
        md += "**Status**: Evaluation Complete\n\n"
        md += "## Overall Scores\n"
        md += f"- **Average Score**: {status.average_score:.1f} / {self.registry.score_max:g}\n"
        md += f"- **Result**: {'Pass' if status.passed else 'Fail'}\n"
        if status.failed_items:
            md += "- **Failed Items**:\n"
            for f in status.failed_items:
                md += f"  - Step {f.step_index} [{f.dimension_id}]: Score {f.score} - {f.reason}\n"
        else:
            md += "- **Failed Items**: None\n"
        md += "\n## Detailed Steps\n"
        return md + self._render_steps(case)

    async def build_report(self, case_names: Sequence[str] | None = None) -> str:
        cases = await self.collect(case_names)
        if not cases:
            return NO_LOGS_MESSAGE
        return SEPARATOR.join(self.render_case(c).rstrip() + "\n" for c in cases).strip()
