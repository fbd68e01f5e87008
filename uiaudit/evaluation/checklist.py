"""Grilles d'évaluation.

Le contenu des rubriques est de la donnée : `DIMENSION_CATALOG` fournit les
rubriques connues, la configuration choisit lesquelles composent chaque
registre (et dans quel ordre) ainsi que le seuil et l'échelle.
"""
from __future__ import annotations
from typing import Dict, Iterable, List, Sequence, Tuple

from ..core.errors import DimensionNotFound, ScoreOutOfRange
from ..core.types import ChecklistDimension

DIMENSION_CATALOG: Dict[str, ChecklistDimension] = {d.id: d for d in [
    # ---------------- Écran unique / étapes ----------------
    ChecklistDimension(
        id="overlap",
        name="Element Overlap & Safe Areas",
        prompt_text=(
            "Check for any UI elements that overlap or obscure each other. CRITICAL CHECK: look at the top "
            "status bar (time, battery, signal). Does the app header or any button overlap with these system "
            "icons? This is a severe failure. Also check rounded corners and the bottom home indicator area."
        ),
        scoring_guide=(
            "0-3 = obvious overlap/cut-off or safe area violation, 4-6 = minor overlap but functional, "
            "7-8 = no overlap but spacing is tight, 9-10 = perfect spacing and safe-area adherence"
        ),
    ),
    ChecklistDimension(
        id="layout",
        name="Layout & Screen Utilization",
        prompt_text=(
            "Evaluate screen utilization. CRITICAL FAILURE CHECK: does the app appear to run in a 'box' with "
            "large black or empty bars at the top and bottom (letterboxing)? Also check for unbalanced "
            "whitespace. The app must fill the entire screen naturally."
        ),
        scoring_guide=(
            "0-3 = letterboxing detected / severe layout issues, 4-6 = poor structure or unbalanced whitespace, "
            "7-8 = acceptable but lacks polish, 9-10 = perfect screen utilization and balance"
        ),
    ),
    ChecklistDimension(
        id="info_clarity",
        name="Information Clarity",
        prompt_text=(
            "Check whether the user can quickly identify key information on this screen, whether the "
            "information hierarchy is clear, and whether the primary call-to-action is prominent."
        ),
        scoring_guide=(
            "0-3 = key information is impossible to find or confusing, 4-6 = readable but requires effort, "
            "7-8 = clear but hierarchy could be better, 9-10 = excellent, immediate clarity"
        ),
    ),
    ChecklistDimension(
        id="ambiguity",
        name="Expression Ambiguity",
        prompt_text=(
            "Check whether any copy, icons, or button labels are ambiguous or misleading, and whether the "
            "intended action is clearly communicated to the user."
        ),
        scoring_guide=(
            "0-3 = severely ambiguous / misleading, 4-6 = multiple minor ambiguities, "
            "7-8 = generally clear with 1-2 minor issues, 9-10 = precise, unambiguous, and intuitive"
        ),
    ),
    ChecklistDimension(
        id="style",
        name="Visual Style",
        prompt_text=(
            "Judge the visual polish of this screen: color harmony, typography, iconography and component "
            "styling. Look for elements that look out of place compared to the rest of the screen."
        ),
        scoring_guide=(
            "0-3 = visually broken or clashing, 4-6 = noticeable inconsistencies, "
            "7-8 = coherent with minor rough edges, 9-10 = polished and consistent"
        ),
    ),
    ChecklistDimension(
        id="action_result",
        name="Action Result",
        prompt_text=(
            "Compare this screenshot with the expected outcome recorded for the step. Did the tap or swipe "
            "lead to the expected screen or state change?"
        ),
        scoring_guide=(
            "0-3 = nothing happened or the wrong screen appeared, 4-6 = partially matches the expectation, "
            "7-8 = matches with minor differences, 9-10 = exactly the expected result"
        ),
    ),
    # ---------------- Cohérence multi-écrans ----------------
    ChecklistDimension(
        id="color_consistency",
        name="Color Scheme Consistency",
        prompt_text=(
            "Compare all provided screenshots and check whether the primary colors, accent colors, and "
            "background colors are consistent across screens."
        ),
        scoring_guide=(
            "0-3 = completely different styles or clashing colors, 4-6 = noticeable inconsistencies, "
            "7-8 = mostly consistent but minor deviations, 9-10 = perfectly unified color scheme"
        ),
    ),
    ChecklistDimension(
        id="component_consistency",
        name="Component Style Consistency",
        prompt_text=(
            "Compare buttons, navigation bars, cards, and other reusable components across all screenshots "
            "to verify they share the same visual style (corner radius, shadow, spacing, etc.)."
        ),
        scoring_guide=(
            "0-3 = core components vary wildly, 4-6 = noticeable differences in component design, "
            "7-8 = mostly consistent, 9-10 = strict adherence to a unified design system"
        ),
    ),
    ChecklistDimension(
        id="typography_consistency",
        name="Typography Consistency",
        prompt_text=(
            "Compare heading sizes, body text sizes, font weights, and line spacing across all screenshots "
            "to verify consistency."
        ),
        scoring_guide=(
            "0-3 = chaotic typography or incompatible fonts, 4-6 = noticeable differences in scaling or weights, "
            "7-8 = mostly consistent, 9-10 = strictly unified typography system"
        ),
    ),
]}

class ChecklistRegistry:
    """Liste ordonnée et immuable de dimensions + seuil de réussite.

    L'ordre est l'ordre canonique d'évaluation : la dimension « courante »
    d'une étape partiellement évaluée est toujours la suivante de cette liste.
    """

    def __init__(
        self,
        dimensions: Iterable[ChecklistDimension],
        passing_score: float,
        *,
        score_min: float = 0,
        score_max: float = 10,
    ) -> None:
        dims = tuple(dimensions)
        ids = [d.id for d in dims]
        if len(set(ids)) != len(ids):
            raise ValueError(f"Identifiants de dimension en double: {ids}")
        if score_min > score_max:
            raise ValueError("score_min > score_max")
        self._dimensions: Tuple[ChecklistDimension, ...] = dims
        self._by_id = {d.id: d for d in dims}
        self.passing_score = passing_score
        self.score_min = score_min
        self.score_max = score_max

    def __len__(self) -> int:
        return len(self._dimensions)

    def __iter__(self):
        return iter(self._dimensions)

    def list_dimensions(self) -> Tuple[ChecklistDimension, ...]:
        return self._dimensions

    def ids(self) -> List[str]:
        return [d.id for d in self._dimensions]

    def find(self, dimension_id: str) -> ChecklistDimension:
        try:
            return self._by_id[dimension_id]
        except KeyError:
            raise DimensionNotFound(dimension_id, self.ids()) from None

    def index_of(self, dimension_id: str) -> int:
        return self.ids().index(self.find(dimension_id).id)

    def snapshot(self) -> List[ChecklistDimension]:
        # dimensions gelées : copier la liste suffit
        return list(self._dimensions)

    def validate_score(self, score: float) -> float:
        if isinstance(score, bool) or not isinstance(score, (int, float)):
            raise ScoreOutOfRange(f"Score non numérique: {score!r}")
        if not (self.score_min <= score <= self.score_max):
            raise ScoreOutOfRange(f"Score {score} hors échelle [{self.score_min}, {self.score_max}]")
        return score

def _catalog_with(extra: Sequence[dict] | None) -> Dict[str, ChecklistDimension]:
    catalog = dict(DIMENSION_CATALOG)
    for raw in extra or []:
        dim = ChecklistDimension(
            id=str(raw["id"]),
            name=str(raw.get("name", raw["id"])),
            prompt_text=str(raw.get("prompt_text", "")),
            scoring_guide=str(raw.get("scoring_guide", "")),
        )
        catalog[dim.id] = dim
    return catalog

def build_registry(
    ids: Sequence[str],
    passing_score: float,
    *,
    score_min: float = 0,
    score_max: float = 10,
    extra_dimensions: Sequence[dict] | None = None,
) -> ChecklistRegistry:
    catalog = _catalog_with(extra_dimensions)
    missing = [i for i in ids if i not in catalog]
    if missing:
        raise DimensionNotFound(missing[0], sorted(catalog))
    return ChecklistRegistry(
        [catalog[i] for i in ids], passing_score, score_min=score_min, score_max=score_max
    )

def registries_from_settings(settings) -> Dict[str, ChecklistRegistry]:
    """Registres 'step', 'screen' et 'style' décrits par la section [evaluation]."""
    ev = settings.evaluation
    common = dict(score_min=ev.score_min, score_max=ev.score_max, extra_dimensions=ev.dimensions)
    return {
        "step": build_registry(ev.step_dimensions, ev.passing_score, **common),
        "screen": build_registry(ev.screen_checklist, ev.passing_score, **common),
        "style": build_registry(ev.style_checklist, ev.passing_score, **common),
    }
