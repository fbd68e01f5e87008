from pathlib import Path
import pytest
from uiaudit.config import load_settings
from uiaudit.core.errors import DimensionNotFound, ScoreOutOfRange
from uiaudit.evaluation.checklist import DIMENSION_CATALOG, ChecklistRegistry, build_registry, registries_from_settings

def test_registry_order_and_lookup():
    reg = build_registry(["layout", "overlap"], 8)
    assert reg.ids() == ["layout", "overlap"]
    assert len(reg) == 2
    assert reg.find("overlap").name == DIMENSION_CATALOG["overlap"].name
    assert reg.index_of("overlap") == 1
    with pytest.raises(DimensionNotFound):
        reg.find("nope")

def test_registry_rejects_duplicates_and_unknown_ids():
    with pytest.raises(ValueError):
        ChecklistRegistry([DIMENSION_CATALOG["overlap"]] * 2, 8)
    with pytest.raises(DimensionNotFound):
        build_registry(["overlap", "inconnue"], 8)

def test_validate_score_bounds():
    reg = build_registry(["overlap"], 3, score_min=1, score_max=5)
    assert reg.validate_score(5) == 5
    for bad in (0, 6, True, "7"):
        with pytest.raises(ScoreOutOfRange):
            reg.validate_score(bad)

def test_snapshot_is_a_copy():
    reg = build_registry(["overlap", "layout"], 8)
    snap = reg.snapshot()
    snap.clear()
    assert len(reg) == 2

def test_extra_dimensions_from_config():
    reg = build_registry(
        ["overlap", "contrast"], 8,
        extra_dimensions=[{"id": "contrast", "name": "Contrast", "prompt_text": "Check contrast."}],
    )
    assert reg.find("contrast").prompt_text == "Check contrast."

def test_registries_per_profile():
    std = registries_from_settings(load_settings(config=str(Path("config")), profile="standard"))
    assert std["step"].ids() == ["overlap", "layout", "info_clarity", "style", "action_result"]
    assert len(std["screen"]) == 4 and len(std["style"]) == 3
    legacy = registries_from_settings(load_settings(config=str(Path("config")), profile="legacy"))
    assert legacy["step"].passing_score == 3
    assert (legacy["step"].score_min, legacy["step"].score_max) == (1, 5)
