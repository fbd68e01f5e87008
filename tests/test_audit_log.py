import gc
from pathlib import Path
import pytest
from uiaudit.core.errors import AlreadyScored, CaseNotFound, CorruptRecord, InvalidStepError, StepNotFound
from uiaudit.memory.audit_log import AuditLogStore
from uiaudit.memory.kv import JsonDirKV, MemoryKV

@pytest.mark.asyncio
async def test_register_creates_case_on_first_step(tmp_path: Path):
    store = AuditLogStore(JsonDirKV(tmp_path / "cases"))
    step = await store.register_step("login", 1, "Ouvrir l'app", "screenshot", "shot://1")
    assert step.current_dim_index == 0
    assert step.evaluation_token is None
    assert (tmp_path / "cases" / "login.json").exists()

    case = await store.require_case("login")
    assert list(case.steps) == [1]
    assert case.steps[1].description == "Ouvrir l'app"

@pytest.mark.asyncio
async def test_register_rejects_bad_input():
    store = AuditLogStore(MemoryKV())
    with pytest.raises(InvalidStepError):
        await store.register_step("c", 0, "d", "screenshot", "s")
    with pytest.raises(InvalidStepError):
        await store.register_step("c", 1, "d", "pinch", "s")
    assert await store.read_case("c") is None

@pytest.mark.asyncio
async def test_reregistering_preserves_evaluations():
    store = AuditLogStore(MemoryKV())
    await store.register_step("c", 1, "avant", "screenshot", "s1")
    await store.record_dimension_score("c", 1, "overlap", 7, "marge serrée")
    await store.register_step("c", 1, "après", "swipe", "s2", {"x0": 0.5, "y0": 0.8, "x1": 0.5, "y1": 0.2})
    step = (await store.require_case("c")).steps[1]
    assert step.description == "après"
    assert step.screenshot_ref == "s2"
    assert step.evaluations["overlap"].score == 7

@pytest.mark.asyncio
async def test_record_dimension_score_guards():
    store = AuditLogStore(MemoryKV())
    with pytest.raises(CaseNotFound):
        await store.record_dimension_score("absent", 1, "overlap", 5, "x")
    await store.register_step("c", 1, "d", "screenshot", "s")
    with pytest.raises(StepNotFound):
        await store.record_dimension_score("c", 2, "overlap", 5, "x")
    await store.record_dimension_score("c", 1, "overlap", 5, "x")
    with pytest.raises(AlreadyScored):
        await store.record_dimension_score("c", 1, "overlap", 9, "réécriture")
    assert (await store.require_case("c")).steps[1].evaluations["overlap"].score == 5

@pytest.mark.asyncio
async def test_mutate_case_writes_nothing_when_callback_fails():
    kv = MemoryKV()
    store = AuditLogStore(kv)
    await store.register_step("c", 1, "d", "screenshot", "s")

    def boom(case):
        case.steps[1].description = "modifié"
        raise RuntimeError("échec")

    with pytest.raises(RuntimeError):
        await store.mutate_case("c", boom)
    assert (await store.require_case("c")).steps[1].description == "d"

@pytest.mark.asyncio
async def test_corrupt_case_is_skipped_in_listing():
    kv = MemoryKV()
    store = AuditLogStore(kv)
    await store.register_step("ok", 1, "d", "screenshot", "s")
    kv.put_raw("cassé", "{pas du json")
    names = [c.name for c in await store.list_cases()]
    assert names == ["ok"]
    with pytest.raises(CorruptRecord):
        await store.read_case("cassé")

@pytest.mark.asyncio
async def test_next_step_index():
    store = AuditLogStore(MemoryKV())
    assert await store.next_step_index("c") == 1
    await store.register_step("c", 3, "d", "screenshot", "s")
    assert await store.next_step_index("c") == 4

@pytest.mark.asyncio
async def test_wrong_shape_case_is_corrupt():
    kv = MemoryKV()
    store = AuditLogStore(kv)
    await store.register_step("ok", 1, "d", "screenshot", "s")
    kv.put_raw("liste", '{"case_name": "liste", "steps": [1]}')
    with pytest.raises(CorruptRecord):
        await store.read_case("liste")
    assert [c.name for c in await store.list_cases()] == ["ok"]

@pytest.mark.asyncio
async def test_case_locks_are_released_after_use():
    store = AuditLogStore(MemoryKV())
    for i in range(1, 4):
        await store.register_step(f"cas{i}", 1, "d", "screenshot", "s")
    gc.collect()
    assert len(store._locks) == 0
