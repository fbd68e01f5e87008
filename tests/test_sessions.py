import pytest
from uiaudit.core.errors import CorruptRecord, MissingScores, ScoreOutOfRange, SessionNotFound
from uiaudit.core.types import ScoreEntry
from uiaudit.evaluation.checklist import build_registry
from uiaudit.evaluation.sessions import InMemorySessionStore, SessionEvaluator
from uiaudit.memory.evaluation_log import EvaluationLogStore
from uiaudit.memory.kv import MemoryKV

SCREEN = ["overlap", "layout", "info_clarity", "ambiguity"]
STYLE = ["color_consistency", "component_consistency", "typography_consistency"]

class FakeClock:
    def __init__(self) -> None:
        self.now = 100.0

    def __call__(self) -> float:
        return self.now

def make_evaluator(**kw):
    registries = {"screen": build_registry(SCREEN, 8), "style": build_registry(STYLE, 8)}
    log = EvaluationLogStore(MemoryKV("evaluations"))
    return SessionEvaluator(registries, log, InMemorySessionStore(), **kw), log

def full_scores(low_id=None):
    return [
        {"id": i, "score": 5 if i == low_id else 9, "reason": "r", "suggestion": "agrandir" if i == low_id else None}
        for i in SCREEN
    ]

@pytest.mark.asyncio
async def test_scenario_missing_then_failed_then_second_attempt():
    ev, log = make_evaluator()
    s = await ev.create_session("screen", "Login")
    assert [c.id for c in s.checklist] == SCREEN

    with pytest.raises(MissingScores) as exc:
        await ev.submit_session(s.session_id, full_scores()[:3])
    assert exc.value.missing_ids == ["ambiguity"]

    entry = await ev.submit_session(s.session_id, full_scores(low_id="layout"))
    assert entry.passed is False
    assert entry.failed_items == ["layout"]
    assert entry.attempt_number == 1
    assert entry.average_score == 8.0
    assert (await log.load(s.session_id)) == entry

    s2 = await ev.create_session("screen", "Login")
    entry2 = await ev.submit_session(s2.session_id, full_scores())
    assert entry2.attempt_number == 2
    assert entry2.passed is True

@pytest.mark.asyncio
async def test_session_is_single_use():
    ev, _ = make_evaluator()
    s = await ev.create_session("screen", "Home")
    await ev.submit_session(s.session_id, full_scores())
    with pytest.raises(SessionNotFound):
        await ev.submit_session(s.session_id, full_scores())
    with pytest.raises(SessionNotFound):
        await ev.submit_session("inconnue", full_scores())

@pytest.mark.asyncio
async def test_extra_ids_and_duplicates():
    ev, _ = make_evaluator()
    s = await ev.create_session("screen")
    assert s.subject_name == "unnamed"
    entries = [ScoreEntry(id="overlap", score=2, reason="premier")] + [
        ScoreEntry(id=i, score=9, reason="r") for i in SCREEN
    ] + [ScoreEntry(id="hors_grille", score=0, reason="ignoré")]
    entry = await ev.submit_session(s.session_id, entries)
    # première occurrence retenue ; les ids hors grille sont ignorés
    assert [r.id for r in entry.results] == SCREEN
    assert entry.failed_items == ["overlap"]

@pytest.mark.asyncio
async def test_out_of_range_keeps_session_open():
    ev, _ = make_evaluator()
    s = await ev.create_session("screen", "Home")
    bad = full_scores()
    bad[0]["score"] = 42
    with pytest.raises(ScoreOutOfRange):
        await ev.submit_session(s.session_id, bad)
    entry = await ev.submit_session(s.session_id, full_scores())
    assert entry.passed is True

@pytest.mark.asyncio
async def test_style_session():
    ev, _ = make_evaluator()
    with pytest.raises(ValueError):
        await ev.create_style_session(["Seul"])
    s = await ev.create_style_session(["Login", "Home"])
    assert s.type == "style"
    assert s.subject_name == "Login vs Home"
    assert s.screens_compared == ["Login", "Home"]
    entry = await ev.submit_session(s.session_id, [{"id": i, "score": 8, "reason": "r"} for i in STYLE])
    assert entry.type == "style" and entry.passed is True

@pytest.mark.asyncio
async def test_unknown_type_rejected():
    ev, _ = make_evaluator()
    with pytest.raises(ValueError):
        await ev.create_session("audio", "x")

@pytest.mark.asyncio
async def test_expired_session_is_not_found():
    clock = FakeClock()
    ev, _ = make_evaluator(ttl_seconds=60, clock=clock)
    s = await ev.create_session("screen", "Home")
    keep = await ev.create_session("screen", "Other")
    clock.now += 61
    with pytest.raises(SessionNotFound):
        await ev.submit_session(s.session_id, full_scores())
    assert ev.purge_expired() == 1
    assert ev.sessions.get(keep.session_id) is None

@pytest.mark.asyncio
async def test_log_query_summary():
    ev, log = make_evaluator()
    for low in ("layout", None):
        s = await ev.create_session("screen", "Login")
        await ev.submit_session(s.session_id, full_scores(low_id=low))
    s = await ev.create_session("screen", "Home")
    last = await ev.submit_session(s.session_id, full_scores(low_id="overlap"))

    entries, summary = await log.query(limit=2)
    assert len(entries) == 2
    assert summary.total_evaluations == 3
    assert summary.passed_count == 1 and summary.failed_count == 2
    assert summary.subjects["Login"].attempts == 2
    assert summary.subjects["Login"].final_passed is True
    assert summary.subjects["Home"].final_score == last.average_score

    only, one = await log.query(session_id=last.session_id)
    assert [e.session_id for e in only] == [last.session_id]
    assert one.total_evaluations == 1

@pytest.mark.asyncio
async def test_incomplete_score_entry_keeps_session_open():
    ev, log = make_evaluator()
    s = await ev.create_session("screen", "Login")
    with pytest.raises(ValueError):
        await ev.submit_session(s.session_id, [{"id": i} for i in SCREEN])
    entry = await ev.submit_session(s.session_id, full_scores())
    assert entry.passed is True

@pytest.mark.asyncio
async def test_wrong_shape_log_entry_is_skipped():
    kv = MemoryKV("evaluations")
    ev = SessionEvaluator({"screen": build_registry(SCREEN, 8)}, EvaluationLogStore(kv), InMemorySessionStore())
    s = await ev.create_session("screen", "Login")
    await ev.submit_session(s.session_id, full_scores())
    kv.put_raw("meta_liste", '{"session_id": "meta_liste", "meta": [], "summary": {}, "results": []}')
    kv.put_raw("results_objet", '{"session_id": "results_objet", "meta": {}, "summary": {}, "results": {}}')

    entries, summary = await ev.log_store.query()
    assert [e.session_id for e in entries] == [s.session_id]
    assert summary.total_evaluations == 1
    with pytest.raises(CorruptRecord):
        await ev.log_store.load("meta_liste")
    assert await ev.log_store.count_attempts("Login") == 1

def test_score_entry_requires_id_and_score():
    with pytest.raises(ValueError):
        ScoreEntry.from_dict({"id": "overlap"})
    with pytest.raises(ValueError):
        ScoreEntry.from_dict(["overlap", 9])
    assert ScoreEntry.from_dict({"id": "overlap", "score": 9}).reason == ""
