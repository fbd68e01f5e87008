import asyncio
import pytest
from uiaudit.core.errors import AlreadyComplete, InvalidToken, ScoreOutOfRange, StepNotFound, CaseNotFound
from uiaudit.evaluation.checklist import build_registry
from uiaudit.evaluation.state_machine import ObservationPolicy, StepStateMachine
from uiaudit.evaluation.tokens import TokenIssuer
from uiaudit.memory.audit_log import AuditLogStore
from uiaudit.memory.kv import MemoryKV

def make_machine(ids=("overlap", "layout", "info_clarity"), **kw):
    store = AuditLogStore(MemoryKV("cases"))
    registry = build_registry(list(ids), 8)
    return store, StepStateMachine(store, registry, **kw)

async def register(store, case="login", index=1, expected=None):
    return await store.register_step(case, index, "Écran de connexion", "screenshot", "shot://1", expected_outcome=expected)

@pytest.mark.asyncio
async def test_scenario_token_rotation():
    store, sm = make_machine()
    await register(store)

    st = await sm.get_pending_state("login", 1)
    assert st.completed is False
    assert st.dimension_id == "overlap"
    assert (st.position, st.total) == (1, 3)
    t1 = st.token

    res = await sm.submit_and_advance("login", 1, t1, 9, "rien ne se chevauche")
    assert res.completed_dimension_id == "overlap"
    assert res.next_state.dimension_id == "layout"
    assert res.next_state.token and res.next_state.token != t1

    with pytest.raises(InvalidToken):
        await sm.submit_and_advance("login", 1, t1, 9, "rejeu")

@pytest.mark.asyncio
async def test_pending_is_idempotent():
    store, sm = make_machine()
    await register(store)
    a = await sm.get_pending_state("login", 1)
    b = await sm.get_pending_state("login", 1)
    assert a.token == b.token
    case = await store.require_case("login")
    assert case.steps[1].current_dim_index == 0

@pytest.mark.asyncio
async def test_full_walk_completes_step():
    store, sm = make_machine()
    await register(store)
    st = await sm.get_pending_state("login", 1)
    seen = []
    while not st.completed:
        seen.append(st.dimension_id)
        st = (await sm.submit_and_advance("login", 1, st.token, 8, "ok")).next_state
    assert seen == ["overlap", "layout", "info_clarity"]

    step = (await store.require_case("login")).steps[1]
    assert step.current_dim_index == 3
    assert set(step.evaluations) == {"overlap", "layout", "info_clarity"}
    assert step.evaluation_token is None

    with pytest.raises(AlreadyComplete):
        await sm.submit_and_advance("login", 1, "tok_whatever", 9, "trop tard")
    again = await sm.get_pending_state("login", 1)
    assert again.completed is True

@pytest.mark.asyncio
async def test_forged_token_and_out_of_range_score_do_not_advance():
    store, sm = make_machine()
    await register(store)
    st = await sm.get_pending_state("login", 1)
    with pytest.raises(InvalidToken):
        await sm.submit_and_advance("login", 1, "tok_deadbeef", 9, "devine")
    with pytest.raises(ScoreOutOfRange):
        await sm.submit_and_advance("login", 1, st.token, 11, "hors échelle")
    step = (await store.require_case("login")).steps[1]
    assert step.current_dim_index == 0
    assert step.evaluation_token == st.token

@pytest.mark.asyncio
async def test_unknown_case_and_step():
    store, sm = make_machine()
    with pytest.raises(CaseNotFound):
        await sm.get_pending_state("absent", 1)
    await register(store)
    with pytest.raises(StepNotFound):
        await sm.get_pending_state("login", 7)

@pytest.mark.asyncio
async def test_concurrent_submissions_only_one_wins():
    store, sm = make_machine()
    await register(store)
    st = await sm.get_pending_state("login", 1)
    results = await asyncio.gather(
        sm.submit_and_advance("login", 1, st.token, 9, "a"),
        sm.submit_and_advance("login", 1, st.token, 9, "b"),
        return_exceptions=True,
    )
    assert sum(1 for r in results if isinstance(r, InvalidToken)) == 1
    step = (await store.require_case("login")).steps[1]
    assert step.current_dim_index == 1

@pytest.mark.asyncio
async def test_reregister_keeps_progress():
    store, sm = make_machine()
    await register(store)
    st = await sm.get_pending_state("login", 1)
    await sm.submit_and_advance("login", 1, st.token, 9, "ok")
    await store.register_step("login", 1, "Nouvelle description", "tap", "shot://2", {"x": 0.5, "y": 0.5})
    step = (await store.require_case("login")).steps[1]
    assert step.description == "Nouvelle description"
    assert step.action_type == "tap"
    assert step.current_dim_index == 1
    assert step.evaluations["overlap"].score == 9

@pytest.mark.asyncio
async def test_observation_policy_auto_scores_without_expectation():
    policy = ObservationPolicy(auto_score_ids=("action_result",))
    store, sm = make_machine(ids=("overlap", "action_result", "layout"), policy=policy)
    await register(store)
    st = await sm.get_pending_state("login", 1)
    res = await sm.submit_and_advance("login", 1, st.token, 9, "ok")
    # action_result est sauté : la dimension suivante est layout
    assert res.next_state.dimension_id == "layout"
    assert res.next_state.position == 3
    step = (await store.require_case("login")).steps[1]
    assert step.evaluations["action_result"].score == 10

@pytest.mark.asyncio
async def test_observation_policy_ignored_with_expectation():
    policy = ObservationPolicy(auto_score_ids=("action_result",))
    store, sm = make_machine(ids=("overlap", "action_result"), policy=policy)
    await register(store, expected="Le tableau de bord s'affiche")
    st = await sm.get_pending_state("login", 1)
    res = await sm.submit_and_advance("login", 1, st.token, 9, "ok")
    assert res.next_state.dimension_id == "action_result"

@pytest.mark.asyncio
async def test_signed_tokens_are_reissued_after_secret_change():
    store = AuditLogStore(MemoryKV("cases"))
    registry = build_registry(["overlap", "layout"], 8)
    old = StepStateMachine(store, registry, TokenIssuer(secret="ancien"))
    await register(store)
    t_old = (await old.get_pending_state("login", 1)).token

    new = StepStateMachine(store, registry, TokenIssuer(secret="nouveau"))
    with pytest.raises(InvalidToken):
        await new.submit_and_advance("login", 1, t_old, 9, "ok")
    t_new = (await new.get_pending_state("login", 1)).token
    assert t_new != t_old
    res = await new.submit_and_advance("login", 1, t_new, 9, "ok")
    assert res.next_state.dimension_id == "layout"
