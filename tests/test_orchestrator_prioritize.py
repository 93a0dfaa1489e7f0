import pytest

from scheduler_extender.core.exceptions import ContractViolationError, FitError, SchedulingFailedError
from scheduler_extender.schemas.priority import HostPriority
from scheduler_extender.services.fake_extender import FakeExtender, constant_prioritizer
from scheduler_extender.services.orchestrator import SchedulingOrchestrator

from helpers import make_node, make_pod

NODES = [make_node("n1"), make_node("n2"), make_node("n3")]


@pytest.mark.asyncio
async def test_scores_are_multiplied_by_weight():
    extender = FakeExtender("ext", prioritizers=[(constant_prioritizer({"n1": 5, "n2": 3}), 1)], weight=2)
    orchestrator = SchedulingOrchestrator([extender])

    outcome = await orchestrator.prioritize_with_extenders(make_pod(), NODES)

    assert outcome.scores == {"n1": 10, "n2": 6, "n3": 0}
    assert outcome.contributions == {"ext": {"n1": 10, "n2": 6}}


@pytest.mark.asyncio
async def test_scores_from_all_extenders_are_summed():
    a = FakeExtender("a", prioritizers=[(constant_prioritizer({"n1": 1, "n2": 4}), 1)], weight=1)
    b = FakeExtender("b", prioritizers=[(constant_prioritizer({"n1": 2, "n3": 1}), 1)], weight=3)
    orchestrator = SchedulingOrchestrator([a, b])

    outcome = await orchestrator.prioritize_with_extenders(make_pod(), NODES)

    assert outcome.scores == {"n1": 7, "n2": 4, "n3": 3}
    assert a.calls == [("prioritize", ["n1", "n2", "n3"])]
    assert b.calls == [("prioritize", ["n1", "n2", "n3"])]


@pytest.mark.asyncio
async def test_non_prioritizers_and_uninterested_extenders_are_skipped():
    filter_only = FakeExtender("filter-only")
    uninterested = FakeExtender("uninterested", prioritizers=[(constant_prioritizer({"n1": 9}), 1)],
                                interested=False)
    orchestrator = SchedulingOrchestrator([filter_only, uninterested])

    outcome = await orchestrator.prioritize_with_extenders(make_pod(), NODES)

    assert outcome.scores == {"n1": 0, "n2": 0, "n3": 0}
    assert filter_only.calls == []
    assert uninterested.calls == []


@pytest.mark.asyncio
async def test_ignorable_error_contributes_nothing():
    broken = FakeExtender("broken", prioritizer=True, prioritize_error=RuntimeError("500"), ignorable=True)
    healthy = FakeExtender("healthy", prioritizers=[(constant_prioritizer({"n2": 1}), 1)])
    orchestrator = SchedulingOrchestrator([broken, healthy])

    outcome = await orchestrator.prioritize_with_extenders(make_pod(), NODES)

    assert outcome.scores == {"n1": 0, "n2": 1, "n3": 0}
    assert "broken" not in outcome.contributions
    assert len(outcome.diagnostics) == 1


@pytest.mark.asyncio
async def test_non_ignorable_error_fails_the_attempt():
    broken = FakeExtender("broken", prioritizer=True, prioritize_error=RuntimeError("500"))
    orchestrator = SchedulingOrchestrator([broken])

    with pytest.raises(SchedulingFailedError):
        await orchestrator.prioritize_with_extenders(make_pod(), NODES)


@pytest.mark.asyncio
async def test_unknown_host_is_a_contract_violation():
    def ghost(pod, nodes):
        return [HostPriority(host="ghost", score=1)]

    orchestrator = SchedulingOrchestrator([FakeExtender("rogue", prioritizers=[(ghost, 1)])])

    with pytest.raises(SchedulingFailedError) as exc_info:
        await orchestrator.prioritize_with_extenders(make_pod(), NODES)

    assert isinstance(exc_info.value.errors[0], ContractViolationError)


def test_select_host_picks_highest_score():
    assert SchedulingOrchestrator.select_host(NODES, {"n1": 1, "n2": 5, "n3": 3}) == "n2"


def test_select_host_breaks_ties_by_candidate_order():
    assert SchedulingOrchestrator.select_host(NODES, {"n1": 2, "n2": 5, "n3": 5}) == "n2"
    assert SchedulingOrchestrator.select_host(NODES, {}) == "n1"


def test_select_host_without_nodes():
    with pytest.raises(FitError):
        SchedulingOrchestrator.select_host([], {})
