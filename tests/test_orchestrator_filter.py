import pytest

from scheduler_extender.core.exceptions import (
    ContractViolationError,
    ExtenderError,
    ExtenderTimeoutError,
    SchedulingFailedError,
)
from scheduler_extender.schemas.filter import FilterResult
from scheduler_extender.services.fake_extender import FakeExtender, false_predicate, node_name_predicate
from scheduler_extender.services.orchestrator import ExtenderRegistry, SchedulingOrchestrator

from helpers import ScriptedExtender, make_node, make_pod


def _nodes(*node_names):
    return [make_node(name) for name in node_names]


def test_registry_rejects_duplicate_names():
    registry = ExtenderRegistry([FakeExtender("a")])
    with pytest.raises(ValueError):
        registry.register(FakeExtender("a"))


def test_registry_capability_views_keep_order():
    a = FakeExtender("a", binder=True)
    b = FakeExtender("b", prioritizer=True, preemption_supported=True)
    c = FakeExtender("c", binder=True, prioritizer=True)
    registry = ExtenderRegistry([a, b, c])

    assert registry.names() == ["a", "b", "c"]
    assert registry.binders() == [a, c]
    assert registry.prioritizers() == [b, c]
    assert registry.preemption_capable() == [b]
    assert registry.get("b") is b
    assert registry.get("missing") is None
    assert len(registry) == 3


@pytest.mark.asyncio
async def test_each_extender_sees_previous_output():
    first = FakeExtender("first", predicates=[node_name_predicate("n1", "n2")])
    second = FakeExtender("second", predicates=[node_name_predicate("n2")])
    orchestrator = SchedulingOrchestrator([first, second])

    outcome = await orchestrator.find_nodes_that_pass_extenders(make_pod(), _nodes("n1", "n2", "n3"))

    assert outcome.node_names == ["n2"]
    assert second.calls == [("filter", ["n1", "n2"])]
    assert set(outcome.failed_nodes) == {"n1", "n3"}
    assert outcome.failed_and_unresolvable_nodes == {}


@pytest.mark.asyncio
async def test_unresolvable_nodes_are_not_offered_to_later_extenders():
    first = FakeExtender("first", predicates=[node_name_predicate("n1", unresolvable=True)])
    second = FakeExtender("second")
    orchestrator = SchedulingOrchestrator([first, second])

    outcome = await orchestrator.find_nodes_that_pass_extenders(make_pod(), _nodes("n1", "n2", "n3"))

    assert second.calls == [("filter", ["n1"])]
    assert set(outcome.failed_and_unresolvable_nodes) == {"n2", "n3"}
    assert orchestrator.preemption_candidates(outcome) == []


@pytest.mark.asyncio
async def test_uninterested_extender_is_skipped():
    extender = FakeExtender("picky", predicates=[false_predicate], interested=False)
    orchestrator = SchedulingOrchestrator([extender])

    outcome = await orchestrator.find_nodes_that_pass_extenders(make_pod(), _nodes("n1", "n2"))

    assert outcome.node_names == ["n1", "n2"]
    assert extender.calls == []


@pytest.mark.asyncio
async def test_ignorable_error_is_recorded_and_skipped():
    broken = FakeExtender("broken", filter_error=RuntimeError("connection refused"), ignorable=True)
    narrowing = FakeExtender("narrowing", predicates=[node_name_predicate("n1")])
    orchestrator = SchedulingOrchestrator([broken, narrowing])

    outcome = await orchestrator.find_nodes_that_pass_extenders(make_pod(), _nodes("n1", "n2"))

    assert outcome.node_names == ["n1"]
    assert narrowing.calls == [("filter", ["n1", "n2"])]
    assert len(outcome.diagnostics) == 1
    assert "broken" in outcome.diagnostics[0]
    assert "connection refused" in outcome.diagnostics[0]


@pytest.mark.asyncio
async def test_non_ignorable_error_fails_the_attempt():
    narrowing = FakeExtender("narrowing", predicates=[node_name_predicate("n1")])
    broken = FakeExtender("broken", filter_error=RuntimeError("connection refused"))
    orchestrator = SchedulingOrchestrator([narrowing, broken])

    with pytest.raises(SchedulingFailedError) as exc_info:
        await orchestrator.find_nodes_that_pass_extenders(make_pod(), _nodes("n1", "n2"))

    error = exc_info.value
    assert isinstance(error.errors[0], ExtenderError)
    assert error.errors[0].extender_name == "broken"
    assert "n2" in error.failed_nodes


@pytest.mark.asyncio
async def test_timeout_is_an_extender_error():
    slow = FakeExtender("slow", delay=1.0)
    orchestrator = SchedulingOrchestrator([slow], call_timeout=0.05)

    with pytest.raises(SchedulingFailedError) as exc_info:
        await orchestrator.find_nodes_that_pass_extenders(make_pod(), _nodes("n1"))

    assert isinstance(exc_info.value.errors[0], ExtenderTimeoutError)


@pytest.mark.asyncio
async def test_ignorable_timeout_keeps_nodes():
    slow = FakeExtender("slow", predicates=[false_predicate], delay=1.0, ignorable=True)
    orchestrator = SchedulingOrchestrator([slow], call_timeout=0.05)

    outcome = await orchestrator.find_nodes_that_pass_extenders(make_pod(), _nodes("n1", "n2"))

    assert outcome.node_names == ["n1", "n2"]
    assert len(outcome.diagnostics) == 1


@pytest.mark.parametrize("script", [
    # 返回了输入之外的节点
    lambda nodes: FilterResult(nodes=list(nodes) + [make_node("ghost")]),
    # 重复节点
    lambda nodes: FilterResult(nodes=[nodes[0], nodes[0]]),
    # 失败节点不在输入中
    lambda nodes: FilterResult(nodes=list(nodes), failed_nodes={"ghost": "?"}),
    # 同时出现在两个失败列表中
    lambda nodes: FilterResult(failed_nodes={"n1": "a"}, failed_and_unresolvable_nodes={"n1": "b"}),
    # 既通过又失败
    lambda nodes: FilterResult(nodes=list(nodes), failed_nodes={"n1": "busy"}),
])
@pytest.mark.asyncio
async def test_contract_violation_is_a_failure(script):
    orchestrator = SchedulingOrchestrator([ScriptedExtender("rogue", script)])

    with pytest.raises(SchedulingFailedError) as exc_info:
        await orchestrator.find_nodes_that_pass_extenders(make_pod(), _nodes("n1", "n2"))

    assert isinstance(exc_info.value.errors[0], ContractViolationError)


@pytest.mark.asyncio
async def test_ignorable_contract_violation_discards_result():
    rogue = ScriptedExtender("rogue", lambda nodes: FilterResult(nodes=[make_node("ghost")]), ignorable=True)
    orchestrator = SchedulingOrchestrator([rogue])

    outcome = await orchestrator.find_nodes_that_pass_extenders(make_pod(), _nodes("n1", "n2"))

    assert outcome.node_names == ["n1", "n2"]
    assert len(outcome.diagnostics) == 1


@pytest.mark.asyncio
async def test_orchestrator_keeps_its_own_node_objects():
    original = make_node("n1", labels={"zone": "a"})
    replaced = make_node("n1", labels={"zone": "tampered"})
    rogue = ScriptedExtender("rogue", lambda nodes: FilterResult(nodes=[replaced]))
    orchestrator = SchedulingOrchestrator([rogue])

    outcome = await orchestrator.find_nodes_that_pass_extenders(make_pod(), [original])

    assert outcome.nodes[0] is original


@pytest.mark.asyncio
async def test_output_keeps_input_order():
    reverse = ScriptedExtender("reverse", lambda nodes: FilterResult(nodes=list(reversed(nodes))))
    orchestrator = SchedulingOrchestrator([reverse])

    outcome = await orchestrator.find_nodes_that_pass_extenders(make_pod(), _nodes("n1", "n2", "n3"))

    assert outcome.node_names == ["n1", "n2", "n3"]


@pytest.mark.asyncio
async def test_silently_dropped_node_gets_generic_reason():
    dropper = ScriptedExtender("dropper", lambda nodes: FilterResult(nodes=[nodes[0]]))
    orchestrator = SchedulingOrchestrator([dropper])

    outcome = await orchestrator.find_nodes_that_pass_extenders(make_pod(), _nodes("n1", "n2"))

    assert outcome.failed_nodes == {"n2": "被扩展器 dropper 过滤"}


@pytest.mark.asyncio
async def test_empty_candidate_list_stops_the_chain():
    first = FakeExtender("first", predicates=[false_predicate])
    second = FakeExtender("second")
    orchestrator = SchedulingOrchestrator([first, second])

    outcome = await orchestrator.find_nodes_that_pass_extenders(make_pod(), _nodes("n1", "n2"))

    assert outcome.nodes == []
    assert second.calls == []
    assert orchestrator.preemption_candidates(outcome) == ["n1", "n2"]
