"""内存扩展器模块

可配置的进程内扩展器，用于测试和本地编排演练。
"""
import asyncio
from typing import Callable, Dict, List, Optional, Tuple, Union, Any

from loguru import logger

from scheduler_extender.schemas.bind import Binding
from scheduler_extender.schemas.common import Pod, NodeInfo
from scheduler_extender.schemas.filter import FilterResult
from scheduler_extender.schemas.preemption import Victims
from scheduler_extender.schemas.priority import HostPriority, HostPriorityList
from scheduler_extender.services.extender import Extender
from scheduler_extender.services.node_lister import NodeInfoLister

# (是否通过, 失败原因, 是否不可解决)
PredicateResult = Tuple[bool, str, bool]
Predicate = Callable[[Pod, NodeInfo], PredicateResult]
Prioritizer = Callable[[Pod, List[NodeInfo]], HostPriorityList]
PreemptionFunc = Callable[[Pod, Dict[str, Victims], NodeInfoLister], Dict[str, Victims]]


def true_predicate(pod: Pod, node: NodeInfo) -> PredicateResult:
    return True, "", False


def false_predicate(pod: Pod, node: NodeInfo) -> PredicateResult:
    return False, "false predicate", False


def node_name_predicate(*names: str, unresolvable: bool = False) -> Predicate:
    """只允许指定名称的节点通过"""

    def predicate(pod: Pod, node: NodeInfo) -> PredicateResult:
        if node.name in names:
            return True, "", False
        return False, f"节点 {node.name} 不在允许列表中", unresolvable

    return predicate


def node_label_predicate(key: str, value: str, unresolvable: bool = False) -> Predicate:
    """只允许带有指定标签的节点通过"""

    def predicate(pod: Pod, node: NodeInfo) -> PredicateResult:
        if node.labels.get(key) == value:
            return True, "", False
        return False, f"节点 {node.name} 缺少标签 {key}={value}", unresolvable

    return predicate


def node_index_prioritizer(pod: Pod, nodes: List[NodeInfo]) -> HostPriorityList:
    """按节点在列表中的位置打分，第一个节点得1分"""
    return [HostPriority(host=node.name, score=index + 1) for index, node in enumerate(nodes)]


def constant_prioritizer(scores: Dict[str, int]) -> Prioritizer:
    """按固定表打分，表中没有的节点不出现在结果中"""

    def prioritizer(pod: Pod, nodes: List[NodeInfo]) -> HostPriorityList:
        return [
            HostPriority(host=node.name, score=scores[node.name])
            for node in nodes
            if node.name in scores
        ]

    return prioritizer


class FakeExtender(Extender):
    """
    内存扩展器

    Args:
        name: 扩展器名称
        predicates: 过滤断言列表，节点需全部通过
        prioritizers: (打分函数, 权重) 列表，扩展器的原始得分为各打分函数得分乘以其权重之和
        weight: 扩展器权重，由 prioritize 返回
        preemption: 抢占处理函数，未指定时按断言检查移除牺牲者后的节点
        binder: 是否支持绑定
        prioritizer: 是否参与打分，默认在配置了打分函数时参与
        preemption_supported: 是否支持抢占
        ignorable: 出错时调度是否可以继续
        interested: 是否关心某Pod，可以是布尔值或判断函数
        filter_error / prioritize_error / preemption_error / bind_error: 注入的异常
        delay: 每次网络调用前模拟的延迟（秒）
    """

    def __init__(
            self,
            name: str,
            predicates: Optional[List[Predicate]] = None,
            prioritizers: Optional[List[Tuple[Prioritizer, int]]] = None,
            weight: int = 1,
            preemption: Optional[PreemptionFunc] = None,
            binder: bool = False,
            prioritizer: Optional[bool] = None,
            preemption_supported: bool = False,
            ignorable: bool = False,
            interested: Union[bool, Callable[[Pod], bool]] = True,
            filter_error: Optional[Exception] = None,
            prioritize_error: Optional[Exception] = None,
            preemption_error: Optional[Exception] = None,
            bind_error: Optional[Exception] = None,
            delay: float = 0.0,
    ):
        self._name = name
        self.predicates = list(predicates or [])
        self.prioritizers = list(prioritizers or [])
        self.weight = weight
        self.preemption = preemption
        self._binder = binder
        self._prioritizer = bool(self.prioritizers) if prioritizer is None else prioritizer
        self._preemption_supported = preemption_supported
        self._ignorable = ignorable
        self._interested = interested
        self.filter_error = filter_error
        self.prioritize_error = prioritize_error
        self.preemption_error = preemption_error
        self.bind_error = bind_error
        self.delay = delay

        self.calls: List[Tuple[str, Any]] = []
        self.bound: List[Binding] = []

    def name(self) -> str:
        return self._name

    def is_binder(self) -> bool:
        return self._binder

    def is_prioritizer(self) -> bool:
        return self._prioritizer

    def supports_preemption(self) -> bool:
        return self._preemption_supported

    def is_ignorable(self) -> bool:
        return self._ignorable

    def is_interested(self, pod: Pod) -> bool:
        if callable(self._interested):
            return self._interested(pod)
        return self._interested

    async def _simulate_latency(self):
        if self.delay:
            await asyncio.sleep(self.delay)

    def _run_predicates(self, pod: Pod, node: NodeInfo) -> PredicateResult:
        for predicate in self.predicates:
            ok, reason, unresolvable = predicate(pod, node)
            if not ok:
                return False, reason, unresolvable
        return True, "", False

    async def filter(
            self,
            pod: Pod,
            nodes: List[NodeInfo],
            *,
            timeout: Optional[float] = None
    ) -> FilterResult:
        self.calls.append(("filter", [node.name for node in nodes]))
        await self._simulate_latency()
        if self.filter_error is not None:
            raise self.filter_error

        result = FilterResult()
        for node in nodes:
            ok, reason, unresolvable = self._run_predicates(pod, node)
            if ok:
                result.nodes.append(node)
            elif unresolvable:
                result.failed_and_unresolvable_nodes[node.name] = reason
            else:
                result.failed_nodes[node.name] = reason

        logger.debug(f"[{self._name}] 过滤结果: 通过={result.node_names}, "
                     f"失败={list(result.failed_nodes)}, 不可解决={list(result.failed_and_unresolvable_nodes)}")
        return result

    async def prioritize(
            self,
            pod: Pod,
            nodes: List[NodeInfo],
            *,
            timeout: Optional[float] = None
    ) -> Tuple[HostPriorityList, int]:
        self.calls.append(("prioritize", [node.name for node in nodes]))
        await self._simulate_latency()
        if self.prioritize_error is not None:
            raise self.prioritize_error

        totals: Dict[str, int] = {}
        for prioritizer_func, prioritizer_weight in self.prioritizers:
            for host_priority in prioritizer_func(pod, nodes):
                totals[host_priority.host] = totals.get(host_priority.host, 0) + \
                    host_priority.score * prioritizer_weight

        return [HostPriority(host=host, score=score) for host, score in totals.items()], self.weight

    async def bind(self, binding: Binding, *, timeout: Optional[float] = None) -> None:
        self.calls.append(("bind", binding.node))
        await self._simulate_latency()
        if self.bind_error is not None:
            raise self.bind_error
        self.bound.append(binding)
        logger.info(f"[{self._name}] Pod {binding.pod_key} 已绑定到节点 {binding.node}")

    async def process_preemption(
            self,
            pod: Pod,
            node_name_to_victims: Dict[str, Victims],
            node_infos: NodeInfoLister,
            *,
            timeout: Optional[float] = None
    ) -> Dict[str, Victims]:
        self.calls.append(("process_preemption", sorted(node_name_to_victims)))
        await self._simulate_latency()
        if self.preemption_error is not None:
            raise self.preemption_error

        if self.preemption is not None:
            return self.preemption(pod, node_name_to_victims, node_infos)

        # 默认行为: 移除牺牲者后仍无法通过断言的节点被剔除
        result: Dict[str, Victims] = {}
        for node_name, victims in node_name_to_victims.items():
            node = node_infos.get(node_name).without_pods(set(victims.pod_identities()))
            ok, _, _ = self._run_predicates(pod, node)
            if ok:
                result[node_name] = victims
        return result
