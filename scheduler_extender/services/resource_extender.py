"""扩展资源扩展器模块

管理一种调度器本身不理解的扩展资源（默认 nvidia.com/gpu），
按该资源的可分配量和已分配量过滤、打分、处理抢占。
"""
from typing import Dict, List, Optional, Tuple

from loguru import logger

from scheduler_extender.core.exceptions import BindError
from scheduler_extender.schemas.bind import Binding
from scheduler_extender.schemas.common import Pod, NodeInfo
from scheduler_extender.schemas.filter import FilterResult
from scheduler_extender.schemas.preemption import Victims
from scheduler_extender.schemas.priority import HostPriority, HostPriorityList, MAX_EXTENDER_PRIORITY
from scheduler_extender.services.extender import Extender
from scheduler_extender.services.node_lister import NodeInfoLister
from scheduler_extender.services.orchestrator import Binder


class ResourceExtender(Extender):
    """扩展资源扩展器"""

    def __init__(
            self,
            name: str,
            resource_name: str = "nvidia.com/gpu",
            weight: int = 1,
            binder: Optional[Binder] = None,
            ignorable: bool = False,
    ):
        """
        Args:
            name: 扩展器名称
            resource_name: 管理的扩展资源名称
            weight: 打分权重
            binder: 绑定器，未指定时该扩展器不负责绑定
            ignorable: 出错时调度是否可以继续
        """
        self._name = name
        self.resource_name = resource_name
        self.weight = weight
        self._binder = binder
        self._ignorable = ignorable
        self.bindings: List[Binding] = []

    def name(self) -> str:
        return self._name

    def is_binder(self) -> bool:
        return self._binder is not None

    def is_prioritizer(self) -> bool:
        return True

    def supports_preemption(self) -> bool:
        return True

    def is_ignorable(self) -> bool:
        return self._ignorable

    def is_interested(self, pod: Pod) -> bool:
        """只关心请求量大于0的Pod，声明为0等同于未请求"""
        return pod.resource_request(self.resource_name) > 0

    def check_node(self, pod: Pod, node: NodeInfo) -> Tuple[bool, str, bool]:
        """
        检查节点的扩展资源是否满足Pod请求

        Returns:
            Tuple[bool, str, bool]: (是否满足, 原因, 是否不可解决)
        """
        request = pod.resource_request(self.resource_name)
        if request <= 0:
            return True, "未请求资源", False
        allocatable = node.allocatable_amount(self.resource_name)
        if allocatable <= 0:
            return False, f"节点没有{self.resource_name}资源", True
        if allocatable < request:
            return False, f"节点{self.resource_name}总量不足: 需要{request}, 可分配{allocatable}", True

        free = node.free_amount(self.resource_name)
        if free < request:
            return False, f"{self.resource_name}资源不足: 需要{request}, 剩余{free}", False
        return True, "资源充足", False

    async def filter(
            self,
            pod: Pod,
            nodes: List[NodeInfo],
            *,
            timeout: Optional[float] = None
    ) -> FilterResult:
        result = FilterResult()
        for node in nodes:
            ok, reason, unresolvable = self.check_node(pod, node)
            if ok:
                result.nodes.append(node)
            elif unresolvable:
                result.failed_and_unresolvable_nodes[node.name] = reason
            else:
                result.failed_nodes[node.name] = reason

        logger.info(f"[{self._name}] 过滤Pod {pod.key}: 符合条件的节点数量={len(result.nodes)}, "
                    f"不符合条件的节点数量={len(result.failed_nodes) + len(result.failed_and_unresolvable_nodes)}")
        return result

    async def prioritize(
            self,
            pod: Pod,
            nodes: List[NodeInfo],
            *,
            timeout: Optional[float] = None
    ) -> Tuple[HostPriorityList, int]:
        """剩余资源比例越高得分越高，没有该资源的节点不打分"""
        request = pod.resource_request(self.resource_name)
        priorities = []
        for node in nodes:
            allocatable = node.allocatable_amount(self.resource_name)
            if allocatable <= 0:
                continue
            remaining = max(node.free_amount(self.resource_name) - request, 0)
            score = remaining * MAX_EXTENDER_PRIORITY // allocatable
            priorities.append(HostPriority(host=node.name, score=score))
        return priorities, self.weight

    async def bind(self, binding: Binding, *, timeout: Optional[float] = None) -> None:
        if self._binder is None:
            raise BindError(self._name, binding.pod_key, binding.node, "扩展器未配置绑定器")
        await self._binder.bind(binding, timeout=timeout)
        self.bindings.append(binding)

    async def process_preemption(
            self,
            pod: Pod,
            node_name_to_victims: Dict[str, Victims],
            node_infos: NodeInfoLister,
            *,
            timeout: Optional[float] = None
    ) -> Dict[str, Victims]:
        """
        检查驱逐牺牲者后扩展资源是否足够

        核心算法选出的牺牲者释放的资源不足时，按优先级从低到高追加持有该资源的
        低优先级Pod；仍不足的节点被剔除。
        """
        request = pod.resource_request(self.resource_name)
        result: Dict[str, Victims] = {}

        for node_name, victims in node_name_to_victims.items():
            node = node_infos.get(node_name)
            if node.allocatable_amount(self.resource_name) < request:
                logger.info(f"[{self._name}] 节点 {node_name} 即使驱逐也无法满足{self.resource_name}请求，剔除")
                continue

            evicted = set(victims.pod_identities())
            extra = []
            if node.free_amount(self.resource_name, evicted) < request:
                candidates = sorted(
                    (
                        p for p in node.pods
                        if p.identity not in evicted
                        and p.spec.priority < pod.spec.priority
                        and p.resource_request(self.resource_name) > 0
                    ),
                    key=lambda p: (p.spec.priority, p.metadata.name)
                )
                for candidate in candidates:
                    extra.append(candidate)
                    evicted.add(candidate.identity)
                    if node.free_amount(self.resource_name, evicted) >= request:
                        break

            if node.free_amount(self.resource_name, evicted) < request:
                logger.info(f"[{self._name}] 节点 {node_name} 驱逐后{self.resource_name}仍不足，剔除")
                continue

            if extra:
                logger.info(f"[{self._name}] 节点 {node_name} 追加牺牲者: {[p.metadata.name for p in extra]}")
                victims = Victims(pods=list(victims.pods) + extra, num_pdb_violations=victims.num_pdb_violations)
            result[node_name] = victims

        return result
