"""扩展器契约模块

扩展器是进程外的调度协作者，在调度流程的特定阶段被调用，用于否决、重排或
替代调度决策，通常因为它管理着调度器本身不理解的资源（例如专用硬件）。
"""
from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Tuple

from scheduler_extender.schemas.bind import Binding
from scheduler_extender.schemas.common import Pod, NodeInfo
from scheduler_extender.schemas.filter import FilterResult
from scheduler_extender.schemas.preemption import Victims
from scheduler_extender.schemas.priority import HostPriorityList
from scheduler_extender.services.node_lister import NodeInfoLister


class Extender(ABC):
    """
    扩展器接口

    能力查询（is_*、supports_preemption）是同步、无网络开销的；
    filter / prioritize / bind / process_preemption 可能涉及网络调用，
    都接收一个显式的 timeout（秒），由调用方限定调用时长。
    出错时直接抛出异常，是否可以忽略由编排器根据 is_ignorable() 决定。
    """

    @abstractmethod
    def name(self) -> str:
        """返回唯一标识该扩展器的名称，注册期间保持不变"""

    @abstractmethod
    async def filter(
            self,
            pod: Pod,
            nodes: List[NodeInfo],
            *,
            timeout: Optional[float] = None
    ) -> FilterResult:
        """
        根据扩展器实现的断言过滤节点

        返回的节点必须是输入节点的子集，不得修改输入节点。
        failed_nodes 与 failed_and_unresolvable_nodes 分别记录可解决和
        不可解决的失败节点及原因，两者不相交，也不与返回的节点相交。
        """

    @abstractmethod
    async def prioritize(
            self,
            pod: Pod,
            nodes: List[NodeInfo],
            *,
            timeout: Optional[float] = None
    ) -> Tuple[HostPriorityList, int]:
        """
        根据扩展器实现的打分函数为节点打分

        返回 (节点得分列表, 权重)。未出现在列表中的节点按0分计，
        每个得分乘以权重后累加到调度器的总分中。
        """

    @abstractmethod
    async def bind(self, binding: Binding, *, timeout: Optional[float] = None) -> None:
        """将Pod绑定到节点的操作委托给扩展器，失败时抛出异常"""

    @abstractmethod
    def is_binder(self) -> bool:
        """扩展器是否配置了Bind"""

    @abstractmethod
    def is_interested(self, pod: Pod) -> bool:
        """Pod是否请求了至少一种由该扩展器管理的扩展资源"""

    @abstractmethod
    def is_prioritizer(self) -> bool:
        """扩展器是否配置了Prioritize"""

    @abstractmethod
    async def process_preemption(
            self,
            pod: Pod,
            node_name_to_victims: Dict[str, Victims],
            node_infos: NodeInfoLister,
            *,
            timeout: Optional[float] = None
    ) -> Dict[str, Victims]:
        """
        处理抢占阶段的候选节点及牺牲者

        扩展器可以:
            1. 返回候选节点的子集（某节点即使驱逐也无法容纳该Pod）
            2. 为保留的节点返回不同的牺牲者集合
        """

    @abstractmethod
    def supports_preemption(self) -> bool:
        """扩展器是否支持抢占"""

    @abstractmethod
    def is_ignorable(self) -> bool:
        """扩展器不可用时调度是否可以继续"""

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} {self.name()}>"
