"""节点信息只读列表模块"""
from typing import Dict, Iterable, List, Protocol

from scheduler_extender.schemas.common import NodeInfo


class NodeInfoLister(Protocol):
    """抢占处理期间提供给扩展器的只读节点快照访问能力"""

    def list(self) -> List[NodeInfo]:
        """返回所有节点快照"""
        ...

    def get(self, node_name: str) -> NodeInfo:
        """按节点名返回快照，不存在时抛出KeyError"""
        ...


class SnapshotNodeInfoLister:
    """基于节点快照的只读列表"""

    def __init__(self, nodes: Iterable[NodeInfo]):
        self._nodes = tuple(nodes)
        self._by_name: Dict[str, NodeInfo] = {node.name: node for node in self._nodes}

    def list(self) -> List[NodeInfo]:
        return list(self._nodes)

    def get(self, node_name: str) -> NodeInfo:
        try:
            return self._by_name[node_name]
        except KeyError:
            raise KeyError(f"节点 {node_name} 不存在") from None

    def __len__(self) -> int:
        return len(self._nodes)
