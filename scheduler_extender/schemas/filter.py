"""节点过滤数据模型"""
from typing import Dict, List, Optional

from pydantic import BaseModel, Field, field_validator

from scheduler_extender.schemas.common import Pod, NodeInfo


class FilterResult(BaseModel):
    """
    扩展器Filter调用的结果

    filtered_nodes 必须是输入节点的子集；failed_nodes 中的节点在其他条件下
    可能通过（可尝试抢占），failed_and_unresolvable_nodes 中的节点对该Pod永久不可用。
    三者两两不相交。
    """
    nodes: List[NodeInfo] = Field(default_factory=list)
    failed_nodes: Dict[str, str] = Field(default_factory=dict)
    failed_and_unresolvable_nodes: Dict[str, str] = Field(default_factory=dict)

    @property
    def node_names(self) -> List[str]:
        return [node.name for node in self.nodes]


class ExtenderArgs(BaseModel):
    """过滤/打分请求（线上格式）"""
    pod: Pod
    nodes: Optional[List[NodeInfo]] = None
    node_names: Optional[List[str]] = Field(None, alias="nodenames")

    model_config = {
        "populate_by_name": True,
        "json_schema_extra": {
            "example": {
                "pod": {"metadata": {"name": "example-pod"}},
                "nodenames": ["node-1", "node-2"]
            }
        }
    }


class ExtenderFilterResult(BaseModel):
    """过滤响应（线上格式）"""
    nodes: Optional[List[NodeInfo]] = None
    node_names: Optional[List[str]] = Field(None, alias="nodenames")
    failed_nodes: Dict[str, str] = Field(default_factory=dict, alias="failedNodes")
    failed_and_unresolvable_nodes: Dict[str, str] = Field(
        default_factory=dict, alias="failedAndUnresolvableNodes"
    )
    error: Optional[str] = None

    model_config = {
        "populate_by_name": True,
        "json_schema_extra": {
            "example": {
                "nodenames": ["node-1"],
                "failedNodes": {"node-2": "insufficient nvidia.com/gpu"},
                "failedAndUnresolvableNodes": {},
                "error": None
            }
        }
    }

    @field_validator("failed_nodes", "failed_and_unresolvable_nodes", mode="before")
    @classmethod
    def _none_as_empty(cls, value):
        return {} if value is None else value


class FilterOutcome(BaseModel):
    """编排器执行所有扩展器过滤后的结果"""
    nodes: List[NodeInfo] = Field(default_factory=list)
    failed_nodes: Dict[str, str] = Field(default_factory=dict)
    failed_and_unresolvable_nodes: Dict[str, str] = Field(default_factory=dict)
    diagnostics: List[str] = Field(default_factory=list, description="可忽略扩展器的错误记录")

    @property
    def node_names(self) -> List[str]:
        return [node.name for node in self.nodes]

    def all_failures(self) -> Dict[str, str]:
        """所有失败节点及原因"""
        failures = dict(self.failed_nodes)
        failures.update(self.failed_and_unresolvable_nodes)
        return failures
