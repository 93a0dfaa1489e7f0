"""调度结果数据模型"""
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from scheduler_extender.schemas.bind import Binding
from scheduler_extender.schemas.common import Pod, NodeInfo


class ScheduleResult(BaseModel):
    """一次调度尝试的结果"""
    suggested_host: str = Field(..., description="选中的节点")
    evaluated_nodes: int = Field(0, description="参与过滤的节点数量")
    feasible_nodes: List[str] = Field(default_factory=list, description="通过过滤的节点")
    scores: Dict[str, int] = Field(default_factory=dict, description="节点加权总分")
    binding: Optional[Binding] = None
    binder: Optional[str] = Field(None, description="执行绑定的组件名称，None表示未执行绑定，需由调用方完成")
    diagnostics: List[str] = Field(default_factory=list, description="可忽略扩展器的错误记录")


class ScheduleRequest(BaseModel):
    """调度请求"""
    pod: Pod
    nodes: List[NodeInfo] = Field(default_factory=list, description="调度器核心计算出的候选节点")
    base_scores: Dict[str, int] = Field(default_factory=dict, alias="baseScores", description="调度器核心自身的节点得分")

    model_config = {"populate_by_name": True}
