"""优先级相关的数据模型"""
from typing import Dict, List

from pydantic import BaseModel, Field

# 扩展器打分的上限，仅作为本项目扩展器的打分刻度
MAX_EXTENDER_PRIORITY = 10


class HostPriority(BaseModel):
    """主机优先级信息"""
    host: str = Field(..., description="节点名")
    score: int = Field(..., description="节点得分，扩展器自身的整数刻度")

    model_config = {
        "json_schema_extra": {
            "example": {
                "host": "node-1",
                "score": 10
            }
        }
    }


HostPriorityList = List[HostPriority]


class PriorityOutcome(BaseModel):
    """编排器汇总所有打分扩展器后的结果"""
    scores: Dict[str, int] = Field(default_factory=dict, description="节点 -> 加权总分")
    contributions: Dict[str, Dict[str, int]] = Field(
        default_factory=dict,
        description="扩展器 -> (节点 -> 加权得分)"
    )
    diagnostics: List[str] = Field(default_factory=list)
