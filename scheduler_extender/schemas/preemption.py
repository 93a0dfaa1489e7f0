"""抢占相关的数据模型"""
from typing import Dict, List, Optional

from pydantic import BaseModel, Field, field_validator

from scheduler_extender.schemas.common import Pod, NodeInfo


class Victims(BaseModel):
    """
    单个节点上的抢占牺牲者

    Attributes:
        pods: 需要驱逐的Pod
        num_pdb_violations: 驱逐这些Pod会违反的PodDisruptionBudget数量
    """
    pods: List[Pod] = Field(default_factory=list)
    num_pdb_violations: int = Field(0, alias="numPDBViolations")

    model_config = {"populate_by_name": True, "frozen": True}

    def pod_identities(self) -> List[str]:
        return [pod.identity for pod in self.pods]


class MetaPod(BaseModel):
    """只携带标识的Pod引用，Pod没有UID时携带命名空间/名称"""
    uid: str


class MetaVictims(BaseModel):
    """只携带Pod标识的抢占牺牲者"""
    pods: List[MetaPod] = Field(default_factory=list)
    num_pdb_violations: int = Field(0, alias="numPDBViolations")

    model_config = {"populate_by_name": True}

    @field_validator("pods", mode="before")
    @classmethod
    def _none_as_empty(cls, value):
        return [] if value is None else value

    @classmethod
    def from_victims(cls, victims: Victims) -> "MetaVictims":
        return cls(
            pods=[MetaPod(uid=pod.identity) for pod in victims.pods],
            num_pdb_violations=victims.num_pdb_violations
        )

    def to_victims(self, node: NodeInfo) -> Victims:
        """通过节点快照按标识还原牺牲者Pod，节点上不存在的标识抛出KeyError"""
        pods = []
        for meta_pod in self.pods:
            pod = node.get_pod(meta_pod.uid)
            if pod is None:
                raise KeyError(f"节点 {node.name} 上没有UID为 {meta_pod.uid} 的Pod")
            pods.append(pod)
        return Victims(pods=pods, num_pdb_violations=self.num_pdb_violations)


class ExtenderPreemptionArgs(BaseModel):
    """抢占请求（线上格式）"""
    pod: Pod
    node_name_to_victims: Optional[Dict[str, Victims]] = Field(None, alias="nodeNameToVictims")
    node_name_to_meta_victims: Optional[Dict[str, MetaVictims]] = Field(None, alias="nodeNameToMetaVictims")

    model_config = {"populate_by_name": True}


class ExtenderPreemptionResult(BaseModel):
    """抢占响应（线上格式）"""
    node_name_to_meta_victims: Dict[str, MetaVictims] = Field(
        default_factory=dict, alias="nodeNameToMetaVictims"
    )

    model_config = {"populate_by_name": True}

    @field_validator("node_name_to_meta_victims", mode="before")
    @classmethod
    def _none_as_empty(cls, value):
        """null表示所有节点都被剔除"""
        return {} if value is None else value


class PreemptionOutcome(BaseModel):
    """编排器汇总所有抢占扩展器后的结果"""
    node_to_victims: Dict[str, Victims] = Field(default_factory=dict)
    diagnostics: List[str] = Field(default_factory=list)
