"""通用数据模型"""
from typing import Dict, List, Optional, Any, Set

from pydantic import BaseModel, Field

from scheduler_extender.utils.resource_parser import parse_resource_value, sum_resource_lists


class ResourceRequirements(BaseModel):
    """容器资源配置，包括扩展资源（例如 nvidia.com/gpu）"""
    requests: Dict[str, str] = Field(default_factory=dict, description="资源请求")
    limits: Dict[str, str] = Field(default_factory=dict, description="资源限制")

    model_config = {
        "frozen": True,
        "json_schema_extra": {
            "example": {
                "requests": {
                    "cpu": "100m",
                    "memory": "128Mi",
                    "nvidia.com/gpu": "1"
                },
                "limits": {
                    "cpu": "200m",
                    "memory": "256Mi",
                    "nvidia.com/gpu": "1"
                }
            }
        }
    }

    def effective_requests(self) -> Dict[str, str]:
        """未声明请求的资源以限制作为请求"""
        merged = dict(self.limits)
        merged.update(self.requests)
        return merged


class Container(BaseModel):
    """容器规格"""
    name: str
    image: Optional[str] = None
    resources: ResourceRequirements = Field(default_factory=ResourceRequirements)

    model_config = {"frozen": True}


class PodMetadata(BaseModel):
    """Pod元数据"""
    name: str
    namespace: str = "default"
    uid: Optional[str] = None
    labels: Dict[str, str] = Field(default_factory=dict)
    annotations: Dict[str, str] = Field(default_factory=dict)

    model_config = {
        "frozen": True,
        "json_schema_extra": {
            "example": {
                "name": "example-pod",
                "namespace": "default",
                "uid": "12345678-1234-1234-1234-123456789012",
                "labels": {
                    "app": "example"
                }
            }
        }
    }


class PodSpec(BaseModel):
    """Pod规格"""
    containers: List[Container] = Field(default_factory=list)
    init_containers: List[Container] = Field(default_factory=list, alias="initContainers")
    node_name: Optional[str] = Field(None, alias="nodeName", description="Pod已被调度到的节点")
    node_selector: Dict[str, str] = Field(default_factory=dict, alias="nodeSelector")
    priority: int = Field(0, description="Pod优先级，抢占时优先驱逐低优先级Pod")

    model_config = {"frozen": True, "populate_by_name": True}


class Pod(BaseModel):
    """
    Pod信息

    在一次调度尝试期间不可变，扩展器只能读取。
    """
    metadata: PodMetadata
    spec: PodSpec = Field(default_factory=PodSpec)

    model_config = {
        "frozen": True,
        "populate_by_name": True,
        "json_schema_extra": {
            "example": {
                "metadata": {
                    "name": "example-pod",
                    "namespace": "default",
                    "uid": "12345678-1234-1234-1234-123456789012"
                },
                "spec": {
                    "containers": [
                        {
                            "name": "container-1",
                            "image": "nginx:latest",
                            "resources": {
                                "requests": {
                                    "cpu": "100m",
                                    "memory": "128Mi",
                                    "nvidia.com/gpu": "1"
                                }
                            }
                        }
                    ]
                }
            }
        }
    }

    @property
    def key(self) -> str:
        """命名空间/名称"""
        return f"{self.metadata.namespace}/{self.metadata.name}"

    @property
    def identity(self) -> str:
        """节点上区分Pod的标识: UID，没有UID时使用命名空间/名称"""
        return self.metadata.uid or self.key

    def requested_resource_names(self) -> Set[str]:
        """所有容器和初始化容器请求或限制的资源名"""
        names: Set[str] = set()
        for container in list(self.spec.containers) + list(self.spec.init_containers):
            names.update(container.resources.requests)
            names.update(container.resources.limits)
        return names

    def resource_request(self, resource_name: str) -> int:
        """
        计算Pod对某种资源的有效请求量

        普通容器的请求量求和，再与每个初始化容器的请求量取最大值。

        Args:
            resource_name: 资源名称

        Returns:
            int: 标准化后的请求量
        """
        total = sum_resource_lists(
            (c.resources.effective_requests() for c in self.spec.containers),
            resource_name
        )
        for container in self.spec.init_containers:
            init_request = parse_resource_value(
                container.resources.effective_requests().get(resource_name),
                resource_name
            )
            total = max(total, init_request)
        return total


class NodeInfo(BaseModel):
    """
    候选节点的状态快照

    包含容量、可分配资源、已分配的Pod、标签和污点。只有编排器可以修改，
    扩展器收到的是只读视图。
    """
    name: str
    labels: Dict[str, str] = Field(default_factory=dict)
    taints: List[Dict[str, Any]] = Field(default_factory=list)
    capacity: Dict[str, str] = Field(default_factory=dict)
    allocatable: Dict[str, str] = Field(default_factory=dict)
    pods: List[Pod] = Field(default_factory=list, description="已分配到该节点的Pod")

    model_config = {
        "frozen": True,
        "json_schema_extra": {
            "example": {
                "name": "node-1",
                "labels": {
                    "kubernetes.io/os": "linux"
                },
                "capacity": {
                    "cpu": "4",
                    "memory": "8Gi",
                    "nvidia.com/gpu": "2"
                },
                "allocatable": {
                    "cpu": "3800m",
                    "memory": "7Gi",
                    "nvidia.com/gpu": "2"
                },
                "pods": []
            }
        }
    }

    def allocatable_amount(self, resource_name: str) -> int:
        """可分配资源量，未声明可分配量时使用容量"""
        value = self.allocatable.get(resource_name, self.capacity.get(resource_name))
        return parse_resource_value(value, resource_name)

    def requested_amount(self, resource_name: str, excluding: Optional[Set[str]] = None) -> int:
        """
        已分配Pod对某种资源的请求总量

        Args:
            resource_name: 资源名称
            excluding: 不计入的Pod标识集合（例如待驱逐的Pod），见Pod.identity
        """
        excluding = excluding or set()
        return sum(
            pod.resource_request(resource_name)
            for pod in self.pods
            if pod.identity not in excluding
        )

    def free_amount(self, resource_name: str, excluding: Optional[Set[str]] = None) -> int:
        """剩余可用资源量"""
        return self.allocatable_amount(resource_name) - self.requested_amount(resource_name, excluding)

    def get_pod(self, identity: str) -> Optional[Pod]:
        """按标识（UID或命名空间/名称）查找节点上的Pod"""
        return next((pod for pod in self.pods if pod.identity == identity), None)

    def has_pod(self, identity: str) -> bool:
        return self.get_pod(identity) is not None

    def without_pods(self, identities: Set[str]) -> "NodeInfo":
        """返回移除指定Pod后的节点快照副本"""
        return self.model_copy(update={"pods": [p for p in self.pods if p.identity not in identities]})


# 节点名 -> 失败原因
FailedNodesMap = Dict[str, str]
