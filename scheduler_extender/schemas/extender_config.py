"""扩展器配置模型"""
from typing import List, Optional

from pydantic import BaseModel, Field, model_validator


class ExtendedResource(BaseModel):
    """扩展器管理的扩展资源"""
    name: str = Field(..., description="扩展资源名称，例如 nvidia.com/gpu")
    ignored_by_scheduler: bool = Field(False, alias="ignoredByScheduler")

    model_config = {"populate_by_name": True}


class ExtenderConfig(BaseModel):
    """
    远程HTTP扩展器配置

    未配置的verb表示扩展器不参与对应阶段。
    """
    url_prefix: str = Field(..., alias="urlPrefix", description="扩展器服务地址前缀")
    filter_verb: str = Field("", alias="filterVerb")
    prioritize_verb: str = Field("", alias="prioritizeVerb")
    preempt_verb: str = Field("", alias="preemptVerb")
    bind_verb: str = Field("", alias="bindVerb")
    weight: int = Field(1, description="打分权重")
    http_timeout: Optional[float] = Field(None, alias="httpTimeout", description="HTTP请求超时（秒）")
    node_cache_capable: bool = Field(False, alias="nodeCacheCapable", description="扩展器是否缓存节点信息")
    managed_resources: List[ExtendedResource] = Field(default_factory=list, alias="managedResources")
    ignorable: bool = False

    model_config = {
        "populate_by_name": True,
        "json_schema_extra": {
            "example": {
                "urlPrefix": "http://127.0.0.1:8000/api/v1",
                "filterVerb": "filter",
                "prioritizeVerb": "prioritize",
                "preemptVerb": "preemption",
                "bindVerb": "bind",
                "weight": 2,
                "httpTimeout": 5,
                "nodeCacheCapable": False,
                "managedResources": [{"name": "nvidia.com/gpu"}],
                "ignorable": False
            }
        }
    }

    @model_validator(mode="after")
    def check_weight(self) -> "ExtenderConfig":
        if self.prioritize_verb and self.weight <= 0:
            raise ValueError(f"扩展器 {self.url_prefix} 配置了prioritizeVerb，weight必须为正数")
        return self
