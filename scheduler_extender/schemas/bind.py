"""节点绑定模型模块"""
from typing import Optional

from pydantic import BaseModel, Field


class Binding(BaseModel):
    """
    节点绑定记录

    调度决策的最终结果（Pod -> 节点），交给执行绑定的组件
    """
    pod_name: str = Field(..., description="容器名", alias="podName")
    pod_namespace: str = Field("default", description="容器命名空间", alias="podNamespace")
    pod_uid: Optional[str] = Field(None, description="容器标识", alias="podUID")
    node: str = Field(..., description="节点名")

    model_config = {
        "populate_by_name": True,
        "frozen": True,
        "json_schema_extra": {
            "example": {
                "podName": "example-pod",
                "podNamespace": "default",
                "podUID": "12345678-1234-1234-1234-123456789012",
                "node": "worker-node-1"
            }
        }
    }

    @property
    def pod_key(self) -> str:
        return f"{self.pod_namespace}/{self.pod_name}"


class ExtenderBindingResult(BaseModel):
    """
    节点绑定响应模型
    """
    error: Optional[str] = Field(None, description="错误信息，如果为None则表示绑定成功")

    model_config = {
        "json_schema_extra": {
            "example": {
                "error": None
            }
        }
    }
