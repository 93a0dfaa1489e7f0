"""异常定义模块

扩展器调用的错误分类:
    - ExtenderError: 扩展器调用失败（网络错误、超时、远端返回错误、响应格式错误）
    - ContractViolationError: 扩展器输出违反契约，按调用失败处理
    - BindError: 绑定失败，总是致命错误，不可忽略也不重试
    - SchedulingFailedError: 本次调度尝试失败
"""
from typing import Dict, List, Optional


class ExtenderError(Exception):
    """
    扩展器调用失败

    Attributes:
        extender_name: 出错的扩展器名称
        message: 错误信息
    """

    def __init__(self, extender_name: str, message: str) -> None:
        self.extender_name = extender_name
        self.message = message
        super().__init__(f"扩展器 {extender_name} 调用失败: {message}")


class ExtenderTimeoutError(ExtenderError):
    """扩展器调用超时"""

    def __init__(self, extender_name: str, timeout: Optional[float]) -> None:
        self.timeout = timeout
        super().__init__(extender_name, f"调用超时（{timeout}秒）")


class ContractViolationError(ExtenderError):
    """扩展器输出违反契约，例如返回了不在输入中的节点"""


class BindError(Exception):
    """
    绑定失败

    绑定失败总是导致本次调度失败，部分提交的绑定需要外部对账，不在此重试。
    """

    def __init__(self, extender_name: Optional[str], pod_key: str, node: str, message: str) -> None:
        self.extender_name = extender_name
        self.pod_key = pod_key
        self.node = node
        self.message = message
        binder = extender_name or "默认绑定器"
        super().__init__(f"{binder} 将Pod {pod_key} 绑定到节点 {node} 失败: {message}")


class SchedulingFailedError(Exception):
    """
    调度尝试失败

    Attributes:
        failed_nodes: 所有不可忽略的节点失败原因的并集 {节点名: 原因}
        errors: 导致失败的不可忽略扩展器错误
    """

    def __init__(
            self,
            message: str,
            failed_nodes: Optional[Dict[str, str]] = None,
            errors: Optional[List[Exception]] = None
    ) -> None:
        self.message = message
        self.failed_nodes = dict(failed_nodes or {})
        self.errors = list(errors or [])
        super().__init__(message)


class FitError(SchedulingFailedError):
    """没有节点能够容纳该Pod"""


class ExtenderConfigError(Exception):
    """扩展器配置无效"""
