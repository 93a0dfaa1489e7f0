"""节点绑定服务模块"""
import asyncio
from typing import Optional

from kubernetes.client import V1Binding, V1ObjectReference, V1ObjectMeta, ApiException, CoreV1Api
from loguru import logger

from scheduler_extender.core.exceptions import BindError
from scheduler_extender.core.k8s_config import get_core_v1_client
from scheduler_extender.schemas.bind import Binding


class KubernetesBinder:
    """通过Kubernetes API Server创建Binding对象完成绑定"""

    name = "kubernetes-binder"

    def __init__(self, core_v1: Optional[CoreV1Api] = None):
        """
        Args:
            core_v1: Kubernetes客户端，未指定时在首次绑定时加载
        """
        self._core_v1 = core_v1

    @property
    def core_v1(self) -> CoreV1Api:
        if self._core_v1 is None:
            self._core_v1 = get_core_v1_client()
        return self._core_v1

    async def bind(self, binding: Binding, *, timeout: Optional[float] = None) -> None:
        """
        将Pod绑定到指定节点

        Kubernetes客户端是同步的，放到线程中执行以免阻塞事件循环。

        Args:
            binding: 绑定记录
            timeout: API请求超时（秒）

        Raises:
            BindError: Pod已被分配到其他节点或API Server返回错误
        """
        await asyncio.to_thread(self._bind, binding, timeout)

    def _bind(self, binding: Binding, timeout: Optional[float]) -> None:
        logger.info(f"开始将Pod {binding.pod_name} 绑定到节点 {binding.node}")
        try:
            # 检查Pod是否已经被分配
            pod = self.core_v1.read_namespaced_pod(
                name=binding.pod_name,
                namespace=binding.pod_namespace,
                _request_timeout=timeout
            )
            if pod.spec.node_name:
                raise BindError(
                    self.name, binding.pod_key, binding.node,
                    f"Pod {binding.pod_name} 已经被分配到节点 {pod.spec.node_name}"
                )

            body = V1Binding(
                metadata=V1ObjectMeta(
                    name=binding.pod_name,
                    namespace=binding.pod_namespace,
                    uid=binding.pod_uid
                ),
                target=V1ObjectReference(
                    api_version="v1",
                    kind="Node",
                    name=binding.node
                )
            )

            # 执行绑定操作，响应体反序列化会因target为空报错，因此不解析响应
            self.core_v1.create_namespaced_binding(
                namespace=binding.pod_namespace,
                body=body,
                _request_timeout=timeout,
                _preload_content=False
            )
        except ApiException as e:
            error_msg = f"绑定Pod到节点失败: {e.status} {e.reason}"
            logger.error(error_msg)
            raise BindError(self.name, binding.pod_key, binding.node, error_msg) from e

        logger.info(f"Pod {binding.pod_name} 成功绑定到节点 {binding.node}")
