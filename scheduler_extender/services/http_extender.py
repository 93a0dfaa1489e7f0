"""HTTP扩展器模块

通过HTTP调用远程扩展器服务。所有传输层问题（连接失败、超时、非2xx状态、
响应格式错误）都转换为ExtenderError，是否忽略由编排器决定。
"""
import asyncio
from typing import Any, Dict, Iterable, List, Optional, Tuple, Type, TypeVar

import aiohttp
from loguru import logger
from pydantic import BaseModel, TypeAdapter, ValidationError

from scheduler_extender.core.exceptions import (
    BindError,
    ContractViolationError,
    ExtenderError,
    ExtenderTimeoutError,
)
from scheduler_extender.schemas.bind import Binding, ExtenderBindingResult
from scheduler_extender.schemas.common import Pod, NodeInfo
from scheduler_extender.schemas.extender_config import ExtenderConfig
from scheduler_extender.schemas.filter import ExtenderArgs, ExtenderFilterResult, FilterResult
from scheduler_extender.schemas.preemption import (
    ExtenderPreemptionArgs,
    ExtenderPreemptionResult,
    MetaVictims,
    Victims,
)
from scheduler_extender.schemas.priority import HostPriority, HostPriorityList
from scheduler_extender.services.extender import Extender
from scheduler_extender.services.node_lister import NodeInfoLister

M = TypeVar("M", bound=BaseModel)

_host_priority_list_adapter = TypeAdapter(List[HostPriority])


class HTTPExtender(Extender):
    """远程HTTP扩展器适配器"""

    def __init__(self, config: ExtenderConfig, session: Optional[aiohttp.ClientSession] = None):
        """
        Args:
            config: 扩展器配置
            session: 共享的HTTP会话，未指定时每次请求创建新会话
        """
        self.config = config
        self._session = session
        self.managed_resources = {resource.name for resource in config.managed_resources}

    def name(self) -> str:
        return self.config.url_prefix

    def is_binder(self) -> bool:
        return bool(self.config.bind_verb)

    def is_prioritizer(self) -> bool:
        return bool(self.config.prioritize_verb)

    def supports_preemption(self) -> bool:
        return bool(self.config.preempt_verb)

    def is_ignorable(self) -> bool:
        return self.config.ignorable

    def is_interested(self, pod: Pod) -> bool:
        """未配置管理资源时关心所有Pod"""
        if not self.managed_resources:
            return True
        return bool(self.managed_resources & pod.requested_resource_names())

    def _effective_timeout(self, timeout: Optional[float]) -> Optional[float]:
        if timeout is None:
            return self.config.http_timeout
        if self.config.http_timeout is None:
            return timeout
        return min(timeout, self.config.http_timeout)

    async def _send(self, verb: str, payload: Dict[str, Any], timeout: Optional[float]) -> Any:
        """向扩展器发送POST请求并返回解析后的JSON"""
        url = f"{self.config.url_prefix.rstrip('/')}/{verb}"
        total = self._effective_timeout(timeout)
        client_timeout = aiohttp.ClientTimeout(total=total)
        logger.debug(f"请求扩展器: {url}")

        try:
            if self._session is not None:
                return await self._post(self._session, url, payload, client_timeout)
            async with aiohttp.ClientSession() as session:
                return await self._post(session, url, payload, client_timeout)
        except asyncio.TimeoutError as e:
            raise ExtenderTimeoutError(self.name(), total) from e
        except aiohttp.ClientError as e:
            raise ExtenderError(self.name(), f"请求 {url} 失败: {str(e)}") from e

    async def _post(
            self,
            session: aiohttp.ClientSession,
            url: str,
            payload: Dict[str, Any],
            timeout: aiohttp.ClientTimeout
    ) -> Any:
        async with session.post(url, json=payload, timeout=timeout) as response:
            if response.status // 100 != 2:
                text = await response.text()
                raise ExtenderError(self.name(), f"HTTP {response.status}: {text}")
            try:
                return await response.json(content_type=None)
            except ValueError as e:
                raise ExtenderError(self.name(), f"响应不是有效的JSON: {str(e)}") from e

    def _parse(self, model: Type[M], data: Any) -> M:
        try:
            return model.model_validate(data)
        except ValidationError as e:
            raise ExtenderError(self.name(), f"响应格式错误: {str(e)}") from e

    async def filter(
            self,
            pod: Pod,
            nodes: List[NodeInfo],
            *,
            timeout: Optional[float] = None
    ) -> FilterResult:
        if not self.config.filter_verb:
            return FilterResult(nodes=list(nodes))

        if self.config.node_cache_capable:
            args = ExtenderArgs(pod=pod, node_names=[node.name for node in nodes])
        else:
            args = ExtenderArgs(pod=pod, nodes=list(nodes))

        data = await self._send(
            self.config.filter_verb,
            args.model_dump(mode="json", by_alias=True, exclude_none=True),
            timeout
        )
        result = self._parse(ExtenderFilterResult, data)
        if result.error:
            raise ExtenderError(self.name(), result.error)

        if result.node_names is not None:
            returned_names = result.node_names
        else:
            returned_names = [node.name for node in result.nodes or []]

        # 把返回的节点映射回输入节点，扩展器不能替换节点内容
        by_name = {node.name: node for node in nodes}
        filtered = []
        for node_name in returned_names:
            if node_name not in by_name:
                raise ContractViolationError(self.name(), f"返回的节点 {node_name} 不在输入节点列表中")
            filtered.append(by_name[node_name])

        return FilterResult(
            nodes=filtered,
            failed_nodes=result.failed_nodes,
            failed_and_unresolvable_nodes=result.failed_and_unresolvable_nodes
        )

    async def prioritize(
            self,
            pod: Pod,
            nodes: List[NodeInfo],
            *,
            timeout: Optional[float] = None
    ) -> Tuple[HostPriorityList, int]:
        if not self.config.prioritize_verb:
            return [HostPriority(host=node.name, score=0) for node in nodes], self.config.weight

        if self.config.node_cache_capable:
            args = ExtenderArgs(pod=pod, node_names=[node.name for node in nodes])
        else:
            args = ExtenderArgs(pod=pod, nodes=list(nodes))

        data = await self._send(
            self.config.prioritize_verb,
            args.model_dump(mode="json", by_alias=True, exclude_none=True),
            timeout
        )
        try:
            priorities = _host_priority_list_adapter.validate_python(data)
        except ValidationError as e:
            raise ExtenderError(self.name(), f"响应格式错误: {str(e)}") from e
        return priorities, self.config.weight

    async def bind(self, binding: Binding, *, timeout: Optional[float] = None) -> None:
        if not self.config.bind_verb:
            raise BindError(self.name(), binding.pod_key, binding.node, "扩展器未配置bindVerb")

        try:
            data = await self._send(
                self.config.bind_verb,
                binding.model_dump(mode="json", by_alias=True),
                timeout
            )
            result = self._parse(ExtenderBindingResult, data)
        except ExtenderError as e:
            raise BindError(self.name(), binding.pod_key, binding.node, e.message) from e

        if result.error:
            raise BindError(self.name(), binding.pod_key, binding.node, result.error)

    async def process_preemption(
            self,
            pod: Pod,
            node_name_to_victims: Dict[str, Victims],
            node_infos: NodeInfoLister,
            *,
            timeout: Optional[float] = None
    ) -> Dict[str, Victims]:
        if not self.config.preempt_verb:
            raise ExtenderError(self.name(), "扩展器未配置preemptVerb，但调用了ProcessPreemption")

        if self.config.node_cache_capable:
            args = ExtenderPreemptionArgs(
                pod=pod,
                node_name_to_meta_victims={
                    name: MetaVictims.from_victims(victims) for name, victims in node_name_to_victims.items()
                }
            )
        else:
            args = ExtenderPreemptionArgs(pod=pod, node_name_to_victims=node_name_to_victims)

        data = await self._send(
            self.config.preempt_verb,
            args.model_dump(mode="json", by_alias=True, exclude_none=True),
            timeout
        )
        result = self._parse(ExtenderPreemptionResult, data)
        return self._convert_to_victims(result.node_name_to_meta_victims, node_infos)

    def _convert_to_victims(
            self,
            node_name_to_meta_victims: Dict[str, MetaVictims],
            node_infos: NodeInfoLister
    ) -> Dict[str, Victims]:
        """通过节点快照把只含UID的牺牲者还原为完整的Pod"""
        result: Dict[str, Victims] = {}
        for node_name, meta_victims in node_name_to_meta_victims.items():
            try:
                node = node_infos.get(node_name)
            except KeyError as e:
                raise ExtenderError(self.name(), f"抢占结果中的节点 {node_name} 不存在") from e
            try:
                result[node_name] = meta_victims.to_victims(node)
            except KeyError as e:
                raise ExtenderError(self.name(), str(e.args[0])) from e
        return result


def build_extenders(
        configs: Iterable[ExtenderConfig],
        session: Optional[aiohttp.ClientSession] = None
) -> List[HTTPExtender]:
    """按配置顺序创建HTTP扩展器"""
    return [HTTPExtender(config, session=session) for config in configs]
