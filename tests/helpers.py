"""测试用的Pod/节点构造函数和替身对象"""
import json
from typing import Any, Dict, Iterable, List, Optional

from scheduler_extender.schemas.bind import Binding
from scheduler_extender.schemas.common import (
    Container,
    NodeInfo,
    Pod,
    PodMetadata,
    PodSpec,
    ResourceRequirements,
)
from scheduler_extender.schemas.filter import FilterResult
from scheduler_extender.services.fake_extender import FakeExtender

GPU = "nvidia.com/gpu"


def make_pod(
        name: str = "pod-a",
        gpu: Optional[int] = None,
        priority: int = 0,
        uid: Optional[str] = None,
        namespace: str = "default",
        requests: Optional[Dict[str, str]] = None,
        limits: Optional[Dict[str, str]] = None,
        init_requests: Optional[Dict[str, str]] = None,
        with_uid: bool = True,
) -> Pod:
    """构造只有一个容器的Pod，gpu为GPU请求数量，with_uid为False时Pod没有UID"""
    requests = dict(requests or {})
    if gpu is not None:
        requests[GPU] = str(gpu)
    containers = [Container(name="main", resources=ResourceRequirements(requests=requests, limits=limits or {}))]
    init_containers = []
    if init_requests:
        init_containers.append(Container(name="init", resources=ResourceRequirements(requests=init_requests)))
    return Pod(
        metadata=PodMetadata(name=name, namespace=namespace, uid=(uid or f"uid-{name}") if with_uid else None),
        spec=PodSpec(containers=containers, init_containers=init_containers, priority=priority),
    )


def make_node(
        name: str,
        gpu: Optional[int] = None,
        pods: Iterable[Pod] = (),
        labels: Optional[Dict[str, str]] = None,
) -> NodeInfo:
    """构造节点快照，gpu为GPU可分配数量，None表示节点没有GPU"""
    allocatable = {"cpu": "4", "memory": "8Gi"}
    if gpu is not None:
        allocatable[GPU] = str(gpu)
    return NodeInfo(
        name=name,
        labels=labels or {},
        capacity=dict(allocatable),
        allocatable=allocatable,
        pods=list(pods),
    )


def names(nodes: Iterable[NodeInfo]) -> List[str]:
    return [node.name for node in nodes]


class RecordingBinder:
    """记录绑定请求的绑定器"""

    def __init__(self, error: Optional[Exception] = None):
        self.error = error
        self.bindings: List[Binding] = []

    async def bind(self, binding: Binding, *, timeout: Optional[float] = None) -> None:
        if self.error is not None:
            raise self.error
        self.bindings.append(binding)


class ScriptedExtender(FakeExtender):
    """过滤结果由脚本函数直接给出，用于构造违反契约的扩展器"""

    def __init__(self, name: str, script, **kwargs):
        super().__init__(name, **kwargs)
        self.script = script

    async def filter(self, pod, nodes, *, timeout=None) -> FilterResult:
        self.calls.append(("filter", names(nodes)))
        return self.script(nodes)


class StubResponse:
    """aiohttp响应替身"""

    def __init__(self, status: int, body: Any = None, text: Optional[str] = None):
        self.status = status
        self._body = body
        self._text = text

    async def text(self) -> str:
        if self._text is not None:
            return self._text
        return json.dumps(self._body)

    async def json(self, content_type=None) -> Any:
        if self._text is not None and self._body is None:
            return json.loads(self._text)
        return self._body


class _RequestContext:
    def __init__(self, respond):
        self._respond = respond

    async def __aenter__(self) -> StubResponse:
        return await self._respond()

    async def __aexit__(self, *exc_info) -> bool:
        return False


class CannedSession:
    """对每个请求返回固定响应（或抛出固定异常）的aiohttp会话替身"""

    def __init__(self, status: int = 200, body: Any = None, text: Optional[str] = None,
                 error: Optional[BaseException] = None):
        self.status = status
        self.body = body
        self.text = text
        self.error = error
        self.requests: List[Dict[str, Any]] = []

    def post(self, url: str, json: Any = None, timeout: Any = None) -> _RequestContext:
        self.requests.append({"url": url, "json": json, "timeout": timeout})

        async def respond() -> StubResponse:
            if self.error is not None:
                raise self.error
            return StubResponse(self.status, self.body, self.text)

        return _RequestContext(respond)


class ASGISession:
    """把aiohttp风格的请求转发给ASGI应用的会话替身"""

    def __init__(self, app):
        import httpx

        self.client = httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://extender")
        self.requests: List[Dict[str, Any]] = []

    def post(self, url: str, json: Any = None, timeout: Any = None) -> _RequestContext:
        self.requests.append({"url": url, "json": json, "timeout": timeout})

        async def respond() -> StubResponse:
            response = await self.client.post(url, json=json)
            return StubResponse(response.status_code, text=response.text)

        return _RequestContext(respond)
