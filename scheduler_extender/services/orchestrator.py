"""调度编排模块

按注册顺序依次调用扩展器，把每个扩展器的结果合并进编排器自己持有的
状态（候选节点、得分表、抢占牺牲者映射）。同一个Pod的扩展器调用是顺序的，
前一个扩展器的输出就是后一个扩展器的输入；不同Pod的调度可以并发进行。
"""
import asyncio
from enum import Enum
from typing import Awaitable, Dict, Iterable, Iterator, List, Optional, Protocol, Set, Tuple, Union, TypeVar

from loguru import logger

from scheduler_extender.core.config import settings
from scheduler_extender.core.exceptions import (
    BindError,
    ContractViolationError,
    ExtenderError,
    ExtenderTimeoutError,
    FitError,
    SchedulingFailedError,
)
from scheduler_extender.schemas.bind import Binding
from scheduler_extender.schemas.common import Pod, NodeInfo
from scheduler_extender.schemas.filter import FilterOutcome, FilterResult
from scheduler_extender.schemas.preemption import PreemptionOutcome, Victims
from scheduler_extender.schemas.priority import HostPriorityList, PriorityOutcome
from scheduler_extender.schemas.schedule import ScheduleResult
from scheduler_extender.services.extender import Extender
from scheduler_extender.services.node_lister import NodeInfoLister

T = TypeVar("T")

DEFAULT_BINDER_NAME = "default-binder"


class Binder(Protocol):
    """扩展器都不负责绑定时使用的默认绑定器"""

    async def bind(self, binding: Binding, *, timeout: Optional[float] = None) -> None:
        ...


class PreemptionMergePolicy(str, Enum):
    """多个抢占扩展器对同一节点给出不同牺牲者集合时的合并策略"""
    LAST_APPLIED_WINS = "last_applied_wins"
    FIRST_APPLIED_WINS = "first_applied_wins"
    LARGEST_VICTIM_SET = "largest_victim_set"


class ExtenderRegistry:
    """有序的扩展器注册表，顺序决定过滤和打分的调用顺序"""

    def __init__(self, extenders: Iterable[Extender] = ()):
        self._extenders: List[Extender] = []
        for extender in extenders:
            self.register(extender)

    def register(self, extender: Extender) -> None:
        name = extender.name()
        if self.get(name) is not None:
            raise ValueError(f"扩展器 {name} 已注册")
        self._extenders.append(extender)
        logger.info(f"注册扩展器 {name}: binder={extender.is_binder()}, "
                    f"prioritizer={extender.is_prioritizer()}, "
                    f"preemption={extender.supports_preemption()}, "
                    f"ignorable={extender.is_ignorable()}")

    def get(self, name: str) -> Optional[Extender]:
        return next((e for e in self._extenders if e.name() == name), None)

    def names(self) -> List[str]:
        return [e.name() for e in self._extenders]

    def binders(self) -> List[Extender]:
        return [e for e in self._extenders if e.is_binder()]

    def prioritizers(self) -> List[Extender]:
        return [e for e in self._extenders if e.is_prioritizer()]

    def preemption_capable(self) -> List[Extender]:
        return [e for e in self._extenders if e.supports_preemption()]

    def __iter__(self) -> Iterator[Extender]:
        return iter(list(self._extenders))

    def __len__(self) -> int:
        return len(self._extenders)


class SchedulingOrchestrator:
    """
    调度编排器

    Args:
        extenders: 扩展器注册表或按顺序排列的扩展器
        call_timeout: Filter/Prioritize/ProcessPreemption 单次调用的超时（秒）
        bind_timeout: Bind 调用的超时（秒）
        default_binder: 没有扩展器负责绑定时使用的绑定器，为None时由调用方绑定
        merge_policy: 抢占牺牲者合并策略
    """

    def __init__(
            self,
            extenders: Union[ExtenderRegistry, Iterable[Extender]] = (),
            *,
            call_timeout: Optional[float] = None,
            bind_timeout: Optional[float] = None,
            default_binder: Optional[Binder] = None,
            merge_policy: Union[PreemptionMergePolicy, str, None] = None,
    ):
        if isinstance(extenders, ExtenderRegistry):
            self.registry = extenders
        else:
            self.registry = ExtenderRegistry(extenders)
        self.call_timeout = settings.EXTENDER_CALL_TIMEOUT if call_timeout is None else call_timeout
        self.bind_timeout = settings.EXTENDER_BIND_TIMEOUT if bind_timeout is None else bind_timeout
        self.default_binder = default_binder
        self.merge_policy = PreemptionMergePolicy(merge_policy or settings.PREEMPTION_MERGE_POLICY)

    async def _call_extender(self, extender: Extender, phase: str, call: Awaitable[T]) -> T:
        """在超时限制内执行一次扩展器调用，所有失败统一转换为ExtenderError"""
        try:
            return await asyncio.wait_for(call, timeout=self.call_timeout)
        except asyncio.TimeoutError as e:
            raise ExtenderTimeoutError(extender.name(), self.call_timeout) from e
        except ExtenderError:
            raise
        except Exception as e:
            raise ExtenderError(extender.name(), f"{phase}: {str(e)}") from e

    @staticmethod
    def _handle_failure(
            extender: Extender,
            phase: str,
            error: ExtenderError,
            diagnostics: List[str],
            failed_nodes: Optional[Dict[str, str]] = None
    ) -> None:
        """可忽略的扩展器只记录日志；否则本次调度失败"""
        if isinstance(error, ContractViolationError):
            logger.error(f"扩展器 {extender.name()} 违反契约，丢弃其{phase}结果: {error.message}")

        if extender.is_ignorable():
            message = f"{phase}: 忽略扩展器 {extender.name()} 的错误: {error.message}"
            logger.warning(message)
            diagnostics.append(message)
            return

        logger.error(f"{phase}: 扩展器 {extender.name()} 失败，调度终止: {error.message}")
        raise SchedulingFailedError(
            f"{phase}阶段扩展器 {extender.name()} 失败: {error.message}",
            failed_nodes=failed_nodes,
            errors=[error]
        ) from error

    @staticmethod
    def _validate_filter_result(extender: Extender, input_names: Set[str], result: FilterResult) -> None:
        names = result.node_names
        if len(set(names)) != len(names):
            raise ContractViolationError(extender.name(), f"过滤结果包含重复节点: {names}")

        outside = [name for name in names if name not in input_names]
        if outside:
            raise ContractViolationError(extender.name(), f"过滤结果包含不在输入中的节点: {outside}")

        failed = set(result.failed_nodes)
        unresolvable = set(result.failed_and_unresolvable_nodes)
        unknown = sorted((failed | unresolvable) - input_names)
        if unknown:
            raise ContractViolationError(extender.name(), f"失败节点不在输入中: {unknown}")

        overlap = sorted(failed & unresolvable)
        if overlap:
            raise ContractViolationError(extender.name(), f"节点同时出现在两个失败列表中: {overlap}")

        overlap = sorted(set(names) & (failed | unresolvable))
        if overlap:
            raise ContractViolationError(extender.name(), f"节点同时出现在过滤结果和失败列表中: {overlap}")

    async def find_nodes_that_pass_extenders(self, pod: Pod, nodes: List[NodeInfo]) -> FilterOutcome:
        """
        依次调用所有关心该Pod的扩展器过滤节点

        每个扩展器只能看到前一个扩展器过滤后的节点；被判定为不可解决的节点
        不会再出现在后续扩展器的输入中。

        Args:
            pod: 待调度的Pod
            nodes: 调度器核心计算出的候选节点

        Returns:
            FilterOutcome: 剩余节点及各类失败原因

        Raises:
            SchedulingFailedError: 不可忽略的扩展器调用失败
        """
        outcome = FilterOutcome(nodes=list(nodes))

        for extender in self.registry:
            if not outcome.nodes:
                break
            if not extender.is_interested(pod):
                logger.debug(f"扩展器 {extender.name()} 不关心Pod {pod.key}，跳过过滤")
                continue

            input_names = set(outcome.node_names)
            try:
                result = await self._call_extender(
                    extender,
                    "Filter",
                    extender.filter(pod, list(outcome.nodes), timeout=self.call_timeout)
                )
                self._validate_filter_result(extender, input_names, result)
            except ExtenderError as e:
                self._handle_failure(extender, "Filter", e, outcome.diagnostics, outcome.all_failures())
                continue

            for node_name, reason in result.failed_nodes.items():
                if node_name not in outcome.failed_and_unresolvable_nodes:
                    outcome.failed_nodes[node_name] = reason
            for node_name, reason in result.failed_and_unresolvable_nodes.items():
                outcome.failed_nodes.pop(node_name, None)
                outcome.failed_and_unresolvable_nodes[node_name] = reason

            passed = set(result.node_names)
            for node in outcome.nodes:
                if node.name not in passed and node.name not in outcome.all_failures():
                    outcome.failed_nodes[node.name] = f"被扩展器 {extender.name()} 过滤"
            # 保留编排器自己的节点对象和顺序
            outcome.nodes = [node for node in outcome.nodes if node.name in passed]

            logger.info(f"扩展器 {extender.name()} 过滤完成: 剩余节点数量={len(outcome.nodes)}, "
                        f"失败节点数量={len(result.failed_nodes)}, "
                        f"不可解决节点数量={len(result.failed_and_unresolvable_nodes)}")

        return outcome

    @staticmethod
    def _validate_priorities(extender: Extender, input_names: Set[str], priorities: HostPriorityList) -> None:
        hosts = [hp.host for hp in priorities]
        if len(set(hosts)) != len(hosts):
            raise ContractViolationError(extender.name(), f"打分结果包含重复节点: {hosts}")
        outside = [host for host in hosts if host not in input_names]
        if outside:
            raise ContractViolationError(extender.name(), f"打分结果包含不在输入中的节点: {outside}")

    async def prioritize_with_extenders(self, pod: Pod, nodes: List[NodeInfo]) -> PriorityOutcome:
        """
        调用所有打分扩展器并累加加权得分

        每个节点的得分为各扩展器 score * weight 之和，扩展器未返回的节点按0分计。

        Raises:
            SchedulingFailedError: 不可忽略的扩展器调用失败
        """
        outcome = PriorityOutcome(scores={node.name: 0 for node in nodes})
        input_names = set(outcome.scores)

        for extender in self.registry:
            if not extender.is_prioritizer() or not extender.is_interested(pod):
                continue
            try:
                priorities, weight = await self._call_extender(
                    extender,
                    "Prioritize",
                    extender.prioritize(pod, list(nodes), timeout=self.call_timeout)
                )
                self._validate_priorities(extender, input_names, priorities)
            except ExtenderError as e:
                self._handle_failure(extender, "Prioritize", e, outcome.diagnostics)
                continue

            contribution = {hp.host: hp.score * weight for hp in priorities}
            for host, score in contribution.items():
                outcome.scores[host] += score
            outcome.contributions[extender.name()] = contribution
            logger.info(f"扩展器 {extender.name()} 打分完成: 权重={weight}, 加权得分={contribution}")

        return outcome

    @staticmethod
    def select_host(nodes: List[NodeInfo], scores: Dict[str, int]) -> str:
        """选择总分最高的节点，同分时取候选顺序中靠前的节点"""
        if not nodes:
            raise FitError("没有可供选择的节点")
        best = nodes[0].name
        best_score = scores.get(best, 0)
        for node in nodes[1:]:
            score = scores.get(node.name, 0)
            if score > best_score:
                best, best_score = node.name, score
        return best

    def select_binder(self, pod: Pod) -> Optional[Extender]:
        """选择绑定扩展器: 第一个关心该Pod且支持绑定的扩展器"""
        return next((e for e in self.registry if e.is_binder() and e.is_interested(pod)), None)

    async def bind(self, pod: Pod, node_name: str) -> Tuple[Binding, Optional[str]]:
        """
        将Pod绑定到节点

        Returns:
            Tuple[Binding, Optional[str]]: 绑定记录以及执行绑定的组件名称，
            名称为None表示没有可用的绑定器，需要调用方自行绑定

        Raises:
            BindError: 绑定失败，不重试
        """
        binding = Binding(
            pod_name=pod.metadata.name,
            pod_namespace=pod.metadata.namespace,
            pod_uid=pod.metadata.uid,
            node=node_name
        )

        extender = self.select_binder(pod)
        if extender is not None:
            await self._run_bind(extender.name(), extender.bind(binding, timeout=self.bind_timeout), binding)
            return binding, extender.name()

        if self.default_binder is not None:
            await self._run_bind(None, self.default_binder.bind(binding, timeout=self.bind_timeout), binding)
            return binding, DEFAULT_BINDER_NAME

        logger.info(f"没有绑定器，Pod {pod.key} -> {node_name} 由调用方完成绑定")
        return binding, None

    async def _run_bind(self, binder_name: Optional[str], call: Awaitable[None], binding: Binding) -> None:
        """
        执行绑定调用

        绑定在独立的任务中运行；调度尝试被取消时，等待进行中的绑定结束后
        再传播取消，绑定不会在仍可能生效时被放弃。
        """
        task = asyncio.ensure_future(asyncio.wait_for(call, timeout=self.bind_timeout))
        logger.info(f"开始绑定Pod {binding.pod_key} 到节点 {binding.node}，绑定器={binder_name or DEFAULT_BINDER_NAME}")
        try:
            await asyncio.shield(task)
        except asyncio.CancelledError:
            if not task.done():
                logger.warning(f"调度尝试已取消，等待Pod {binding.pod_key} 进行中的绑定结束")
                await self._wait_bind(task, binding)
            raise
        except asyncio.TimeoutError as e:
            logger.error(f"绑定Pod {binding.pod_key} 超时")
            raise BindError(binder_name, binding.pod_key, binding.node, f"绑定超时（{self.bind_timeout}秒）") from e
        except BindError:
            logger.error(f"绑定Pod {binding.pod_key} 到节点 {binding.node} 失败")
            raise
        except Exception as e:
            logger.error(f"绑定Pod {binding.pod_key} 到节点 {binding.node} 失败: {str(e)}", exc_info=True)
            raise BindError(binder_name, binding.pod_key, binding.node, str(e)) from e
        logger.info(f"Pod {binding.pod_key} 成功绑定到节点 {binding.node}")

    @staticmethod
    async def _wait_bind(task: "asyncio.Future[None]", binding: Binding) -> None:
        while not task.done():
            try:
                await asyncio.shield(task)
            except asyncio.CancelledError:
                continue
            except Exception:
                break
        if task.cancelled():
            logger.error(f"Pod {binding.pod_key} 的绑定被取消，需要外部对账")
        elif task.exception() is not None:
            logger.error(f"Pod {binding.pod_key} 的绑定在取消后失败，需要外部对账: {task.exception()}")
        else:
            logger.info(f"Pod {binding.pod_key} 的绑定在取消后完成: 节点 {binding.node}")

    def _merge_victims(self, node_name: str, current: Victims, returned: Victims, modified: Set[str]) -> Victims:
        if returned == current:
            return current
        if self.merge_policy is PreemptionMergePolicy.FIRST_APPLIED_WINS:
            if node_name in modified:
                return current
        elif self.merge_policy is PreemptionMergePolicy.LARGEST_VICTIM_SET:
            if len(returned.pods) < len(current.pods):
                return current
        modified.add(node_name)
        return returned

    @staticmethod
    def _validate_preemption_result(
            extender: Extender,
            current: Dict[str, Victims],
            returned: Dict[str, Victims]
    ) -> None:
        outside = sorted(set(returned) - set(current))
        if outside:
            raise ContractViolationError(extender.name(), f"抢占结果包含不在输入中的节点: {outside}")
        invalid = sorted(name for name, victims in returned.items() if not isinstance(victims, Victims))
        if invalid:
            raise ContractViolationError(extender.name(), f"抢占结果中的牺牲者格式无效: {invalid}")

    async def process_preemption(
            self,
            pod: Pod,
            node_to_victims: Dict[str, Victims],
            node_infos: NodeInfoLister
    ) -> PreemptionOutcome:
        """
        依次调用支持抢占的扩展器处理候选节点和牺牲者

        保留的节点是所有扩展器保留节点的交集，每个节点的牺牲者按合并策略确定。

        Raises:
            SchedulingFailedError: 不可忽略的扩展器调用失败
        """
        outcome = PreemptionOutcome(node_to_victims=dict(node_to_victims))
        modified: Set[str] = set()

        for extender in self.registry:
            if not outcome.node_to_victims:
                break
            if not extender.supports_preemption() or not extender.is_interested(pod):
                continue

            current = dict(outcome.node_to_victims)
            try:
                returned = await self._call_extender(
                    extender,
                    "ProcessPreemption",
                    extender.process_preemption(pod, dict(current), node_infos, timeout=self.call_timeout)
                )
                self._validate_preemption_result(extender, current, returned)
            except ExtenderError as e:
                self._handle_failure(extender, "ProcessPreemption", e, outcome.diagnostics)
                continue

            outcome.node_to_victims = {
                node_name: self._merge_victims(node_name, victims, returned[node_name], modified)
                for node_name, victims in current.items()
                if node_name in returned
            }
            dropped = sorted(set(current) - set(returned))
            logger.info(f"扩展器 {extender.name()} 抢占处理完成: 保留节点={sorted(outcome.node_to_victims)}, "
                        f"剔除节点={dropped}")

        return outcome

    @staticmethod
    def preemption_candidates(filter_outcome: FilterOutcome) -> List[str]:
        """可尝试抢占的节点: 只包括可解决的失败节点"""
        return [
            name for name in filter_outcome.failed_nodes
            if name not in filter_outcome.failed_and_unresolvable_nodes
        ]

    async def preempt(
            self,
            pod: Pod,
            filter_outcome: FilterOutcome,
            node_to_victims: Dict[str, Victims],
            node_infos: NodeInfoLister
    ) -> PreemptionOutcome:
        """
        在过滤失败后执行扩展器抢占处理

        对该Pod不可解决的节点不参与抢占，其余节点交给扩展器处理。
        """
        candidates = {
            name: victims for name, victims in node_to_victims.items()
            if name not in filter_outcome.failed_and_unresolvable_nodes
        }
        skipped = sorted(set(node_to_victims) - set(candidates))
        if skipped:
            logger.info(f"Pod {pod.key} 抢占跳过不可解决的节点: {skipped}")
        return await self.process_preemption(pod, candidates, node_infos)

    async def schedule(
            self,
            pod: Pod,
            nodes: List[NodeInfo],
            base_scores: Optional[Dict[str, int]] = None
    ) -> ScheduleResult:
        """
        执行一次完整的调度尝试: 过滤 -> 打分 -> 选择节点 -> 绑定

        Args:
            pod: 待调度的Pod
            nodes: 调度器核心计算出的候选节点
            base_scores: 调度器核心自身计算的节点得分

        Returns:
            ScheduleResult: 调度结果

        Raises:
            FitError: 没有节点能够容纳该Pod
            SchedulingFailedError: 不可忽略的扩展器调用失败
            BindError: 绑定失败
        """
        logger.info(f"开始调度Pod {pod.key}，候选节点数量={len(nodes)}，扩展器={self.registry.names()}")

        filter_outcome = await self.find_nodes_that_pass_extenders(pod, nodes)
        diagnostics = list(filter_outcome.diagnostics)

        if not filter_outcome.nodes:
            failures = filter_outcome.all_failures()
            logger.warning(f"Pod {pod.key} 没有可用节点: {failures}")
            raise FitError(
                f"0/{len(nodes)} 个节点可用于Pod {pod.key}",
                failed_nodes=failures
            )

        priority_outcome = await self.prioritize_with_extenders(pod, filter_outcome.nodes)
        diagnostics.extend(priority_outcome.diagnostics)
        scores = dict(priority_outcome.scores)
        for name, score in (base_scores or {}).items():
            if name in scores:
                scores[name] += score

        host = self.select_host(filter_outcome.nodes, scores)
        logger.info(f"Pod {pod.key} 选中节点 {host}，得分={scores.get(host, 0)}")

        binding, binder = await self.bind(pod, host)

        return ScheduleResult(
            suggested_host=host,
            evaluated_nodes=len(nodes),
            feasible_nodes=filter_outcome.node_names,
            scores=scores,
            binding=binding,
            binder=binder,
            diagnostics=diagnostics
        )
