"""
数据模型模块
"""
from scheduler_extender.schemas.common import (
    ResourceRequirements, Container, PodMetadata, PodSpec, Pod, NodeInfo, FailedNodesMap
)
from scheduler_extender.schemas.filter import ExtenderArgs, ExtenderFilterResult, FilterResult, FilterOutcome
from scheduler_extender.schemas.priority import (
    HostPriority, HostPriorityList, PriorityOutcome, MAX_EXTENDER_PRIORITY
)
from scheduler_extender.schemas.bind import Binding, ExtenderBindingResult
from scheduler_extender.schemas.preemption import (
    Victims, MetaPod, MetaVictims, ExtenderPreemptionArgs, ExtenderPreemptionResult, PreemptionOutcome
)
from scheduler_extender.schemas.extender_config import ExtendedResource, ExtenderConfig
from scheduler_extender.schemas.schedule import ScheduleResult, ScheduleRequest

__all__ = [
    # Common models
    'ResourceRequirements', 'Container', 'PodMetadata', 'PodSpec', 'Pod', 'NodeInfo', 'FailedNodesMap',

    # Filter models
    'ExtenderArgs', 'ExtenderFilterResult', 'FilterResult', 'FilterOutcome',

    # Priority models
    'HostPriority', 'HostPriorityList', 'PriorityOutcome', 'MAX_EXTENDER_PRIORITY',

    # Bind models
    'Binding', 'ExtenderBindingResult',

    # Preemption models
    'Victims', 'MetaPod', 'MetaVictims', 'ExtenderPreemptionArgs', 'ExtenderPreemptionResult',
    'PreemptionOutcome',

    # Config / result models
    'ExtendedResource', 'ExtenderConfig', 'ScheduleResult', 'ScheduleRequest',
]
