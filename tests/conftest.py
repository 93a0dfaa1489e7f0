import pytest

from scheduler_extender.core.app_state import set_orchestrator, set_served_extender, update_node_cache
from scheduler_extender.services.resource_extender import ResourceExtender

from helpers import RecordingBinder


@pytest.fixture
def binder():
    return RecordingBinder()


@pytest.fixture
def served_extender(binder):
    """本服务对外提供的GPU扩展器，测试结束后清理全局状态"""
    extender = ResourceExtender("gpu-ext", binder=binder)
    set_served_extender(extender)
    yield extender
    set_served_extender(None)
    set_orchestrator(None)
    update_node_cache([])
