"""应用状态管理模块"""
from typing import Dict, Iterable, List, Optional
from contextlib import asynccontextmanager

import aiohttp
from loguru import logger

from scheduler_extender.core.config import settings, load_extender_configs
from scheduler_extender.schemas.common import NodeInfo
from scheduler_extender.services.bind_service import KubernetesBinder
from scheduler_extender.services.extender import Extender
from scheduler_extender.services.http_extender import build_extenders
from scheduler_extender.services.orchestrator import SchedulingOrchestrator
from scheduler_extender.services.resource_extender import ResourceExtender

# 全局状态
_served_extender: Optional[Extender] = None
_orchestrator: Optional[SchedulingOrchestrator] = None
_http_session: Optional[aiohttp.ClientSession] = None
_node_cache: Dict[str, NodeInfo] = {}


def get_served_extender() -> Optional[Extender]:
    """获取本服务对外提供的扩展器"""
    return _served_extender


def set_served_extender(extender: Optional[Extender]) -> None:
    """替换本服务对外提供的扩展器"""
    global _served_extender
    _served_extender = extender


def get_orchestrator() -> Optional[SchedulingOrchestrator]:
    """获取调度编排器实例"""
    return _orchestrator


def set_orchestrator(orchestrator: Optional[SchedulingOrchestrator]) -> None:
    """替换调度编排器实例"""
    global _orchestrator
    _orchestrator = orchestrator


def get_node_cache() -> Dict[str, NodeInfo]:
    """获取节点缓存（节点名 -> 节点快照）"""
    return _node_cache


def update_node_cache(nodes: Iterable[NodeInfo]) -> List[str]:
    """
    用新的节点快照替换节点缓存

    Returns:
        List[str]: 缓存中的节点名
    """
    _node_cache.clear()
    for node in nodes:
        _node_cache[node.name] = node
    logger.info(f"节点缓存已更新，节点数量={len(_node_cache)}")
    return list(_node_cache)


def build_served_extender() -> ResourceExtender:
    """根据配置创建本服务对外提供的扩展器"""
    binder = KubernetesBinder() if settings.SERVED_EXTENDER_BIND else None
    extender = ResourceExtender(
        name=settings.SERVED_EXTENDER_NAME,
        resource_name=settings.MANAGED_RESOURCE,
        weight=settings.SERVED_EXTENDER_WEIGHT,
        binder=binder,
        ignorable=settings.SERVED_EXTENDER_IGNORABLE,
    )
    logger.info(f"扩展器 {extender.name()} 已创建，管理资源={extender.resource_name}，绑定={extender.is_binder()}")
    return extender


@asynccontextmanager
async def manage_services():
    """统一管理所有服务的生命周期"""
    global _http_session

    try:
        set_served_extender(build_served_extender())

        if settings.EXTENDER_CONFIG_FILE:
            configs = load_extender_configs(settings.EXTENDER_CONFIG_FILE)
            _http_session = aiohttp.ClientSession()
            set_orchestrator(SchedulingOrchestrator(build_extenders(configs, session=_http_session)))
            logger.info(f"调度编排器已启动，远程扩展器数量={len(configs)}")
        else:
            logger.info("未配置EXTENDER_CONFIG_FILE，调度编排接口不可用")

        logger.info("所有服务已启动")
        yield
    except Exception as e:
        logger.error(f"服务初始化失败: {str(e)}")
        raise
    finally:
        if _http_session is not None:
            try:
                await _http_session.close()
            except Exception as e:
                logger.error(f"关闭HTTP会话时出错: {str(e)}")
            finally:
                _http_session = None

        set_orchestrator(None)
        set_served_extender(None)
        _node_cache.clear()
        logger.info("所有服务已关闭")
