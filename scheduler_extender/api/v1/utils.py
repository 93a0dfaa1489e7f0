"""API工具函数"""
from typing import Dict, List, Tuple

from fastapi import HTTPException
from loguru import logger

from scheduler_extender.core.app_state import get_served_extender, get_node_cache
from scheduler_extender.core.exceptions import BindError, FitError, SchedulingFailedError
from scheduler_extender.schemas.common import NodeInfo
from scheduler_extender.schemas.filter import ExtenderArgs
from scheduler_extender.services.extender import Extender

NODE_NOT_CACHED = "节点不在扩展器缓存中"


def require_served_extender() -> Extender:
    """获取本服务对外提供的扩展器

    Raises:
        HTTPException: 扩展器未初始化
    """
    extender = get_served_extender()
    if extender is None:
        logger.error("扩展器未初始化")
        raise HTTPException(status_code=503, detail="扩展器未初始化")
    return extender


def handle_scheduling_error(e: Exception) -> None:
    """处理调度错误

    Args:
        e: 异常对象

    Raises:
        HTTPException: HTTP错误响应
    """
    if isinstance(e, FitError):
        logger.warning(f"没有可用节点: {e.message}")
        raise HTTPException(
            status_code=422,
            detail={"message": e.message, "failedNodes": e.failed_nodes}
        )
    if isinstance(e, SchedulingFailedError):
        logger.error(f"调度失败: {e.message}")
        raise HTTPException(
            status_code=503,
            detail={"message": e.message, "failedNodes": e.failed_nodes}
        )
    if isinstance(e, BindError):
        logger.error(f"绑定失败: {e.message}")
        raise HTTPException(status_code=500, detail={"message": str(e)})
    logger.error(f"调度过程中发生未知错误: {str(e)}", exc_info=True)
    raise HTTPException(status_code=500, detail=str(e))


def resolve_nodes(args: ExtenderArgs) -> Tuple[List[NodeInfo], Dict[str, str]]:
    """解析请求中的节点

    请求只携带节点名时从节点缓存中查找节点快照。

    Returns:
        Tuple[List[NodeInfo], Dict[str, str]]: (节点列表, 缓存中不存在的节点及原因)
    """
    if args.nodes is not None:
        return list(args.nodes), {}

    cache = get_node_cache()
    nodes = []
    missing = {}
    for node_name in args.node_names or []:
        node = cache.get(node_name)
        if node is None:
            missing[node_name] = NODE_NOT_CACHED
        else:
            nodes.append(node)
    if missing:
        logger.warning(f"节点缓存中不存在的节点: {list(missing)}")
    return nodes, missing
