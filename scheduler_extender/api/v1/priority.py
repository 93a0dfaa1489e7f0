"""节点打分API路由"""
from typing import List

from loguru import logger
from fastapi import APIRouter, HTTPException

from scheduler_extender.schemas.filter import ExtenderArgs
from scheduler_extender.schemas.priority import HostPriority
from scheduler_extender.api.v1.utils import require_served_extender, resolve_nodes

router = APIRouter(tags=["priority"])


@router.post("/prioritize", response_model=List[HostPriority])
async def prioritize_nodes(args: ExtenderArgs) -> List[HostPriority]:
    """计算节点优先级

    Args:
        args: 打分请求，包含Pod和已过滤的节点列表

    Returns:
        List[HostPriority]: 节点优先级列表，未出现的节点按0分计
    """
    extender = require_served_extender()
    nodes, _ = resolve_nodes(args)
    logger.info(f"收到节点优先级计算请求，Pod: {args.pod.key}，节点数量={len(nodes)}")

    if not extender.is_interested(args.pod):
        return []

    try:
        priorities, weight = await extender.prioritize(args.pod, nodes)
    except Exception as e:
        logger.error(f"计算节点优先级失败: {str(e)}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"计算节点优先级失败: {str(e)}")

    logger.info(f"节点优先级计算完成: {[(p.host, p.score) for p in priorities]}，权重={weight}")
    return priorities
