"""节点缓存API路由模块"""
from typing import List

from loguru import logger
from fastapi import APIRouter

from scheduler_extender.core.app_state import get_node_cache, update_node_cache
from scheduler_extender.schemas.common import NodeInfo

router = APIRouter(prefix="/nodes", tags=["nodes"])


@router.put("", response_model=List[str])
async def replace_nodes(nodes: List[NodeInfo]) -> List[str]:
    """用新的节点快照替换扩展器的节点缓存"""
    logger.info(f"收到节点缓存更新请求，节点数量={len(nodes)}")
    return update_node_cache(nodes)


@router.get("", response_model=List[NodeInfo])
async def list_nodes() -> List[NodeInfo]:
    """列出节点缓存中的节点"""
    return list(get_node_cache().values())
