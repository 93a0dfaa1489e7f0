"""抢占处理API路由模块"""
from typing import Dict

from loguru import logger
from fastapi import APIRouter, HTTPException

from scheduler_extender.core.app_state import get_node_cache
from scheduler_extender.schemas.preemption import (
    ExtenderPreemptionArgs,
    ExtenderPreemptionResult,
    MetaVictims,
    Victims,
)
from scheduler_extender.services.node_lister import SnapshotNodeInfoLister
from scheduler_extender.api.v1.utils import require_served_extender

router = APIRouter(tags=["preemption"])


@router.post("/preemption", response_model=ExtenderPreemptionResult)
async def process_preemption(args: ExtenderPreemptionArgs) -> ExtenderPreemptionResult:
    """
    处理抢占候选节点和牺牲者

    节点信息从节点缓存中读取；请求只携带牺牲者UID时，按UID在节点上查找Pod。

    Args:
        args: 抢占请求

    Returns:
        ExtenderPreemptionResult: 保留的节点及其牺牲者UID
    """
    extender = require_served_extender()
    node_infos = SnapshotNodeInfoLister(get_node_cache().values())

    try:
        if args.node_name_to_victims is not None:
            node_to_victims: Dict[str, Victims] = dict(args.node_name_to_victims)
        else:
            node_to_victims = {
                node_name: meta_victims.to_victims(node_infos.get(node_name))
                for node_name, meta_victims in (args.node_name_to_meta_victims or {}).items()
            }
    except KeyError as e:
        logger.error(f"解析抢占请求失败: {e.args[0]}")
        raise HTTPException(status_code=400, detail=f"解析抢占请求失败: {e.args[0]}")

    logger.info(f"收到抢占请求: Pod={args.pod.key}, 候选节点={sorted(node_to_victims)}")

    if not extender.is_interested(args.pod):
        result = node_to_victims
    else:
        try:
            result = await extender.process_preemption(args.pod, node_to_victims, node_infos)
        except Exception as e:
            logger.error(f"抢占处理失败: {str(e)}", exc_info=True)
            raise HTTPException(status_code=500, detail=f"抢占处理失败: {str(e)}")

    logger.info(f"抢占处理完成: 保留节点={sorted(result)}")
    return ExtenderPreemptionResult(
        node_name_to_meta_victims={
            node_name: MetaVictims.from_victims(victims) for node_name, victims in result.items()
        }
    )
