"""调度编排API路由模块"""
from fastapi import APIRouter, HTTPException
from loguru import logger

from scheduler_extender.core.app_state import get_orchestrator
from scheduler_extender.schemas.schedule import ScheduleRequest, ScheduleResult
from scheduler_extender.api.v1.utils import handle_scheduling_error

router = APIRouter(tags=["scheduler"])


@router.post("/schedule", response_model=ScheduleResult)
async def schedule_pod(request: ScheduleRequest) -> ScheduleResult:
    """
    使用已配置的远程扩展器完成一次调度尝试

    Args:
        request: 调度请求，包含Pod、候选节点以及调度器核心的节点得分

    Returns:
        ScheduleResult: 调度结果
    """
    orchestrator = get_orchestrator()
    if orchestrator is None:
        raise HTTPException(status_code=503, detail="调度编排器未初始化，请配置EXTENDER_CONFIG_FILE")

    logger.info(f"收到调度请求: Pod={request.pod.key}, 候选节点数量={len(request.nodes)}")
    try:
        return await orchestrator.schedule(request.pod, request.nodes, request.base_scores)
    except Exception as e:
        handle_scheduling_error(e)
