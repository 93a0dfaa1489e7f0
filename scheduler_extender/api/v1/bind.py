"""节点绑定API路由模块"""
from loguru import logger
from fastapi import APIRouter

from scheduler_extender.schemas.bind import Binding, ExtenderBindingResult
from scheduler_extender.api.v1.utils import require_served_extender

router = APIRouter(tags=["bind"])


@router.post("/bind", response_model=ExtenderBindingResult, summary="节点绑定请求")
async def bind_pod_to_node(binding: Binding) -> ExtenderBindingResult:
    """
    将Pod绑定到指定节点

    Args:
        binding: 绑定请求，包含Pod和目标节点信息

    Returns:
        ExtenderBindingResult: 绑定响应，如果绑定失败，包含错误信息
    """
    extender = require_served_extender()
    logger.info(f"收到节点绑定请求: Pod={binding.pod_key}, 节点={binding.node}")

    if not extender.is_binder():
        logger.warning(f"扩展器 {extender.name()} 未配置绑定")
        return ExtenderBindingResult(error=f"扩展器 {extender.name()} 不支持绑定")

    try:
        await extender.bind(binding)
    except Exception as e:
        logger.error(f"节点绑定过程中发生错误: {str(e)}", exc_info=True)
        return ExtenderBindingResult(error=str(e))

    logger.info(f"Pod {binding.pod_key} 成功绑定到节点 {binding.node}")
    return ExtenderBindingResult(error=None)
