"""节点过滤API路由"""
from loguru import logger
from fastapi import APIRouter

from scheduler_extender.schemas.filter import ExtenderArgs, ExtenderFilterResult
from scheduler_extender.api.v1.utils import require_served_extender, resolve_nodes


# 创建路由器
router = APIRouter(tags=["filter"])


@router.post("/filter", response_model=ExtenderFilterResult, response_model_exclude_none=True)
async def filter_nodes(args: ExtenderArgs) -> ExtenderFilterResult:
    """
    过滤节点接口

    根据Pod的扩展资源请求过滤节点，请求只携带节点名时从节点缓存中查找节点

    Args:
        args: 过滤请求，包含Pod和节点列表（或节点名列表）

    Returns:
        过滤响应，包含符合条件的节点、可解决和不可解决的失败节点及原因；
        扩展器出错时错误信息放在error字段中
    """
    extender = require_served_extender()
    names_only = args.nodes is None
    nodes, missing = resolve_nodes(args)
    logger.info(f"收到过滤请求: Pod={args.pod.key}, 节点数量={len(nodes) + len(missing)}")

    if not extender.is_interested(args.pod):
        logger.info(f"扩展器 {extender.name()} 不关心Pod {args.pod.key}，全部节点通过")
        passed = [node.name for node in nodes]
        if names_only:
            return ExtenderFilterResult(node_names=passed, failed_nodes=missing)
        return ExtenderFilterResult(nodes=nodes, failed_nodes=missing)

    try:
        result = await extender.filter(args.pod, nodes)
    except Exception as e:
        logger.error(f"过滤节点时发生错误: {str(e)}", exc_info=True)
        return ExtenderFilterResult(error=f"过滤节点失败: {str(e)}")

    failed_nodes = dict(missing)
    failed_nodes.update(result.failed_nodes)
    logger.info(f"过滤结果: 符合条件的节点数量={len(result.nodes)}, 不符合条件的节点数量="
                f"{len(failed_nodes) + len(result.failed_and_unresolvable_nodes)}")

    if names_only:
        return ExtenderFilterResult(
            node_names=result.node_names,
            failed_nodes=failed_nodes,
            failed_and_unresolvable_nodes=result.failed_and_unresolvable_nodes
        )
    return ExtenderFilterResult(
        nodes=result.nodes,
        failed_nodes=failed_nodes,
        failed_and_unresolvable_nodes=result.failed_and_unresolvable_nodes
    )
