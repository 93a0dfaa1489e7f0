"""
API v1版本路由

filter / prioritize / bind / preemption 是调度器调用的扩展器接口，
nodes 维护节点缓存（nodeCacheCapable 模式），schedule 是调度编排接口。
"""
from fastapi import FastAPI, APIRouter
from loguru import logger

from scheduler_extender.api.v1 import filter, priority, bind, preemption, nodes, scheduler
from scheduler_extender.core.config import settings

# 扩展器接口
extender_modules = [filter, priority, bind, preemption]
# 节点缓存与调度编排接口
management_modules = [nodes, scheduler]


def register_routers(app: FastAPI, prefix: str = "") -> None:
    """
    注册所有API路由

    Args:
        app: FastAPI应用实例
        prefix: 路由前缀，默认使用settings.API_V1_STR
    """
    prefix = prefix or settings.API_V1_STR

    main_router = APIRouter()
    for module in extender_modules + management_modules:
        main_router.include_router(module.router)

    app.include_router(main_router, prefix=prefix)
    logger.debug(f"已注册API路由，前缀={prefix}，路由数量={len(main_router.routes)}")
