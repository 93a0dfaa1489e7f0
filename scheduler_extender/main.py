"""应用入口模块"""
import sys
import time
import traceback
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware
from fastapi_offline import FastAPIOffline
from loguru import logger

from scheduler_extender.api.v1 import register_routers
from scheduler_extender.core.config import settings
from scheduler_extender.core.exceptions import ExtenderConfigError
from scheduler_extender.core.app_state import (
    manage_services,
    get_served_extender,
    get_orchestrator,
    get_node_cache,
)

# 配置日志
logger.remove()
logger.add(sys.stderr, level=settings.LOG_LEVEL)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    应用生命周期管理

    启动时创建对外提供的扩展器，配置了远程扩展器时同时创建调度编排器；
    扩展器配置无效时拒绝启动。
    """
    logger.info("调度扩展器服务启动中...")
    logger.info(f"应用名称: {settings.APP_NAME}, 版本: {settings.APP_VERSION}")

    try:
        async with manage_services():
            extender = get_served_extender()
            orchestrator = get_orchestrator()
            logger.info(f"扩展器 {extender.name()} 已就绪")
            if orchestrator is not None:
                logger.info(f"调度编排器已就绪，扩展器顺序: {orchestrator.registry.names()}")
            yield
    except ExtenderConfigError as e:
        logger.error(f"扩展器配置无效，应用启动失败: {str(e)}")
        raise

    logger.info("应用已关闭")


# 创建FastAPI应用
app = FastAPIOffline(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    openapi_url=f"{settings.API_V1_PREFIX}/openapi.json",
    docs_url=f"{settings.API_V1_PREFIX}/docs",
    redoc_url=f"{settings.API_V1_PREFIX}/redoc",
    lifespan=lifespan,
)

# 配置CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# 注册扩展器接口和调度编排接口
register_routers(app)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    """记录扩展器接口的调用及耗时"""
    start = time.perf_counter()
    response = await call_next(request)
    elapsed_ms = (time.perf_counter() - start) * 1000
    logger.info(f"{request.method} {request.url.path} - {response.status_code} ({elapsed_ms:.1f}ms)")
    return response


@app.get("/")
async def root():
    """服务信息"""
    extender = get_served_extender()
    return {
        "app": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "extender": extender.name() if extender else None,
        "orchestrator": get_orchestrator() is not None,
        "status": "running"
    }


@app.get("/health")
async def health_check():
    """健康检查接口"""
    return {"status": "healthy"}


@app.get("/ready")
async def readiness_check():
    """就绪检查: 扩展器创建完成后才接收调度器请求"""
    extender = get_served_extender()
    if extender is None:
        return JSONResponse(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, content={"status": "not ready"})
    return {
        "status": "ready",
        "extender": extender.name(),
        "cached_nodes": len(get_node_cache()),
    }


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """
    全局异常处理
    """
    logger.error(f"全局异常: {str(exc)}")
    logger.error(traceback.format_exc())

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "success": False,
            "message": "服务器内部错误",
            "detail": str(exc)
        }
    )


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("scheduler_extender.main:app", host=settings.HOST, port=settings.PORT, reload=settings.DEBUG)
