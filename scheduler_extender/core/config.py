"""配置模块"""
import os
from typing import Optional, List

import yaml
from loguru import logger
from pydantic import ConfigDict, ValidationError
from pydantic_settings import BaseSettings

from scheduler_extender.core.exceptions import ExtenderConfigError
from scheduler_extender.schemas.extender_config import ExtenderConfig


class Settings(BaseSettings):
    """应用配置类"""

    # 应用信息
    APP_NAME: str = "调度扩展器服务"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # 服务器配置
    HOST: str = "0.0.0.0"
    PORT: int = 8000
    API_V1_PREFIX: str = "/v1"
    API_V1_STR: str = "/api/v1"

    # Kubernetes配置
    USE_SERVICE_ACCOUNT: bool = False
    KUBECONFIG_PATH: Optional[str] = None

    # 调度编排配置
    EXTENDER_CALL_TIMEOUT: float = 5.0  # Filter/Prioritize/ProcessPreemption调用超时（秒）
    EXTENDER_BIND_TIMEOUT: float = 30.0  # Bind调用超时（秒）
    PREEMPTION_MERGE_POLICY: str = "last_applied_wins"  # last_applied_wins, first_applied_wins, largest_victim_set
    EXTENDER_CONFIG_FILE: Optional[str] = None  # 远程扩展器配置文件（YAML）

    # 本服务对外提供的扩展器
    SERVED_EXTENDER_NAME: str = "gpu-ext"
    MANAGED_RESOURCE: str = "nvidia.com/gpu"
    SERVED_EXTENDER_WEIGHT: int = 1
    SERVED_EXTENDER_BIND: bool = False  # 是否通过API Server执行绑定
    SERVED_EXTENDER_IGNORABLE: bool = False

    model_config = ConfigDict(
        env_file=".env",
        extra="ignore"  # 允许额外的字段
    )


def load_extender_configs(path: str) -> List[ExtenderConfig]:
    """从YAML文件加载扩展器配置

    文件格式:
        extenders:
          - urlPrefix: http://127.0.0.1:8000/api/v1
            filterVerb: filter
            weight: 2

    Args:
        path: 配置文件路径

    Returns:
        List[ExtenderConfig]: 按配置顺序排列的扩展器配置

    Raises:
        ExtenderConfigError: 文件不存在、格式错误或配置校验失败
    """
    if not os.path.exists(path):
        raise ExtenderConfigError(f"扩展器配置文件不存在: {path}")

    with open(path, "r", encoding="utf-8") as f:
        try:
            document = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ExtenderConfigError(f"扩展器配置文件格式错误: {str(e)}") from e

    if not isinstance(document, dict):
        raise ExtenderConfigError("扩展器配置文件顶层必须是映射")

    configs = []
    for index, raw in enumerate(document.get("extenders") or []):
        try:
            configs.append(ExtenderConfig.model_validate(raw))
        except ValidationError as e:
            raise ExtenderConfigError(f"第{index}个扩展器配置无效: {str(e)}") from e

    binders = [c.url_prefix for c in configs if c.bind_verb]
    if len(binders) > 1:
        raise ExtenderConfigError(f"最多只能配置一个绑定扩展器，当前配置了{len(binders)}个: {binders}")

    logger.info(f"已从 {path} 加载 {len(configs)} 个扩展器配置")
    return configs


# 创建全局设置实例
settings = Settings()

# 导出设置
__all__ = ["settings", "Settings", "load_extender_configs"]
