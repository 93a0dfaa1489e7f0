"""资源解析工具"""
from typing import Iterable, Optional, Union

from loguru import logger

CPU_RESOURCE = "cpu"
MEMORY_RESOURCES = ("memory", "ephemeral-storage")


def parse_resource_value(value: Union[str, int, float, None], resource_name: Optional[str] = None) -> int:
    """解析资源值

    CPU按毫核计、内存按MB计；扩展资源（例如 "nvidia.com/gpu"）是整数计数，
    按原值返回。

    Args:
        value: 资源值字符串，例如 "200m"（CPU）、"256Mi"（内存）或 "2"（GPU）
        resource_name: 资源名称，未指定时按CPU/内存的后缀规则推断

    Returns:
        int: 标准化后的资源值
    """
    if value is None or value == "":
        return 0

    if isinstance(value, (int, float)):
        if resource_name == CPU_RESOURCE:
            return int(value * 1000)
        return int(value)

    # 移除可能的空格
    value = value.strip()

    if resource_name is not None and resource_name != CPU_RESOURCE and resource_name not in MEMORY_RESOURCES:
        # 扩展资源只允许整数
        try:
            return int(value)
        except ValueError:
            logger.warning(f"无法解析扩展资源 {resource_name} 的值: {value}，返回0")
            return 0

    # CPU资源处理
    if value.endswith('m'):
        return int(value[:-1])

    # 内存资源处理
    value_upper = value.upper()

    # 处理内存单位
    memory_units = {
        'KI': lambda v: int(v) // 1024,  # KiB to MB
        'MI': lambda v: int(v),  # MiB to MB
        'GI': lambda v: int(v) * 1024,  # GiB to MB
        'TI': lambda v: int(v) * 1024 * 1024,  # TiB to MB
        'K': lambda v: int(v) // 1000,  # KB to MB
        'M': lambda v: int(v),  # MB to MB
        'G': lambda v: int(v) * 1000,  # GB to MB
    }

    # 检查是否匹配任何内存单位
    for unit, converter in memory_units.items():
        if value_upper.endswith(unit):
            try:
                return converter(value_upper[:-len(unit)])
            except ValueError:
                logger.warning(f"无法解析资源值: {value}，返回0")
                return 0

    if resource_name in MEMORY_RESOURCES:
        # 不带单位的内存按字节计
        try:
            return int(value) // (1024 * 1024)
        except ValueError:
            logger.warning(f"无法解析资源值: {value}，返回0")
            return 0

    # 纯数字（包括小数），按CPU核数处理
    try:
        return int(float(value) * 1000)
    except ValueError:
        logger.warning(f"无法解析资源值: {value}，返回0")
        return 0


def sum_resource_lists(resource_lists: Iterable[Optional[dict]], resource_name: str) -> int:
    """对多个资源列表中的同一资源求和

    Args:
        resource_lists: 资源列表序列，每项为 {资源名: 资源值}
        resource_name: 资源名称

    Returns:
        int: 标准化后的资源总量
    """
    total = 0
    for resources in resource_lists:
        if resources:
            total += parse_resource_value(resources.get(resource_name), resource_name)
    return total