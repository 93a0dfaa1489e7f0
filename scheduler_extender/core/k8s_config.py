"""Kubernetes配置模块"""
import os

from kubernetes import client, config
from loguru import logger


def load_kubernetes_config():
    """
    加载Kubernetes配置

    按以下顺序尝试加载配置：
    1. 如果设置了USE_SERVICE_ACCOUNT=true，优先使用ServiceAccount配置
    2. 依次尝试 KUBECONFIG_PATH、项目根目录的 kubeconfig.yaml、~/.kube/config、
       环境变量 KUBECONFIG 指定的文件

    Raises:
        FileNotFoundError: 没有找到可用的kubeconfig文件
    """
    # 延迟导入settings，避免循环导入
    from scheduler_extender.core.config import settings

    use_service_account = settings.USE_SERVICE_ACCOUNT
    logger.info(f"加载Kubernetes配置: USE_SERVICE_ACCOUNT={use_service_account}")

    if use_service_account:
        try:
            # 使用集群内ServiceAccount配置
            config.load_incluster_config()
            logger.info("已使用ServiceAccount加载Kubernetes配置")
            return
        except config.ConfigException as e:
            logger.warning(f"使用ServiceAccount加载配置失败，将尝试本地配置: {str(e)}")

    candidates = [
        settings.KUBECONFIG_PATH,
        os.path.join(os.getcwd(), "kubeconfig.yaml"),
        os.path.expanduser("~/.kube/config"),
        os.environ.get("KUBECONFIG"),
    ]
    for kubeconfig_path in candidates:
        if not kubeconfig_path:
            continue
        if not os.path.exists(kubeconfig_path):
            logger.debug(f"未找到kubeconfig文件: {kubeconfig_path}")
            continue
        if os.path.getsize(kubeconfig_path) == 0:
            logger.warning(f"kubeconfig文件存在但为空: {kubeconfig_path}")
            continue
        config.load_kube_config(kubeconfig_path)
        logger.info(f"已加载Kubernetes配置: {kubeconfig_path}")
        return

    logger.error("Kubernetes配置加载失败: 未找到有效的kubeconfig文件")
    raise FileNotFoundError("未找到有效的kubeconfig文件，请确保kubeconfig.yaml文件存在且不为空")


def get_core_v1_client() -> client.CoreV1Api:
    """
    获取Kubernetes CoreV1客户端

    Returns:
        CoreV1Api: Kubernetes API客户端
    """
    load_kubernetes_config()
    return client.CoreV1Api()


# 导出函数
__all__ = [
    'load_kubernetes_config',
    'get_core_v1_client',
]
