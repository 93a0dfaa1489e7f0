"""
调度扩展器

Kubernetes调度器扩展器（Scheduler Extender）契约的Python实现，
包含扩展器接口、HTTP扩展器适配器、资源扩展器服务以及调度编排器。
"""

__version__ = "1.0.0"
__description__ = "调度扩展器是一个基于FastAPI的Kubernetes调度扩展服务及扩展器契约实现"
__author__ = "Edge Scheduler Team"
