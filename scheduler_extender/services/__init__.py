"""
业务服务模块
"""

__all__ = [
    'extender',
    'node_lister',
    'fake_extender',
    'resource_extender',
    'http_extender',
    'bind_service',
    'orchestrator',
]
