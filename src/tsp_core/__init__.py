# src/tsp_core/__init__.py
"""
TSP-Core v1.0.0
Tunnel Setup Protocol (TSP) 隧道代理客户端核心库。
"""

# 暴露核心配置
from .config import (
    TspConfig,
    create_config_from_dict,
    load_config_from_env,
    load_config_from_toml,
)

# 暴露引擎与状态
from .core import TspCore

# 暴露异常体系 (方便上层 try-except)
from .exceptions import (
    ActionFailed,
    AuthError,
    ConfigError,
    DecodeError,
    MechanismError,
    NetworkError,
    ProtocolError,
    SequenceOverflowError,
    TransportTimeout,
    TspError,
    VersionMismatch,
)
from .state import SessionPhase, TspState, TunnelAction

__version__ = "1.0.0"

__all__ = [
    "TspCore",
    "TspConfig",
    "TspState",
    "SessionPhase",
    "TunnelAction",
    "create_config_from_dict",
    "load_config_from_env",
    "load_config_from_toml",
    "TspError",
    "ConfigError",
    "NetworkError",
    "TransportTimeout",
    "ProtocolError",
    "DecodeError",
    "SequenceOverflowError",
    "VersionMismatch",
    "AuthError",
    "MechanismError",
    "ActionFailed",
]
