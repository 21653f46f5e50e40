# src/tsp_core/protocols/__init__.py
"""
TSP 协议层 (Protocol Layer)

- packets: 数据帧的纯粹构建 (Build) 与解析 (Parse)，不包含任何 I/O。
- sequence: 会话私有的序列号计数器。
- sasl: Challenge-Response 认证机制适配。
- session: 协议会话状态机。
"""

from . import constants
from .packets import (
    Frame,
    build_action_request,
    build_action_xml,
    decode_frame,
    encode_frame,
    normalize_challenge,
    normalize_response,
    parse_action_response,
)
from .sasl import DigestMD5Mechanism, MechanismFactory, SaslMechanism
from .sequence import SequenceGenerator
from .session import TspSession

# 公共 API
__all__ = [
    "constants",
    "Frame",
    "encode_frame",
    "decode_frame",
    "build_action_xml",
    "build_action_request",
    "parse_action_response",
    "normalize_challenge",
    "normalize_response",
    "SequenceGenerator",
    "SaslMechanism",
    "MechanismFactory",
    "DigestMD5Mechanism",
    "TspSession",
]
