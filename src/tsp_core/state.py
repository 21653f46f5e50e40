# File: src/tsp_core/state.py
"""
TSP 核心库 - 状态模块

负责定义和存储所有易变的会话状态。
本模块不包含业务逻辑，仅作为数据容器供 Core 和 Session 共享读写。
"""

from dataclasses import dataclass, field
from enum import Enum, auto


class SessionPhase(Enum):
    """会话的生命周期阶段。

    状态流转示意 (只进不退):
    UNSTARTED -> VERSION_CHECKED -> AUTHENTICATED -> ACTION_COMPLETE
        |               |                 |
        v               v                 v
      FAILED          FAILED            FAILED
    """

    UNSTARTED = auto()
    """初始状态，尚未发送任何数据包。"""

    VERSION_CHECKED = auto()
    """版本协商完成，服务器能力声明与预期一致。"""

    AUTHENTICATED = auto()
    """DIGEST-MD5 认证成功。"""

    ACTION_COMPLETE = auto()
    """隧道操作成功完成。终态。"""

    FAILED = auto()
    """任意协议或网络错误。终态，不会重试。"""

    @property
    def is_terminal(self) -> bool:
        return self in (SessionPhase.ACTION_COMPLETE, SessionPhase.FAILED)


class TunnelAction(Enum):
    """隧道操作类型。

    ACCEPT 只作为 CREATE 成功后的子步骤出现，不能由调用方直接选择。
    """

    CREATE = "create"
    ACCEPT = "accept"
    DELETE = "delete"
    INFO = "info"

    @classmethod
    def selectable(cls) -> tuple["TunnelAction", ...]:
        """可由用户选择的操作。"""
        return (cls.CREATE, cls.DELETE, cls.INFO)

    @classmethod
    def parse(cls, value: str) -> "TunnelAction":
        """将字符串解析为可选操作，大小写不敏感。

        Raises:
            ValueError: 未知操作或不可直接选择的操作 (accept)。
        """
        action = cls(str(value).strip().lower())
        if action not in cls.selectable():
            raise ValueError(f"操作不可直接选择: {value}")
        return action


@dataclass
class TspState:
    """存储 TSP 会话的易变状态数据。

    该对象是非持久化的，每次运行客户端都应重新实例化。

    Attributes:
        phase: 当前会话阶段。
        last_error: 最近一次发生的错误信息描述，用于 UI 显示。
        responses: 服务器在操作响应中附带的 XML 正文，按接收顺序排列。
        client_ip: 实际用于 create 请求的本机公网 IPv4 地址。
    """

    phase: SessionPhase = SessionPhase.UNSTARTED
    last_error: str = ""
    responses: list[str] = field(default_factory=list)
    client_ip: str | None = None
