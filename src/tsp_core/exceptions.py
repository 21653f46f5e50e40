# File: src/tsp_core/exceptions.py
"""
TSP 核心库 - 异常体系 (Exceptions)

定义库内统一使用的异常类，以便上层应用（如 CLI）能进行精细的错误处理。
所有异常对会话而言都是终止性的：会话进入 FAILED 状态，不做内部重试。
"""


class TspError(Exception):
    """TSP 核心库的所有内部异常的基类。

    上层应用可以通过捕获此异常来处理所有由 tsp-core 抛出的已知错误。
    """

    pass


class ConfigError(TspError):
    """配置加载或校验失败。

    触发场景:
    1. 缺少必要字段 (如 username/password/action)。
    2. 字段格式错误 (如 IP 地址非法、端口不是整数)。
    3. 找不到配置文件或 Profile。
    """

    pass


class NetworkError(TspError):
    """网络层面的错误 (I/O 级别)。

    触发场景:
    1. Socket 创建失败或 Broker 域名无法解析。
    2. 发送 (send) 失败。
    3. 公网 IP 查询失败。
    """

    pass


class TransportTimeout(NetworkError):
    """接收超时。Broker 在限定时间内没有任何响应。"""

    pass


class ProtocolError(TspError):
    """协议交互错误 (逻辑级别)。

    触发场景:
    1. 数据包长度不足或结构损坏。
    2. 待发送的数据包超过 UDP 最大载荷。
    3. 序列号耗尽。
    """

    pass


class DecodeError(ProtocolError):
    """数据帧解码失败。"""

    TRUNCATED = "truncated"

    def __init__(self, message: str, reason: str = TRUNCATED) -> None:
        super().__init__(message)
        self.reason = reason


class SequenceOverflowError(ProtocolError):
    """28 位序列号已用尽，本次会话无法继续发送。"""

    pass


class VersionMismatch(ProtocolError):
    """版本协商失败：服务器返回的能力声明与预期不符。"""

    def __init__(self, server_payload: str) -> None:
        super().__init__(f"版本协商失败: {server_payload}")
        self.server_payload = server_payload


class AuthError(TspError):
    """认证被拒绝 (业务层面的失败)。

    当 DIGEST-MD5 握手结束后服务器没有返回 `200 Success` 时抛出。
    这通常意味着用户名或密码错误，需要用户干预。
    """

    def __init__(self, message: str, server_payload: str | None = None) -> None:
        super().__init__(message)
        self.server_payload = server_payload


class MechanismError(AuthError):
    """SASL 机制内部错误 (无法解析 Challenge、rspauth 校验失败等)。"""

    pass


class ActionFailed(TspError):
    """隧道操作 (create/accept/delete/info) 被服务器拒绝。

    Attributes:
        action: 失败的操作名称。
        status: 服务器返回的状态行原文。
        detail: 服务器随状态一同返回的 XML 正文 (可能为空)。
    """

    def __init__(self, action: str, status: str, detail: str | None = None) -> None:
        super().__init__(f"{action.capitalize()} 失败: {status}")
        self.action = action
        self.status = status
        self.detail = detail
