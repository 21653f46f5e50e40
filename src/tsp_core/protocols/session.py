"""
TSP 会话状态机 (Session) - [Asyncio Edition]

职责：
1. 流程编排：Version -> Authenticate (DIGEST-MD5) -> Action。
2. 序列号：每个发出的数据帧都从会话私有的 SequenceGenerator 取号。
3. 异常处理：任何错误都使会话进入 FAILED 并原样上抛，不做重试。
"""

import base64
import binascii
import logging
from typing import TYPE_CHECKING

from ..exceptions import (
    ActionFailed,
    AuthError,
    ConfigError,
    ProtocolError,
    TspError,
    VersionMismatch,
)
from ..state import SessionPhase, TunnelAction
from . import packets
from .constants import MAX_DATAGRAM_SIZE, FrameConst, Handshake, SaslConst
from .sasl import DigestMD5Mechanism
from .sequence import SequenceGenerator

if TYPE_CHECKING:
    from ..config import TspConfig
    from ..network import NetworkClient
    from ..state import TspState
    from .sasl import MechanismFactory

_SUCCESS_STATUS = Handshake.SUCCESS.decode("ascii")


class TspSession:
    """单次客户端运行对应的 TSP 会话。

    会话只进不退；每次发送之后恰好等待一次接收，线上永远只有一个未完成的请求。
    """

    def __init__(
        self,
        config: "TspConfig",
        state: "TspState",
        net_client: "NetworkClient",
        mechanism_factory: "MechanismFactory | None" = None,
    ) -> None:
        """初始化会话。

        Args:
            config: 全局配置对象。
            state: 共享状态对象。
            net_client: 异步网络客户端。
            mechanism_factory: SASL 机制工厂，默认使用 pure-sasl 的 DIGEST-MD5。
        """
        self.config = config
        self.state = state
        self.net_client = net_client
        self.mechanism_factory = mechanism_factory or DigestMD5Mechanism.start
        self.sequence = SequenceGenerator()
        self.logger = logging.getLogger(self.__class__.__name__)

    @property
    def action(self) -> TunnelAction:
        return self.config.action

    async def run(self) -> list[str]:
        """执行完整会话。

        Returns:
            list[str]: 服务器在操作响应中附带的全部 XML 正文。

        Raises:
            TspError: 任一阶段失败。
        """
        await self.negotiate_version()
        await self.authenticate()
        await self.perform_action()
        return list(self.state.responses)

    async def negotiate_version(self) -> None:
        """UNSTARTED -> VERSION_CHECKED

        Raises:
            VersionMismatch: 服务器能力声明与预期不符。
            NetworkError: 网络超时或 I/O 错误。
        """
        self._expect_phase(SessionPhase.UNSTARTED)
        try:
            await self._negotiate_version()
        except TspError as e:
            self._fail(e)
            raise
        self._advance(SessionPhase.VERSION_CHECKED)

    async def authenticate(self) -> None:
        """VERSION_CHECKED -> AUTHENTICATED

        Raises:
            AuthError: 服务器未返回 200 Success，或机制始终未完成。
            MechanismError: SASL 机制无法处理 Challenge。
            NetworkError: 网络超时或 I/O 错误。
        """
        self._expect_phase(SessionPhase.VERSION_CHECKED)
        try:
            await self._authenticate()
        except TspError as e:
            self._fail(e)
            raise
        self._advance(SessionPhase.AUTHENTICATED)

    async def perform_action(self) -> None:
        """AUTHENTICATED -> ACTION_COMPLETE

        create 成功后会自动追加 accept 子步骤。

        Raises:
            ActionFailed: 任一操作的状态行不是 200 Success。
            NetworkError: 网络超时或 I/O 错误。
        """
        self._expect_phase(SessionPhase.AUTHENTICATED)
        try:
            if self.action is TunnelAction.CREATE:
                await self._send_action(TunnelAction.CREATE)
                await self._send_action(TunnelAction.ACCEPT)
            else:
                await self._send_action(self.action)
        except TspError as e:
            self._fail(e)
            raise
        self._advance(SessionPhase.ACTION_COMPLETE)

    # =========================================================================
    # 内部实现 (Async)
    # =========================================================================

    async def _negotiate_version(self) -> None:
        await self._send(Handshake.VERSION_REQ)
        frame = await self._receive()

        if frame.payload != Handshake.CAPABILITY:
            raise VersionMismatch(frame.text)

    async def _authenticate(self) -> None:
        """执行 AUTHENTICATE 请求与 Challenge/Response 循环。"""
        await self._send(Handshake.AUTHENTICATE_REQ)

        mechanism = self.mechanism_factory(
            self.config.username,
            self.config.password,
            self.config.sasl_service,
            self.config.sasl_host,
        )

        for round_no in range(1, SaslConst.MAX_ROUNDS + 1):
            # 服务器在这一步的响应缺少完整 Footer
            frame = await self._receive(patch_footer=True)
            challenge = packets.normalize_challenge(_b64decode(frame.payload))

            token, complete = mechanism.step(
                base64.b64encode(challenge).decode("ascii")
            )

            response = packets.normalize_response(_b64decode(token.encode("ascii")))
            line = base64.b64encode(response).decode("ascii")
            if line:
                line += SaslConst.LINE_END
            await self._send(line.encode("ascii"))

            self.logger.debug(f"SASL 第 {round_no} 轮完成 (complete={complete})")
            if complete:
                break
        else:
            raise AuthError(f"SASL 握手超过 {SaslConst.MAX_ROUNDS} 轮仍未完成")

        frame = await self._receive()
        if frame.payload != Handshake.SUCCESS:
            raise AuthError(f"认证失败: {frame.text}", frame.text)

    async def _send_action(self, action: TunnelAction) -> None:
        """发送一个操作请求并校验响应状态。"""
        client_ip = self.state.client_ip or self.config.client_ip
        if action is TunnelAction.CREATE and not client_ip:
            raise ConfigError("create 操作需要本机 IPv4 地址 (client_ip)")

        xml = packets.build_action_xml(action, client_ip)
        await self._send(packets.build_action_request(xml))
        frame = await self._receive()

        status, body = packets.parse_action_response(frame.payload)
        if status != _SUCCESS_STATUS:
            if body:
                self.logger.warning(f"{action.value} 响应正文: {body}")
            raise ActionFailed(action.value, status, body)

        if body:
            self.logger.info(f"{action.value} 响应:\n{body}")
            self.state.responses.append(body)
        self.logger.info(f"{action.value} 操作成功")

    async def _send(self, payload: bytes) -> None:
        """编码并发送一个数据帧。"""
        seq = self.sequence.next()
        frame = packets.encode_frame(payload, seq)
        if len(frame) > MAX_DATAGRAM_SIZE:
            raise ProtocolError(f"数据帧超过 UDP 最大载荷: {len(frame)} 字节")

        self.logger.debug(f">>> seq={seq} {payload!r}")
        await self.net_client.send(frame)

    async def _receive(self, patch_footer: bool = False) -> packets.Frame:
        """接收并解码一个数据帧。"""
        data = await self.net_client.receive(self.config.recv_timeout)
        if patch_footer:
            data += FrameConst.AUTH_FOOTER_PATCH

        frame = packets.decode_frame(data)
        self.logger.debug(f"<<< seq={frame.sequence} {frame.payload!r}")
        return frame

    def _advance(self, phase: SessionPhase) -> None:
        self.state.phase = phase
        self.logger.info(f"会话阶段: {phase.name}")

    def _expect_phase(self, phase: SessionPhase) -> None:
        if self.state.phase is not phase:
            raise ProtocolError(
                f"会话阶段错误: 期望 {phase.name}，当前 {self.state.phase.name}"
            )

    def _fail(self, error: Exception) -> None:
        """将会话标记为 FAILED。"""
        self.state.phase = SessionPhase.FAILED
        self.state.last_error = str(error)
        self.logger.error(f"会话失败: {error}")


def _b64decode(data: bytes) -> bytes:
    try:
        return base64.b64decode(data)
    except binascii.Error as e:
        raise ProtocolError(f"base64 解码失败: {e}") from e
