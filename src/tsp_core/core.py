# File: src/tsp_core/core.py
"""
TSP 核心引擎 (Core Engine)

职责：
1. 资源组装：State + Network + Config + SASL 机制。
2. 前置准备：create 操作缺少本机 IP 时自动查询公网地址。
3. 生命周期：Connect -> Version -> Authenticate -> Action -> Close。
"""

import asyncio
import inspect
import logging
from collections.abc import Awaitable, Callable
from dataclasses import replace
from typing import Any

from .config import TspConfig
from .exceptions import ConfigError, ProtocolError, TspError
from .network import NetworkClient
from .protocols.sasl import MechanismFactory
from .protocols.session import TspSession
from .state import SessionPhase, TspState, TunnelAction
from .utils import discover_public_ip

logger = logging.getLogger(__name__)

# 定义回调函数类型别名：支持同步或异步函数
StatusCallback = Callable[[SessionPhase, str], Any | Awaitable[Any]]


class TspCore:
    """TSP 隧道客户端核心引擎 (Async)。"""

    def __init__(
        self,
        config: TspConfig,
        mechanism_factory: MechanismFactory | None = None,
        status_callback: StatusCallback | None = None,
    ) -> None:
        """初始化核心引擎。

        Args:
            config: 全局配置对象。
            mechanism_factory: SASL 机制工厂。默认使用 pure-sasl DIGEST-MD5。
            status_callback: 初始状态回调。也可以之后通过 add_listener 注册。
        """
        self.config = config

        self._listeners: list[StatusCallback] = []
        self._pending: set[asyncio.Task] = set()
        if status_callback:
            self.add_listener(status_callback)

        try:
            self._state = TspState(client_ip=config.client_ip)
            self.net_client = NetworkClient(config)
            self.session = TspSession(
                config, self._state, self.net_client, mechanism_factory
            )
        except Exception as e:
            raise ConfigError(f"组件初始化失败: {e}") from e

    @property
    def state(self) -> TspState:
        """获取当前会话状态的只读副本。"""
        return replace(self._state, responses=list(self._state.responses))

    def add_listener(self, callback: StatusCallback) -> None:
        """注册状态变更监听器。"""
        if callback not in self._listeners:
            self._listeners.append(callback)

    def remove_listener(self, callback: StatusCallback) -> None:
        """移除状态变更监听器。"""
        if callback in self._listeners:
            self._listeners.remove(callback)

    async def run(self) -> list[str]:
        """执行一次完整的隧道操作。

        外部调用必须使用 await core.run()。无论成功与否，返回前都会关闭 Socket。

        Returns:
            list[str]: 服务器返回的 XML 正文 (例如隧道参数)。

        Raises:
            VersionMismatch: 服务器协议版本不兼容。
            AuthError: 认证被拒绝。
            ActionFailed: 隧道操作被拒绝。
            NetworkError: 网络通信异常 (含 TransportTimeout)。
            ProtocolError: 引擎已运行结束 (TspCore 只能使用一次)。
            TspError: 其他不可恢复的错误。
        """
        if self._state.phase.is_terminal:
            raise ProtocolError(
                f"会话已结束 ({self._state.phase.name})，请创建新的 TspCore"
            )

        self._notify(SessionPhase.UNSTARTED, f"开始 {self.config.action.value} 操作")

        try:
            if self.config.action is TunnelAction.CREATE and not self._state.client_ip:
                await self._resolve_client_ip()

            if not self.net_client.transport:
                await self.net_client.connect()

            await self.session.negotiate_version()
            self._notify(SessionPhase.VERSION_CHECKED, "版本协商完成")

            await self.session.authenticate()
            self._notify(SessionPhase.AUTHENTICATED, "认证成功")

            await self.session.perform_action()
            self._notify(
                SessionPhase.ACTION_COMPLETE, f"{self.config.action.value} 操作完成"
            )

        except TspError as e:
            self._state.phase = SessionPhase.FAILED
            self._state.last_error = str(e)
            self._notify(SessionPhase.FAILED, str(e))
            raise

        finally:
            await self.net_client.close()

        return list(self._state.responses)

    async def _resolve_client_ip(self) -> None:
        """查询公网 IPv4，写入会话状态。"""
        logger.info(f"未配置本机 IP，正在通过 {self.config.ip_lookup_url} 查询...")
        self._state.client_ip = await discover_public_ip(
            self.config.ip_lookup_url, timeout=self.config.ip_lookup_timeout
        )

    def _notify(self, phase: SessionPhase, msg: str) -> None:
        """记录日志并触发所有回调。"""
        logger.info(f"[{phase.name}] {msg}")

        for callback in self._listeners:
            try:
                if inspect.iscoroutinefunction(callback):
                    task = asyncio.create_task(callback(phase, msg))  # type: ignore
                    self._pending.add(task)
                    task.add_done_callback(self._pending.discard)
                else:
                    callback(phase, msg)
            except Exception as e:
                logger.error(f"回调执行异常: {e}")
