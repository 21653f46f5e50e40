# src/tsp_core/network.py
"""
TSP 核心库 - 网络模块 (Network) [Asyncio Edition]

封装 UDP Endpoint 的创建、发送和接收逻辑。
Endpoint 直接 connect 到 Broker，向会话层提供纯粹的 bytes 收发接口。
"""

import asyncio
import logging
from typing import Optional, Union, cast

from .config import TspConfig
from .exceptions import NetworkError, TransportTimeout
from .protocols.constants import MAX_DATAGRAM_SIZE

logger = logging.getLogger(__name__)


class TspUdpProtocol(asyncio.DatagramProtocol):
    """
    asyncio UDP 协议适配器。
    将回调风格的 datagram_received 转换为 Queue 模式，供上层 await 使用。
    """

    def __init__(self):
        self.transport: Optional[asyncio.DatagramTransport] = None
        # 队列内容可以是数据，也可以是异常对象（用于快速失败）
        self.queue: asyncio.Queue[Union[bytes, Exception]] = asyncio.Queue(
            maxsize=128
        )

    def connection_made(self, transport: asyncio.BaseTransport) -> None:
        self.transport = cast(asyncio.DatagramTransport, transport)
        logger.debug("UDP Transport 已建立")

    def datagram_received(self, data: bytes, addr) -> None:
        """接收数据并放入队列"""
        try:
            self.queue.put_nowait(data)
        except asyncio.QueueFull:
            logger.warning("UDP 接收队列已满，丢弃数据包")

    def error_received(self, exc: Exception) -> None:
        """处理 UDP 错误 (如 ICMP Port Unreachable)"""
        logger.error(f"UDP 错误: {exc}")
        self._propagate_error(NetworkError(f"UDP 错误: {exc}"))

    def connection_lost(self, exc: Optional[Exception]) -> None:
        """处理连接断开"""
        if exc:
            logger.warning(f"UDP 连接断开: {exc}")
            self._propagate_error(NetworkError(f"连接断开: {exc}"))
        else:
            logger.debug("UDP 连接已正常关闭")
            self._propagate_error(NetworkError("连接已关闭"))
        self.transport = None

    def _propagate_error(self, exc: Exception) -> None:
        """将底层错误立即传播给上层消费者"""
        try:
            self.queue.put_nowait(exc)
        except asyncio.QueueFull:
            # 队列满时腾出一个位置，保证错误能被传达
            self.queue.get_nowait()
            self.queue.put_nowait(exc)


class NetworkClient:
    """
    封装 asyncio UDP 操作的客户端。
    """

    def __init__(self, config: TspConfig):
        self.config = config
        self.protocol: Optional[TspUdpProtocol] = None
        self.transport: Optional[asyncio.DatagramTransport] = None

    async def connect(self) -> None:
        """
        初始化 UDP Endpoint 并绑定到 Broker 地址。
        """
        loop = asyncio.get_running_loop()
        remote_addr = (self.config.server_address, self.config.server_port)

        try:
            transport, protocol = await loop.create_datagram_endpoint(
                TspUdpProtocol,
                remote_addr=remote_addr,
            )
            self.transport = cast(asyncio.DatagramTransport, transport)
            self.protocol = cast(TspUdpProtocol, protocol)
            logger.debug(f"Async Socket 已连接: {remote_addr}")

        except OSError as e:
            await self.close()
            raise NetworkError(f"无法连接 Broker {remote_addr}: {e}") from e

    async def send(self, packet: bytes) -> None:
        """
        发送 UDP 数据包。
        """
        if len(packet) > MAX_DATAGRAM_SIZE:
            raise NetworkError(
                f"数据包过大: {len(packet)} > {MAX_DATAGRAM_SIZE} 字节"
            )

        if not self.transport or self.transport.is_closing():
            if not self.transport:
                await self.connect()
            else:
                raise NetworkError("Transport 已关闭")

        assert self.transport is not None

        try:
            # sendto 是同步非阻塞的，已 connect 的 Endpoint 不需要目标地址
            self.transport.sendto(packet)
        except OSError as e:
            raise NetworkError(f"发送失败: {e}") from e

    async def receive(self, timeout: float) -> bytes:
        """
        接收一个完整的 UDP 数据报 (Async)。

        使用 asyncio.wait_for 实现超时控制。
        """
        if not self.protocol:
            raise NetworkError("Protocol 未初始化")

        try:
            item = await asyncio.wait_for(self.protocol.queue.get(), timeout=timeout)
        except asyncio.TimeoutError:
            raise TransportTimeout(f"接收超时 ({timeout}s)") from None

        if isinstance(item, Exception):
            raise item
        return item

    async def close(self) -> None:
        """关闭 Transport"""
        if self.transport:
            self.transport.close()
            self.transport = None
            logger.debug("UDP Transport 已关闭")

    async def __aenter__(self):
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
