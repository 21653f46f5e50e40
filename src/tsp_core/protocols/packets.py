# File: src/tsp_core/protocols/packets.py
"""
TSP 协议封包构建器与解析器 (Packet Codec)

负责将 Python 数据结构转换为符合协议规范的二进制字节流 (bytes)，以及反向解析。
本模块是无状态的 (Stateless)，不持有任何配置或会话信息。

帧结构 (小端序):
    Word(4B: marker 低 4 bit + sequence 高 28 bit) + Timestamp(4B) + Payload + Footer(2B)

Payload 长度不在帧内声明，由 "数据报总长 - 10" 推得。
"""

import logging
import re
import struct
from dataclasses import dataclass

from ..exceptions import DecodeError
from ..state import TunnelAction
from . import constants
from .constants import ActionConst, FrameConst, SaslConst

logger = logging.getLogger(__name__)

_HEADER = struct.Struct("<II")
_SEPARATOR_RE = re.compile(SaslConst.SEPARATOR_PATTERN)


@dataclass(frozen=True)
class Frame:
    """解码后的数据帧。"""

    marker: int
    sequence: int
    timestamp: int
    payload: bytes
    footer: bytes

    @property
    def text(self) -> str:
        """Payload 的文本形式，仅用于日志和错误诊断。"""
        return self.payload.decode("utf-8", "replace")


# =========================================================================
# Frame Codec
# =========================================================================


def encode_frame(payload: bytes, sequence: int) -> bytes:
    """构建一个客户端数据帧。

    Args:
        payload: 消息正文。
        sequence: 28 bit 序列号。

    Returns:
        bytes: marker=0xF、timestamp=0、Footer=CRLF 的完整帧。

    Raises:
        ValueError: 序列号超出 28 bit 范围。
    """
    if not 0 <= sequence <= FrameConst.SEQUENCE_MAX:
        raise ValueError(f"序列号超出范围: {sequence}")

    word = (sequence << FrameConst.MARKER_BITS) | FrameConst.MARKER
    return _HEADER.pack(word, 0) + payload + FrameConst.FOOTER


def decode_frame(buffer: bytes) -> Frame:
    """解析一个完整的数据报。

    Footer 内容不做校验，任意 2 字节均可接受。

    Raises:
        DecodeError: 数据报短于 10 字节。
    """
    if len(buffer) < FrameConst.OVERHEAD:
        raise DecodeError(
            f"数据帧长度不足: {len(buffer)} < {FrameConst.OVERHEAD}",
            DecodeError.TRUNCATED,
        )

    word, timestamp = _HEADER.unpack_from(buffer)
    body_end = len(buffer) - FrameConst.FOOTER_LEN

    return Frame(
        marker=word & FrameConst.MARKER_MASK,
        sequence=word >> FrameConst.MARKER_BITS,
        timestamp=timestamp,
        payload=bytes(buffer[_HEADER.size : body_end]),
        footer=bytes(buffer[body_end:]),
    )


# =========================================================================
# Action Request / Response
# =========================================================================


def build_action_xml(action: TunnelAction, client_ip: str | None = None) -> str:
    """返回指定操作的 XML 正文。

    Raises:
        ValueError: create 操作缺少 client_ip。
    """
    if action is TunnelAction.CREATE:
        if not client_ip:
            raise ValueError("create 操作需要本机 IPv4 地址")
        return constants.XML_CREATE.format(ip=client_ip)
    if action is TunnelAction.ACCEPT:
        return constants.XML_ACCEPT
    if action is TunnelAction.DELETE:
        return constants.XML_DELETE
    return constants.XML_INFO


def build_action_request(xml: str) -> bytes:
    """构建操作请求的 Payload。

    结构: "Content-length: {N}\\r\\n" + XML，其中 N = len(XML) + 2。
    XML 之后不追加 CRLF。
    """
    body = xml.encode("utf-8")
    length = len(body) + ActionConst.CONTENT_LENGTH_EXTRA
    head = ActionConst.CONTENT_LENGTH_FMT.format(length=length).encode("ascii")
    return head + body


def parse_action_response(payload: bytes) -> tuple[str, str | None]:
    """解析操作响应的 Payload。

    按 CRLF 至多切成三段: 被忽略的首段、状态行、可选的 XML 正文。

    Returns:
        tuple: (状态行, XML 正文或 None)。状态行缺失时为空字符串。
    """
    parts = payload.split(ActionConst.LINE_SEP, 2)

    status = parts[1].decode("utf-8", "replace") if len(parts) > 1 else ""
    xml = None
    if len(parts) > 2:
        body = parts[2].rstrip(b"\r\n")
        if body:
            xml = body.decode("utf-8", "replace")

    logger.debug("action_response: status=%r has_xml=%s", status, xml is not None)
    return status, xml


# =========================================================================
# SASL 文本兼容补丁
# =========================================================================


def normalize_challenge(raw: bytes) -> bytes:
    """将服务器 Challenge 中的 `utf8` 改写为 `utf-8`。"""
    return raw.replace(SaslConst.CHARSET_FROM, SaslConst.CHARSET_TO)


def normalize_response(raw: bytes) -> bytes:
    """将客户端 Response 中逗号后的空格压缩掉 (`", "` -> `","`)。

    注意: 逗号后连续多个空格会一并去掉 (`",   "` -> `","`)，
    包括引号内的值 (如 realm)，而不是只替换单个 `", "`。
    这样处理一次与处理多次结果相同。pure-sasl 生成的 Response
    本身以 `","` 连接，正常情况下不受影响。
    """
    return _SEPARATOR_RE.sub(SaslConst.SEPARATOR_TO, raw)
