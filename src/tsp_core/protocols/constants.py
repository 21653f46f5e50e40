# src/tsp_core/protocols/constants.py
"""
TSP 协议层 - 常量定义

仅定义协议的结构性常量 (帧结构、握手字符串、XML 模板)。
采用命名空间 (Class Namespace) 组织。
"""

# =========================================================================
# 1. 帧结构 (Frame Layout)
# =========================================================================


class FrameConst:
    """数据帧的固定结构"""

    MARKER = 0xF  # 客户端帧固定版本标记 (4 bit)
    MARKER_BITS = 4
    MARKER_MASK = 0xF
    SEQUENCE_MAX = (1 << 28) - 1  # 28 bit 序列号上限

    HEADER_LEN = 4  # marker + sequence
    TIMESTAMP_LEN = 4
    FOOTER = b"\r\n"
    FOOTER_LEN = 2
    OVERHEAD = HEADER_LEN + TIMESTAMP_LEN + FOOTER_LEN  # 10

    # 认证轮次中服务器响应缺失的半个 Footer
    AUTH_FOOTER_PATCH = b"\n"


# UDP 理论最大载荷
MAX_DATAGRAM_SIZE = 65507


# =========================================================================
# 2. 握手字符串 (Handshake)
# =========================================================================


class Handshake:
    """逐字节比较的协商/状态字符串"""

    VERSION_REQ = b"VERSION=2.0.1"
    CAPABILITY = b"CAPABILITY TUNNEL=V6V4 TUNNEL=V6UDPV4 AUTH=DIGEST-MD5"
    AUTHENTICATE_REQ = b"AUTHENTICATE DIGEST-MD5"
    SUCCESS = b"200 Success"


class SaslConst:
    MECHANISM = "DIGEST-MD5"
    LINE_END = "\r\n"

    # Challenge 中服务器声明的字符集写法，SASL 库只认 utf-8
    CHARSET_FROM = b"utf8"
    CHARSET_TO = b"utf-8"

    # 服务器解析器对空白敏感
    SEPARATOR_PATTERN = rb", +"
    SEPARATOR_TO = b","

    MAX_ROUNDS = 8


# =========================================================================
# 3. 操作请求 (Action Request)
# =========================================================================


class ActionConst:
    CONTENT_LENGTH_FMT = "Content-length: {length}\r\n"
    # 声明长度比正文多 2 字节 (预期的 CRLF 实际并不发送)
    CONTENT_LENGTH_EXTRA = 2
    LINE_SEP = b"\r\n"


# XML 模板需与服务器期望的版本化 Schema 逐字节一致
XML_CREATE = (
    '<tunnel action="create" type="v6anyv4" proxy="yes">\n'
    "  <client>\n"
    '    <address type="ipv4">{ip}</address>\n'
    "    <router>\n"
    '      <prefix length="64"/>\n'
    "    </router>\n"
    "  </client>\n"
    "</tunnel>\n"
)

XML_ACCEPT = '<tunnel action="accept"></tunnel>'

XML_INFO = '<tunnel action="info" type="v6anyv4">\n' "</tunnel>\n"

XML_DELETE = '<tunnel action="delete"></tunnel>'
