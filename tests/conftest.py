# tests/conftest.py
import hashlib
import sys
from pathlib import Path

import pytest

# 确保 src 目录在 sys.path 中
src_path = Path(__file__).resolve().parent.parent / "src"
if str(src_path) not in sys.path:
    sys.path.insert(0, str(src_path))

from tsp_core.config import TspConfig
from tsp_core.state import TunnelAction


@pytest.fixture
def valid_config():
    """
    [Fixture] 返回一个 info 操作的 TspConfig 对象。
    其他操作请用 dataclasses.replace 派生。
    """
    return TspConfig(
        username="test_user",
        password="test_password",
        action=TunnelAction.INFO,
        client_ip="192.0.2.10",
        server_address="127.0.0.1",
        server_port=3653,
        recv_timeout=1.0,
        sasl_service="tsp",
        sasl_host="hexos",
        ip_lookup_url="https://api.ipify.org",
        ip_lookup_timeout=1.0,
    )


@pytest.fixture
def digest_rspauth():
    """
    [Fixture] 模拟 Broker 按 RFC 2831 计算 rspauth。
    参数为客户端 digest-response 解析后的字段 (dict[str, bytes]) 与密码。
    """

    def _rspauth(fields: dict, password: str) -> bytes:
        def md5_hex(data: bytes) -> bytes:
            return hashlib.md5(data).hexdigest().encode("ascii")

        key = hashlib.md5(
            fields["username"] + b":" + fields["realm"] + b":" + password.encode()
        ).digest()
        a1 = key + b":" + fields["nonce"] + b":" + fields["cnonce"]
        a2 = b":" + fields["digest-uri"]
        return md5_hex(
            b":".join(
                [
                    md5_hex(a1),
                    fields["nonce"],
                    fields["nc"],
                    fields["cnonce"],
                    fields["qop"],
                    md5_hex(a2),
                ]
            )
        )

    return _rspauth
