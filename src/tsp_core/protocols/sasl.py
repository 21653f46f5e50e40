"""
TSP SASL 机制适配层 (Authentication Adapter)

会话层只把 Challenge/Response 当作不透明的 base64 文本传递，
具体的 DIGEST-MD5 计算交给 pure-sasl。
"""

import abc
import base64
import binascii
import logging
from collections.abc import Callable

from puresasl import SASLError, SASLProtocolException, mechanisms
from puresasl.client import SASLClient

from ..exceptions import MechanismError
from .constants import SaslConst

logger = logging.getLogger(__name__)


class SaslMechanism(abc.ABC):
    """Challenge-Response 认证机制抽象基类。

    所有输入输出均为 base64 文本，会话层不关心机制内部细节。
    """

    @property
    @abc.abstractmethod
    def complete(self) -> bool:
        """机制是否已完成握手。"""
        raise NotImplementedError

    @abc.abstractmethod
    def step(self, challenge: str) -> tuple[str, bool]:
        """[Abstract] 处理一轮服务器 Challenge。

        Args:
            challenge: base64 编码的服务器 Challenge。

        Returns:
            tuple: (base64 编码的客户端 Response, 是否已完成)。

        Raises:
            MechanismError: 机制无法处理该 Challenge。
        """
        raise NotImplementedError


# 工厂签名: (username, password, service, host) -> SaslMechanism
MechanismFactory = Callable[[str, str, str, str], SaslMechanism]


class DigestMD5Mechanism(SaslMechanism):
    """基于 pure-sasl 的 DIGEST-MD5 客户端机制。

    第一轮根据服务器 nonce 生成 digest-response；
    第二轮 pure-sasl 总会校验服务器的 rspauth，校验通过后机制完成。
    因此一次完整握手恰好需要两轮 Challenge/Response。
    """

    def __init__(self, client: SASLClient) -> None:
        self._client = client

    @classmethod
    def start(
        cls, username: str, password: str, service: str, host: str
    ) -> "DigestMD5Mechanism":
        client = SASLClient(
            host,
            service,
            mechanism=SaslConst.MECHANISM,
            username=username,
            password=password,
        )
        logger.debug(f"SASL 机制已启动: {SaslConst.MECHANISM} {service}/{host}")
        return cls(client)

    @property
    def complete(self) -> bool:
        return bool(self._client.complete)

    def step(self, challenge: str) -> tuple[str, bool]:
        try:
            raw = base64.b64decode(challenge)
            fields = mechanisms.DigestMD5Mechanism.parse_challenge(raw)
            # pure-sasl 不检查 nonce，缺失时会在生成 response 时才崩溃
            if "rspauth" not in fields and "nonce" not in fields:
                raise MechanismError(f"Challenge 缺少 nonce: {raw!r}")
            response = self._client.process(raw)
        except binascii.Error as e:
            raise MechanismError(f"Challenge 不是合法的 base64: {e}") from e
        except (SASLError, SASLProtocolException) as e:
            raise MechanismError(f"DIGEST-MD5 处理失败: {e}") from e
        except (KeyError, ValueError) as e:
            raise MechanismError(f"Challenge 格式无效: {e}") from e

        token = base64.b64encode(response or b"").decode("ascii")
        return token, self.complete
