# File: src/tsp_core/utils.py
"""
TSP 核心库 - 通用工具

目前只包含公网 IPv4 查询：create 请求需要携带本机在公网上的地址。
"""

import ipaddress
import logging

import httpx

from .exceptions import NetworkError

logger = logging.getLogger(__name__)


async def discover_public_ip(
    url: str,
    timeout: float = 10.0,
    client: httpx.AsyncClient | None = None,
) -> str:
    """通过 HTTP 查询服务获取本机公网 IPv4 地址。

    查询服务应以纯文本返回地址 (如 https://api.ipify.org)。

    Args:
        url: 查询服务地址。
        timeout: 请求超时秒数。
        client: 可选的外部 AsyncClient (测试时注入 MockTransport)。

    Returns:
        str: 规范化后的 IPv4 地址字符串。

    Raises:
        NetworkError: 请求失败、状态码异常或返回内容不是 IPv4 地址。
    """
    try:
        if client is None:
            async with httpx.AsyncClient(timeout=timeout) as own_client:
                response = await own_client.get(url)
        else:
            response = await client.get(url, timeout=timeout)
        response.raise_for_status()
    except httpx.HTTPError as e:
        raise NetworkError(f"公网 IP 查询失败 ({url}): {e}") from e

    text = response.text.strip()
    try:
        ip = str(ipaddress.IPv4Address(text))
    except ValueError:
        raise NetworkError(f"公网 IP 查询返回了无效地址: {text!r}") from None

    logger.info(f"公网 IP: {ip}")
    return ip
