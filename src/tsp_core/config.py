"""
TSP 核心库 - 配置模块

负责配置的加载、解析与强类型转换。
支持从 TOML 文件、环境变量或字典中加载配置。
"""

import ipaddress
import logging
import os
import tomllib
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from .exceptions import ConfigError
from .state import TunnelAction

logger = logging.getLogger(__name__)

DEFAULT_SERVER = "broker.aarnet.net.au"
DEFAULT_PORT = 3653
DEFAULT_IP_LOOKUP_URL = "https://api.ipify.org"


@dataclass(frozen=True)
class TspConfig:
    """TspCore 的强类型配置对象。

    所有字段均为只读 (frozen=True)，确保配置在运行时不可变。

    Attributes:
        username: 隧道账号用户名。
        password: 隧道账号密码。
        action: 本次运行要执行的隧道操作 (create/delete/info)。
        client_ip: 本机公网 IPv4 地址。为 None 时在 create 前自动查询。
        server_address: Broker 主机名或 IP。
        server_port: Broker UDP 端口 (通常为 3653)。
        recv_timeout: 单次接收的超时秒数。
        sasl_service: DIGEST-MD5 的 service 名 (digest-uri 前半段)。
        sasl_host: DIGEST-MD5 的 host 名 (digest-uri 后半段)。
        ip_lookup_url: 公网 IP 查询服务地址。
        ip_lookup_timeout: 公网 IP 查询超时秒数。
    """

    # --- 1. 身份与操作 ---
    username: str
    password: str
    action: TunnelAction
    client_ip: str | None

    # --- 2. Broker 连接 ---
    server_address: str
    server_port: int
    recv_timeout: float

    # --- 3. SASL 参数 ---
    sasl_service: str
    sasl_host: str

    # --- 4. 公网 IP 查询 ---
    ip_lookup_url: str
    ip_lookup_timeout: float

    def __repr__(self) -> str:
        """覆盖默认的 repr，隐藏密码字段，防止日志泄露敏感信息。"""
        return (
            f"<{self.__class__.__name__} "
            f"server={self.server_address}:{self.server_port}, "
            f"username='{self.username}', "
            f"password='******', "
            f"action={self.action.value}, "
            f"client_ip={self.client_ip}>"
        )


def create_config_from_dict(raw_data: dict[str, Any]) -> TspConfig:
    """通用工厂：将字典转换为强类型配置对象。

    负责字段的清洗、默认值注入和类型转换。值为 None 的键视为未提供。

    Args:
        raw_data: 原始配置字典 (来自 TOML、Env 或命令行)。

    Returns:
        TspConfig: 验证并转换后的配置对象。

    Raises:
        ConfigError: 当必要字段缺失或格式错误时抛出。
    """
    data = {k: v for k, v in raw_data.items() if v is not None}

    try:
        # --- 内部辅助函数 ---
        def _req(key: str) -> Any:
            """获取必要字段，缺失则报错"""
            if key not in data or data[key] == "":
                raise ConfigError(f"配置缺失: 缺少必要字段 '{key}'")
            return data[key]

        def _get(key: str, default: Any) -> Any:
            """获取可选字段，缺失则使用默认值"""
            return data.get(key, default)

        def _to_action(key: str) -> TunnelAction:
            val = _req(key)
            if isinstance(val, TunnelAction):
                return val
            try:
                return TunnelAction.parse(val)
            except ValueError:
                choices = ", ".join(a.value for a in TunnelAction.selectable())
                raise ConfigError(f"操作无效 '{val}'，必须是 ({choices}) 之一")

        def _to_ipv4(key: str) -> str | None:
            """校验 IPv4 字符串，未提供时返回 None"""
            if key not in data or data[key] == "":
                return None
            val = str(data[key]).strip()
            try:
                return str(ipaddress.IPv4Address(val))
            except ValueError:
                raise ConfigError(f"IP 格式无效 '{key}': {val}")

        def _to_positive(key: str, default: float, cast: type) -> Any:
            val = _get(key, default)
            try:
                num = cast(val)
            except (TypeError, ValueError):
                raise ConfigError(f"数值格式无效 '{key}': {val}")
            if num <= 0:
                raise ConfigError(f"数值必须为正 '{key}': {val}")
            return num

        # --- 构建对象 ---
        return TspConfig(
            username=str(_req("username")),
            password=str(_req("password")),
            action=_to_action("action"),
            client_ip=_to_ipv4("client_ip"),
            server_address=str(_get("server", DEFAULT_SERVER)),
            server_port=_to_positive("port", DEFAULT_PORT, int),
            recv_timeout=_to_positive("recv_timeout", 5.0, float),
            sasl_service=str(_get("sasl_service", "tsp")),
            sasl_host=str(_get("sasl_host", "hexos")),
            ip_lookup_url=str(_get("ip_lookup_url", DEFAULT_IP_LOOKUP_URL)),
            ip_lookup_timeout=_to_positive("ip_lookup_timeout", 10.0, float),
        )

    except Exception as e:
        if isinstance(e, ConfigError):
            raise
        raise ConfigError(f"配置生成失败: {e}") from e


def read_toml_section(file_path: Path, profile: str = "default") -> dict[str, Any]:
    """读取 TOML 文件并返回选中的配置节 (未做类型转换)。

    查找策略:
    1. [profile.xxx]: 优先查找指定的 profile 块。
    2. [tsp]: 单一配置块。
    3. Root: 根目录直接配置。

    Raises:
        ConfigError: 文件读取失败或 Profile 不存在。
    """
    if not file_path.exists():
        raise ConfigError(f"配置文件未找到: {file_path}")

    try:
        with open(file_path, "rb") as f:
            data = tomllib.load(f)
    except (OSError, tomllib.TOMLDecodeError) as e:
        raise ConfigError(f"读取 TOML 失败: {e}") from e

    if "profile" in data:
        if profile not in data["profile"]:
            raise ConfigError(f"未找到预设: [profile.{profile}]")
        return dict(data["profile"][profile])

    if "tsp" in data:
        if profile != "default":
            logger.warning(f"配置仅包含 [tsp] 节，忽略 profile='{profile}'。")
        return dict(data["tsp"])

    return dict(data)


def load_config_from_toml(file_path: Path, profile: str = "default") -> TspConfig:
    """从 TOML 文件加载配置。

    Args:
        file_path: TOML 文件路径。
        profile: 配置预设名。默认为 "default"。

    Returns:
        TspConfig: 配置对象。

    Raises:
        ConfigError: 文件读取失败、Profile 不存在或字段无效。
    """
    return create_config_from_dict(read_toml_section(file_path, profile))


# 字段映射表 (Config Field -> Env Suffix)
ENV_MAP = {
    "username": "USERNAME",
    "password": "PASSWORD",
    "action": "ACTION",
    "client_ip": "CLIENT_IP",
    "server": "SERVER",
    "port": "PORT",
    "recv_timeout": "RECV_TIMEOUT",
    "sasl_service": "SASL_SERVICE",
    "sasl_host": "SASL_HOST",
    "ip_lookup_url": "IP_LOOKUP_URL",
    "ip_lookup_timeout": "IP_LOOKUP_TIMEOUT",
}


def read_env_section(prefix: str = "TSP_") -> dict[str, Any]:
    """收集所有以 prefix 开头的环境变量 (未做类型转换)。"""
    raw_data = {}
    for cfg_key, env_suffix in ENV_MAP.items():
        val = os.environ.get(f"{prefix}{env_suffix}")
        if val is not None:
            raw_data[cfg_key] = val
    return raw_data


def load_config_from_env() -> TspConfig:
    """从环境变量加载配置 (Docker/Cloud Friendly)。

    自动读取所有以 `TSP_` 开头的环境变量，并映射到配置字段。
    例如: `TSP_USERNAME` -> `username`。

    Raises:
        ConfigError: 未检测到任何相关环境变量，或字段无效。
    """
    raw_data = read_env_section()
    if not raw_data:
        raise ConfigError("未检测到 TSP_ 前缀的环境变量")
    return create_config_from_dict(raw_data)
