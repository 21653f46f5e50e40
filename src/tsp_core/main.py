# src/tsp_core/main.py
"""
TSP 客户端命令行入口 (tsp-client)。

配置来源按优先级从低到高合并:
1. TOML 文件 (--config) 或 TSP_ 前缀的环境变量 (会先加载 .env)。
2. 命令行参数。
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import Any, Optional, Sequence

from dotenv import load_dotenv

from . import __version__
from .config import create_config_from_dict, read_env_section, read_toml_section
from .core import TspCore
from .exceptions import ConfigError, TspError
from .state import TunnelAction

logger = logging.getLogger("TspCLI")

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_INTERRUPTED = 130


def build_parser() -> argparse.ArgumentParser:
    actions = [a.value for a in TunnelAction.selectable()]

    parser = argparse.ArgumentParser(
        prog="tsp-client",
        description="Tunnel Setup Protocol (TSP) 隧道代理客户端",
    )
    parser.add_argument("--username", "-u", help="隧道账号用户名")
    parser.add_argument("--password", "-p", help="隧道账号密码")
    parser.add_argument("--action", "-a", choices=actions, help=", ".join(actions))
    parser.add_argument("--ip", dest="client_ip", help="本机公网 IPv4 (缺省时自动查询)")
    parser.add_argument("--server", help="Broker 地址")
    parser.add_argument("--port", type=int, help="Broker UDP 端口")
    parser.add_argument("--timeout", dest="recv_timeout", type=float, help="接收超时秒数")
    parser.add_argument("--config", "-c", type=Path, help="TOML 配置文件")
    parser.add_argument("--profile", default="default", help="TOML 配置预设名")
    parser.add_argument("--env-file", type=Path, help=".env 文件路径")
    parser.add_argument("--verbose", "-v", action="store_true", help="输出调试日志")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser


def load_cli_config(args: argparse.Namespace) -> dict[str, Any]:
    """合并配置文件/环境变量与命令行参数，返回原始配置字典。"""
    if args.config:
        raw = read_toml_section(args.config, args.profile)
        logger.debug(f"已加载配置文件: {args.config} [{args.profile}]")
    else:
        env_path = args.env_file or Path.cwd() / ".env"
        if env_path.exists():
            load_dotenv(dotenv_path=env_path, override=False)
            logger.debug(f"已加载 .env: {env_path}")
        raw = read_env_section()

    overrides = {
        "username": args.username,
        "password": args.password,
        "action": args.action,
        "client_ip": args.client_ip,
        "server": args.server,
        "port": args.port,
        "recv_timeout": args.recv_timeout,
    }
    raw.update({k: v for k, v in overrides.items() if v is not None})
    return raw


def main(argv: Optional[Sequence[str]] = None) -> int:
    """
    程序主入口点。

    Returns:
        int: 进程退出码。
    """
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO, format=LOG_FORMAT
    )

    try:
        config = create_config_from_dict(load_cli_config(args))
        logger.debug(f"配置: {config!r}")

        core = TspCore(config)
        responses = asyncio.run(core.run())

    except ConfigError as ce:
        logger.critical(f"配置错误: {ce}")
        return EXIT_FAILED
    except TspError as e:
        logger.error(f"{type(e).__name__}: {e}")
        return EXIT_FAILED
    except KeyboardInterrupt:
        logger.info("收到用户中断信号 (Ctrl+C)，退出。")
        return EXIT_INTERRUPTED

    for xml in responses:
        print(xml)
    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
