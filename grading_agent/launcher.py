"""服务启动入口

命令行参数缺省时取 HOST / PORT / LOG_LEVEL 环境变量（见 ServerConfig）。
"""

import argparse
import logging
from typing import List, Optional

import uvicorn
from dotenv import load_dotenv

from grading_agent.config.settings import ServerConfig

logger = logging.getLogger(__name__)

APP_PATH = "grading_agent.api.main:app"


def build_parser(server: ServerConfig) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="答题卡识别与批改服务")
    parser.add_argument("--host", default=server.host, help=f"监听地址 (默认: {server.host})")
    parser.add_argument("--port", type=int, default=server.port, help=f"监听端口 (默认: {server.port})")
    parser.add_argument(
        "--log-level",
        default=server.log_level.lower(),
        choices=["critical", "error", "warning", "info", "debug"],
        help=f"uvicorn 日志级别 (默认: {server.log_level.lower()})",
    )
    parser.add_argument("--reload", action="store_true", help="开发模式，代码变更自动重载")
    return parser


def main(argv: Optional[List[str]] = None) -> None:
    load_dotenv()
    server = ServerConfig.from_env()
    args = build_parser(server).parse_args(argv)

    logger.info(f"启动服务: http://{args.host}:{args.port} (文档: /docs)")
    uvicorn.run(
        APP_PATH,
        host=args.host,
        port=args.port,
        log_level=args.log_level,
        reload=args.reload,
    )
