"""启动入口单元测试"""

from unittest.mock import patch

import pytest

from grading_agent import launcher
from grading_agent.config.settings import ServerConfig


class TestBuildParser:
    """测试命令行参数缺省值取自服务配置"""

    def test_defaults_from_server_config(self):
        server = ServerConfig(host="127.0.0.1", port=8088, log_level="WARNING")
        args = launcher.build_parser(server).parse_args([])

        assert args.host == "127.0.0.1"
        assert args.port == 8088
        assert args.log_level == "warning"
        assert args.reload is False

    def test_cli_overrides(self):
        args = launcher.build_parser(ServerConfig()).parse_args(
            ["--host", "localhost", "--port", "9000", "--reload"]
        )
        assert args.host == "localhost"
        assert args.port == 9000
        assert args.reload is True

    def test_invalid_log_level_rejected(self):
        with pytest.raises(SystemExit):
            launcher.build_parser(ServerConfig()).parse_args(["--log-level", "verbose"])


class TestMain:
    def test_env_host_and_port_reach_uvicorn(self, monkeypatch):
        monkeypatch.setenv("HOST", "127.0.0.1")
        monkeypatch.setenv("PORT", "4001")
        monkeypatch.setenv("LOG_LEVEL", "debug")

        with patch.object(launcher, "load_dotenv"), patch.object(launcher.uvicorn, "run") as run:
            launcher.main([])

        run.assert_called_once_with(
            "grading_agent.api.main:app",
            host="127.0.0.1",
            port=4001,
            log_level="debug",
            reload=False,
        )
