"""配置模块"""

from grading_agent.config.settings import (
    AppSettings,
    GradingConfig,
    LLMConfig,
    LLMProvider,
    ServerConfig,
)

__all__ = ["AppSettings", "GradingConfig", "LLMConfig", "LLMProvider", "ServerConfig"]
