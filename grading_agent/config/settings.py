"""服务配置

所有配置从环境变量加载，进程启动时构造一次，再显式传入各个服务。
"""

import os
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

DEFAULT_DASHSCOPE_BASE_URL = "https://dashscope.aliyuncs.com/compatible-mode/v1"
DEFAULT_QWEN_VL_MODEL = "qwen-vl-max-latest"
DEFAULT_GEMINI_MODEL = "gemini-2.5-flash"

MAX_IMAGE_SIZE_MB = 10


def _int_env(name: str, default: int, *, min_value: Optional[int] = None) -> int:
    raw = os.getenv(name)
    if raw is None or raw == "":
        value = default
    else:
        try:
            value = int(raw)
        except ValueError:
            value = default
    if min_value is not None and value < min_value:
        return min_value
    return value


def _float_env(name: str, default: float, *, min_value: Optional[float] = None) -> float:
    raw = os.getenv(name)
    if raw is None or raw == "":
        value = default
    else:
        try:
            value = float(raw)
        except ValueError:
            value = default
    if min_value is not None and value < min_value:
        return min_value
    return value


class LLMProvider(Enum):
    """视觉模型服务提供商"""

    DASHSCOPE = "dashscope"  # OpenAI 兼容模式
    GOOGLE = "google"  # 直连 Gemini API


@dataclass
class LLMConfig:
    """视觉模型配置"""

    provider: LLMProvider = LLMProvider.DASHSCOPE
    api_key: str = ""
    base_url: str = DEFAULT_DASHSCOPE_BASE_URL
    model: str = DEFAULT_QWEN_VL_MODEL
    temperature: float = 0.1
    max_tokens: int = 4096
    # 统一识别与结构化输出需要更长的输出
    structured_max_tokens: int = 8192
    timeout: float = 300.0

    @classmethod
    def from_env(cls) -> "LLMConfig":
        """从环境变量加载配置

        LLM_PROVIDER=google 时使用 GEMINI_API_KEY / GEMINI_MODEL，
        否则使用 DashScope 的 OpenAI 兼容接口。
        """
        provider_str = os.getenv("LLM_PROVIDER", "").lower()

        if provider_str == LLMProvider.GOOGLE.value:
            provider = LLMProvider.GOOGLE
            api_key = os.getenv("GEMINI_API_KEY", "")
            base_url = ""
            model = os.getenv("GEMINI_MODEL", DEFAULT_GEMINI_MODEL)
        else:
            provider = LLMProvider.DASHSCOPE
            api_key = os.getenv("DASHSCOPE_API_KEY", "")
            base_url = os.getenv("DASHSCOPE_BASE_URL", DEFAULT_DASHSCOPE_BASE_URL)
            model = os.getenv("QWEN_VL_MODEL", DEFAULT_QWEN_VL_MODEL)

        return cls(
            provider=provider,
            api_key=api_key,
            base_url=base_url.rstrip("/"),
            model=model,
            temperature=_float_env("LLM_TEMPERATURE", 0.1, min_value=0.0),
            max_tokens=_int_env("LLM_MAX_TOKENS", 4096, min_value=1),
            structured_max_tokens=_int_env("LLM_STRUCTURED_MAX_TOKENS", 8192, min_value=1),
            timeout=_float_env("LLM_HTTP_TIMEOUT", 300.0, min_value=1.0),
        )

    def validate(self) -> None:
        """检查必需配置"""
        if not self.api_key:
            key_name = "GEMINI_API_KEY" if self.provider == LLMProvider.GOOGLE else "DASHSCOPE_API_KEY"
            raise ValueError(f"{key_name} is required")


@dataclass(frozen=True)
class GradingConfig:
    """批改流程配置"""

    max_concurrent: int = 5
    callback_retries: int = 3
    callback_timeout: float = 30.0
    choice_crop_expand_percent: float = 2.0
    max_image_size_bytes: int = MAX_IMAGE_SIZE_MB * 1024 * 1024

    @classmethod
    def from_env(cls) -> "GradingConfig":
        return cls(
            max_concurrent=_int_env("GRADING_MAX_CONCURRENT", 5, min_value=1),
            callback_retries=_int_env("CALLBACK_MAX_RETRIES", 3, min_value=0),
            callback_timeout=_float_env("CALLBACK_TIMEOUT", 30.0, min_value=1.0),
            choice_crop_expand_percent=_float_env("CHOICE_CROP_EXPAND_PERCENT", 2.0, min_value=0.0),
            max_image_size_bytes=_int_env("MAX_IMAGE_SIZE_MB", MAX_IMAGE_SIZE_MB, min_value=1)
            * 1024
            * 1024,
        )


@dataclass(frozen=True)
class ServerConfig:
    """HTTP 服务配置"""

    host: str = "0.0.0.0"
    port: int = 3002
    log_level: str = "INFO"
    api_prefix: str = "/api"

    @classmethod
    def from_env(cls) -> "ServerConfig":
        prefix = os.getenv("API_PREFIX", "/api").strip()
        if prefix and not prefix.startswith("/"):
            prefix = f"/{prefix}"
        return cls(
            host=os.getenv("HOST", "0.0.0.0"),
            port=_int_env("PORT", 3002, min_value=1),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
            api_prefix=prefix.rstrip("/"),
        )


@dataclass
class AppSettings:
    """进程级配置汇总"""

    llm: LLMConfig = field(default_factory=LLMConfig)
    grading: GradingConfig = field(default_factory=GradingConfig)
    server: ServerConfig = field(default_factory=ServerConfig)

    @classmethod
    def from_env(cls) -> "AppSettings":
        return cls(
            llm=LLMConfig.from_env(),
            grading=GradingConfig.from_env(),
            server=ServerConfig.from_env(),
        )
