"""错误类型定义

识别、判分与回调流程中使用的异常层级。
"""

from typing import Optional


class GradingAgentError(Exception):
    """服务内所有业务异常的基类"""


class ParseError(GradingAgentError):
    """模型输出无法还原为 JSON 对象

    Attributes:
        snippet: 解析出错位置前后的文本片段
        preview: 原始内容的前 500 个字符
    """

    def __init__(self, message: str, snippet: Optional[str] = None, preview: Optional[str] = None):
        super().__init__(message)
        self.snippet = snippet
        self.preview = preview


class ValidationError(GradingAgentError):
    """单个区域、分值或题目不满足结构或取值约束"""


class ScoringError(GradingAgentError):
    """判分模型的返回无法解析"""


class CallbackError(GradingAgentError):
    """回调地址不可达或多次重试后仍返回非 2xx"""

    def __init__(self, message: str, attempts: int = 0):
        super().__init__(message)
        self.attempts = attempts


class ImageSizeError(GradingAgentError):
    """图片超过大小上限"""

    def __init__(self, message: str, size_bytes: Optional[int] = None):
        super().__init__(message)
        self.size_bytes = size_bytes


class ModelResponseError(GradingAgentError):
    """模型返回空内容"""
