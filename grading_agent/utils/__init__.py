"""工具函数模块"""

from grading_agent.utils.errors import (
    GradingAgentError,
    ParseError,
    ValidationError,
    ScoringError,
    CallbackError,
    ImageSizeError,
    ModelResponseError,
)
from grading_agent.utils.question_number import (
    QuestionNumber,
    normalize_question_number,
    is_valid_question_number,
    compare_question_numbers,
    question_number_sort_key,
)
from grading_agent.utils.retry import RetryPolicy, retry_async

__all__ = [
    "GradingAgentError",
    "ParseError",
    "ValidationError",
    "ScoringError",
    "CallbackError",
    "ImageSizeError",
    "ModelResponseError",
    "QuestionNumber",
    "normalize_question_number",
    "is_valid_question_number",
    "compare_question_numbers",
    "question_number_sort_key",
    "RetryPolicy",
    "retry_async",
]
