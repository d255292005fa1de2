"""数据模型模块"""

from grading_agent.models.region import (
    QuestionType,
    QuestionNumberField,
    QuestionRegion,
    QuestionScore,
    FULL_IMAGE_BOX,
    full_image_region,
)
from grading_agent.models.answer import (
    QuestionAnswer,
    RegionAnswerResult,
    AnswerRecognitionResponse,
)
from grading_agent.models.recognition import RecognitionResult
from grading_agent.models.grading import (
    GradedQuestionType,
    ScoreEntry,
    QuestionScoreResult,
    ScoreCalculationResult,
    ResultPayload,
    CallbackPayload,
    SheetInfo,
    GradeBatchRequest,
    GradeBatchResponse,
)

__all__ = [
    "QuestionType",
    "QuestionNumberField",
    "QuestionRegion",
    "QuestionScore",
    "FULL_IMAGE_BOX",
    "full_image_region",
    "QuestionAnswer",
    "RegionAnswerResult",
    "AnswerRecognitionResponse",
    "RecognitionResult",
    "GradedQuestionType",
    "ScoreEntry",
    "QuestionScoreResult",
    "ScoreCalculationResult",
    "ResultPayload",
    "CallbackPayload",
    "SheetInfo",
    "GradeBatchRequest",
    "GradeBatchResponse",
]
