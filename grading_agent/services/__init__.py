"""服务层模块"""

from grading_agent.services.callback import CallbackService
from grading_agent.services.grading import GradingService
from grading_agent.services.image_crop import ImageCropper
from grading_agent.services.image_fetcher import ImageFetcher
from grading_agent.services.llm_client import UnifiedLLMClient
from grading_agent.services.recognition import RecognitionService
from grading_agent.services.region_merger import ResultMerger
from grading_agent.services.response_parser import ResponseParser
from grading_agent.services.score_calculation import ScoreCalculationService
from grading_agent.services.vision_model import create_chat_model

__all__ = [
    "CallbackService",
    "GradingService",
    "ImageCropper",
    "ImageFetcher",
    "UnifiedLLMClient",
    "RecognitionService",
    "ResultMerger",
    "ResponseParser",
    "ScoreCalculationService",
    "create_chat_model",
]
