"""判分服务

用视觉模型（纯文本调用）对比学生答案与标准答案进行判分。
空白答题卡上声明的每题满分是唯一依据：模型给出的 max_score 只作参考，
与空白答题卡不一致时以空白答题卡为准，并把得分限制在满分以内。
"""

import logging
from typing import Any, Dict, List, Optional

from langchain_core.messages import HumanMessage

from grading_agent.models.answer import AnswerRecognitionResponse
from grading_agent.models.grading import QuestionScoreResult, ScoreCalculationResult
from grading_agent.models.recognition import RecognitionResult
from grading_agent.services.prompt_builder import build_score_calculation_prompt
from grading_agent.services.response_parser import extract_json_text, load_json_object
from grading_agent.services.vision_model import VisionChatModel, message_text
from grading_agent.utils.errors import ScoringError
from grading_agent.utils.question_number import (
    QuestionNumber,
    is_valid_question_number,
    normalize_question_number,
)

logger = logging.getLogger(__name__)

GRADED_TYPES = ("choice", "fill", "essay")


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def reconcile_question(
    item: Dict[str, Any],
    max_scores: Dict[QuestionNumber, float],
) -> Optional[QuestionScoreResult]:
    """校验单题判分并用空白答题卡满分修正

    Returns:
        修正后的判分结果；条目无效时返回 None
    """
    raw_number = item.get("question_number")
    score = item.get("score")
    model_max = item.get("max_score")
    if not is_valid_question_number(raw_number):
        return None
    if not _is_number(score) or not _is_number(model_max) or score < 0 or model_max < 0:
        return None

    question_number = normalize_question_number(raw_number)
    max_score = max_scores.get(question_number, model_max)
    if question_number in max_scores and model_max != max_score:
        logger.warning(
            f"第 {question_number} 题 max_score 不一致: 模型返回 {model_max}，"
            f"使用空白答题卡满分 {max_score}"
        )

    question_type = item.get("type")
    if question_type not in GRADED_TYPES:
        question_type = "choice"

    reason = item.get("reason")
    return QuestionScoreResult(
        question_number=question_number,
        type=question_type,
        score=max(0, min(score, max_score)),
        max_score=max_score,
        reason=reason if isinstance(reason, str) else None,
    )


def parse_score_response(content: str, blank_sheet: RecognitionResult) -> List[QuestionScoreResult]:
    """解析判分模型返回的 JSON

    Raises:
        ScoringError: 无法解析为 JSON 或缺少 questions 数组
    """
    data = load_json_object(extract_json_text(content), error_cls=ScoringError)
    items = data.get("questions")
    if not isinstance(items, list):
        raise ScoringError("Invalid response format: missing questions array")

    max_scores = blank_sheet.score_map()
    questions: List[QuestionScoreResult] = []
    seen = set()
    for item in items:
        if not isinstance(item, dict):
            continue
        question = reconcile_question(item, max_scores)
        if question is None:
            logger.debug(f"丢弃无效判分条目: {item!r}")
            continue
        if question.question_number in seen:
            continue
        seen.add(question.question_number)
        questions.append(question)
    return questions


class ScoreCalculationService:
    """判分服务"""

    def __init__(self, model: VisionChatModel):
        self.model = model

    async def calculate_scores(
        self,
        student_answers: AnswerRecognitionResponse,
        standard_answers: AnswerRecognitionResponse,
        blank_sheet: RecognitionResult,
    ) -> ScoreCalculationResult:
        """对比学生答案与标准答案进行判分

        Args:
            student_answers: 学生答案识别结果
            standard_answers: 标准答案识别结果
            blank_sheet: 空白答题卡识别结果（提供每题满分）

        Returns:
            判分结果

        Raises:
            ScoringError: 模型返回为空或无法解析
        """
        logger.info("开始调用模型判分")
        prompt = build_score_calculation_prompt(student_answers, standard_answers, blank_sheet.scores)
        message = HumanMessage(content=[{"type": "text", "text": prompt}])

        response = await self.model.ainvoke([message])
        content = message_text(getattr(response, "content", response))
        if not content.strip():
            raise ScoringError("Model returned empty response")

        questions = parse_score_response(content, blank_sheet)
        result = ScoreCalculationResult.from_questions(questions)

        logger.info(
            f"判分完成: {len(questions)} 道题, 总分 {result.total_score}/{result.total_max_score}"
        )
        return result
