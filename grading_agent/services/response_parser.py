"""模型响应解析服务

将模型返回的原始文本（可能包裹在 markdown 代码块中，可能是不完整或格式有误的 JSON）
还原为类型化的识别结果，并过滤掉不满足约束的区域、分值和答案。
"""

import json
import logging
import math
import re
from typing import Any, Dict, List, Optional, Type

from pydantic import ValidationError as PydanticValidationError

from grading_agent.models.answer import AnswerRecognitionResponse, QuestionAnswer, RegionAnswerResult
from grading_agent.models.recognition import RecognitionResult
from grading_agent.models.region import QuestionRegion, QuestionScore, full_image_region
from grading_agent.utils.errors import GradingAgentError, ParseError, ValidationError
from grading_agent.utils.question_number import (
    is_valid_question_number,
    normalize_question_number,
    question_number_sort_key,
)

logger = logging.getLogger(__name__)

# 区域坐标在校验通过后向外扩展的百分点
REGION_EXPAND_MARGIN = 2.0

QUESTION_TYPES = ("choice", "essay")
COORDINATE_FIELDS = ("x_min_percent", "y_min_percent", "x_max_percent", "y_max_percent")

_FENCED_BLOCK = re.compile(r"```(?:json)?\s*([\s\S]*?)```")
_CHOICE_ANSWER = re.compile(r"^[A-D]$", re.IGNORECASE)

_NUM = r"(\d+(?:\.\d+)?)"
# 模型偶尔省略成对坐标中第二个字段名，例如 "x_min_percent": 5, 10,
_FORMAT_REPAIRS = [
    (
        re.compile(rf'"x_min_percent":\s*{_NUM}\s*,\s*{_NUM}\s*,'),
        r'"x_min_percent": \1, "y_min_percent": \2,',
    ),
    (
        re.compile(rf'"x_max_percent":\s*{_NUM}\s*,\s*{_NUM}\s*,'),
        r'"x_max_percent": \1, "y_max_percent": \2,',
    ),
    (
        re.compile(rf'"x_max_percent":\s*{_NUM}\s*,\s*{_NUM}\s*}}'),
        r'"x_max_percent": \1, "y_max_percent": \2 }',
    ),
    (
        re.compile(rf'"x_min_percent":\s*{_NUM}\s*,\s*{_NUM}\s*}}'),
        r'"x_min_percent": \1, "y_min_percent": \2 }',
    ),
    # 旧版像素字段名
    (
        re.compile(rf'"x_min":\s*{_NUM}\s*,\s*{_NUM}\s*,'),
        r'"x_min_percent": \1, "y_min_percent": \2,',
    ),
    (
        re.compile(rf'"x_max":\s*{_NUM}\s*,\s*{_NUM}\s*,'),
        r'"x_max_percent": \1, "y_max_percent": \2,',
    ),
]

_COMMON_ISSUES = (
    "Please check the JSON format. Common issues:\n"
    '- Missing field names (e.g., "x_min": 50, 100, should be "x_min": 50, "y_min": 100,)\n'
    "- Invalid JSON syntax\n"
    "- Missing commas or quotes"
)


def extract_json_text(content: str) -> str:
    """从模型文本中截取 JSON 对象部分

    1. 存在 ``` 代码块时取第一个代码块的内容
    2. 不以 { 开头时从第一个 { 开始截取
    3. 以逗号结尾或不以 } 结尾时截断到最后一个 }
    """
    text = (content or "").strip()

    match = _FENCED_BLOCK.search(text)
    if match:
        text = match.group(1).strip()

    if not text.startswith("{"):
        first_brace = text.find("{")
        if first_brace != -1:
            text = text[first_brace:]

    if text.endswith(",") or not text.endswith("}"):
        last_brace = text.rfind("}")
        if last_brace != -1:
            text = text[: last_brace + 1]

    return text.strip()


def fix_json_format_errors(text: str) -> str:
    """修复已知的坐标字段名缺失问题"""
    fixed = text
    for pattern, replacement in _FORMAT_REPAIRS:
        fixed = pattern.sub(replacement, fixed)
    return fixed


def load_json_object(
    text: str,
    *,
    error_cls: Type[GradingAgentError] = ParseError,
) -> Dict[str, Any]:
    """解析 JSON 对象，失败时抛出带上下文片段的异常"""
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        start = max(0, e.pos - 50)
        end = min(len(text), e.pos + 50)
        snippet = text[start:end]
        preview = text[:500]
        logger.error(
            f"解析模型响应失败: {e.msg} (position {e.pos}), "
            f"内容长度={len(text)}, 错误位置上下文: {snippet!r}"
        )
        message = (
            f"Failed to parse model response: {e.msg} at position {e.pos}\n"
            f"Context around error position {e.pos}:\n{snippet}\n\n"
            f"{_COMMON_ISSUES}\n\nJSON content preview:\n{preview}"
        )
        if error_cls is ParseError:
            raise ParseError(message, snippet=snippet, preview=preview) from e
        raise error_cls(message) from e

    if not isinstance(data, dict):
        raise error_cls(
            f"Failed to parse model response: expected a JSON object, got {type(data).__name__}"
        )
    return data


def _is_number(value: Any) -> bool:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return math.isfinite(value)


def validate_region(data: Any) -> QuestionRegion:
    """校验区域并构造 QuestionRegion

    Raises:
        ValidationError: 题型不是 choice/essay、坐标非数值或超出 [0, 100]、min >= max
    """
    if not isinstance(data, dict):
        raise ValidationError(f"区域必须是对象: {data!r}")
    if data.get("type") not in QUESTION_TYPES:
        raise ValidationError(f"无效的区域题型: {data.get('type')!r}")

    coords = [data.get(name) for name in COORDINATE_FIELDS]
    for name, value in zip(COORDINATE_FIELDS, coords):
        if not _is_number(value):
            raise ValidationError(f"{name} 必须是数值: {value!r}")
        if value < 0 or value > 100:
            raise ValidationError(f"{name} 超出范围 [0, 100]: {value}")

    x_min, y_min, x_max, y_max = coords
    if x_min >= x_max or y_min >= y_max:
        raise ValidationError(f"区域坐标无效: ({x_min}, {y_min}) - ({x_max}, {y_max})")

    return QuestionRegion(
        type=data["type"],
        x_min_percent=x_min,
        y_min_percent=y_min,
        x_max_percent=x_max,
        y_max_percent=y_max,
    )


def is_valid_region(data: Any) -> bool:
    try:
        validate_region(data)
    except ValidationError:
        return False
    return True


def validate_score(data: Any) -> QuestionScore:
    """校验分值条目：题号为正整数或非空字符串，分值为非负数值"""
    if not isinstance(data, dict):
        raise ValidationError(f"分值条目必须是对象: {data!r}")

    question_number = data.get("questionNumber")
    if isinstance(question_number, float) and not question_number.is_integer():
        raise ValidationError(f"题号必须是整数: {question_number}")
    if not isinstance(question_number, (int, float, str)) or not is_valid_question_number(
        question_number
    ):
        raise ValidationError(f"无效的题号: {question_number!r}")

    score = data.get("score")
    if not _is_number(score):
        raise ValidationError(f"分值必须是数值: {score!r}")
    if score < 0:
        raise ValidationError(f"分值不能为负数: {score}")

    return QuestionScore(question_number=question_number, score=score)


def is_valid_score(data: Any) -> bool:
    try:
        validate_score(data)
    except ValidationError:
        return False
    return True


def validate_answer(data: Any) -> QuestionAnswer:
    """校验单题答案：题号有效且答案为字符串"""
    if not isinstance(data, dict):
        raise ValidationError(f"答案条目必须是对象: {data!r}")
    question_number = data.get("question_number")
    if not isinstance(question_number, (int, float, str)) or not is_valid_question_number(
        question_number
    ):
        raise ValidationError(f"无效的题号: {question_number!r}")
    answer = data.get("answer")
    if not isinstance(answer, str):
        raise ValidationError(f"答案必须是字符串: {answer!r}")
    return QuestionAnswer(question_number=question_number, answer=answer)


def is_valid_answer(data: Any) -> bool:
    try:
        validate_answer(data)
    except ValidationError:
        return False
    return True


def expand_region(region: QuestionRegion, margin: float = REGION_EXPAND_MARGIN) -> QuestionRegion:
    """区域四边各向外扩展 margin 个百分点，并限制在 [0, 100]"""
    return region.model_copy(
        update={
            "x_min_percent": max(0.0, region.x_min_percent - margin),
            "y_min_percent": max(0.0, region.y_min_percent - margin),
            "x_max_percent": min(100.0, region.x_max_percent + margin),
            "y_max_percent": min(100.0, region.y_max_percent + margin),
        }
    )


def infer_question_type(answer: str) -> str:
    """单个 A-D 字母视为选择题，其余视为解答题"""
    return "choice" if _CHOICE_ANSWER.match(answer.strip()) else "essay"


def _valid_answers(items: Any) -> List[QuestionAnswer]:
    if not isinstance(items, list):
        return []
    answers = []
    for item in items:
        try:
            answers.append(validate_answer(item))
        except ValidationError as e:
            logger.debug(f"丢弃无效答案: {e}")
    return answers


def _sorted_answers(answers: List[QuestionAnswer]) -> List[QuestionAnswer]:
    return sorted(answers, key=lambda q: question_number_sort_key(q.question_number))


class ResponseParser:
    """模型响应解析器

    parse() 用于空白答题卡和统一识别；parse_answer_list() 与
    parse_full_image_answers() 用于答案识别。
    """

    def __init__(self, expand_margin: float = REGION_EXPAND_MARGIN):
        self.expand_margin = expand_margin

    def parse(self, content: str) -> RecognitionResult:
        """解析识别结果文本

        Raises:
            ParseError: 无法还原出 JSON 对象
        """
        text = extract_json_text(content)
        repaired = fix_json_format_errors(text)
        if repaired != text:
            logger.debug(f"已修复 JSON 格式错误: {text[:200]!r} -> {repaired[:200]!r}")

        data = load_json_object(repaired)
        return self.build_result(data)

    def build_result(self, data: Dict[str, Any]) -> RecognitionResult:
        """校验、过滤并扩展已解析的识别结果"""
        raw_regions = data.get("regions")
        raw_scores = data.get("scores")
        regions_in = raw_regions if isinstance(raw_regions, list) else []
        scores_in = raw_scores if isinstance(raw_scores, list) else []

        regions: List[QuestionRegion] = []
        for item in regions_in:
            try:
                regions.append(expand_region(validate_region(item), self.expand_margin))
            except ValidationError as e:
                logger.debug(f"丢弃无效区域: {e}")

        scores: List[QuestionScore] = []
        for item in scores_in:
            try:
                scores.append(validate_score(item))
            except ValidationError as e:
                logger.debug(f"丢弃无效分值: {e}")

        if not regions:
            logger.debug("响应中没有有效区域")
        if not scores:
            logger.debug("响应中没有有效分值")

        answers = self._coerce_answers(data.get("answers"))

        logger.debug(
            f"解析完成: regions={len(regions)}, scores={len(scores)}, "
            f"answers={len(answers.regions) if answers else 0}"
        )
        return RecognitionResult(regions=regions, scores=scores, answers=answers)

    def _coerce_answers(self, raw: Any) -> Optional[AnswerRecognitionResponse]:
        if raw is None:
            return None
        try:
            return AnswerRecognitionResponse.model_validate(raw)
        except PydanticValidationError as e:
            logger.warning(f"标准答案结构不完整，逐项保留有效内容: {e.error_count()} 处错误")

        if not isinstance(raw, dict) or not isinstance(raw.get("regions"), list):
            return None
        results = []
        for item in raw["regions"]:
            if not isinstance(item, dict) or item.get("type") not in QUESTION_TYPES:
                continue
            try:
                region = validate_region(item.get("region"))
            except ValidationError:
                region = full_image_region(item["type"])
            results.append(
                RegionAnswerResult(
                    type=item["type"],
                    region=region,
                    questions=_valid_answers(item.get("questions")),
                )
            )
        return AnswerRecognitionResponse(regions=results)

    def parse_answer_list(self, content: str) -> List[QuestionAnswer]:
        """解析裁剪区域识别结果 {"questions": [...]}"""
        data = load_json_object(extract_json_text(content))
        questions = data.get("questions")
        if not isinstance(questions, list):
            raise ParseError("Invalid response format: missing questions array")
        return _valid_answers(questions)

    def parse_full_image_answers(self, content: str) -> AnswerRecognitionResponse:
        """解析整图答案识别结果

        支持两种格式：
        - {"questions": [{"question_number", "type"?, "answer"}]}，按题型分组，缺少题型时推断
        - 旧格式 {"regions": [{"type", "questions": [...]}]}
        区域坐标统一为整图。
        """
        data = load_json_object(extract_json_text(content))

        if isinstance(data.get("questions"), list):
            grouped: Dict[str, List[QuestionAnswer]] = {}
            for item in data["questions"]:
                try:
                    answer = validate_answer(item)
                except ValidationError as e:
                    logger.debug(f"丢弃无效答案: {e}")
                    continue
                question_type = item.get("type")
                if question_type == "fill":
                    question_type = "essay"
                if question_type not in QUESTION_TYPES:
                    question_type = infer_question_type(answer.answer)
                grouped.setdefault(question_type, []).append(answer)

            return AnswerRecognitionResponse(
                regions=[
                    RegionAnswerResult(
                        type=question_type,
                        region=full_image_region(question_type),
                        questions=_sorted_answers(answers),
                    )
                    for question_type, answers in grouped.items()
                ]
            )

        if isinstance(data.get("regions"), list):
            results = []
            for item in data["regions"]:
                if not isinstance(item, dict) or item.get("type") not in QUESTION_TYPES:
                    continue
                results.append(
                    RegionAnswerResult(
                        type=item["type"],
                        region=full_image_region(item["type"]),
                        questions=_valid_answers(item.get("questions")),
                    )
                )
            return AnswerRecognitionResponse(regions=results)

        raise ParseError("Invalid response format: missing questions or regions array")


def normalize_answer_keys(response: AnswerRecognitionResponse) -> Dict[Any, str]:
    """题号 -> 答案文本，同一题号只保留第一次出现"""
    mapping: Dict[Any, str] = {}
    for _, question in response.iter_answers():
        key = normalize_question_number(question.question_number)
        mapping.setdefault(key, question.answer)
    return mapping
