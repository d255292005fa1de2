"""结构化输出 JSON Schema

坐标范围约束由 schema 交给模型侧执行；解析端仍会再次校验。
"""

import copy
from typing import Any, Dict

_COORDINATE = {"type": "number", "minimum": 0, "maximum": 100}

_REGION_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "description": "Question region with percentage coordinates",
    "properties": {
        "type": {
            "type": "string",
            "enum": ["choice", "essay"],
            "description": "Question type: choice (选择题) or essay (解答题)",
        },
        "x_min_percent": {**_COORDINATE, "description": "Minimum X coordinate as percentage (0-100)"},
        "y_min_percent": {**_COORDINATE, "description": "Minimum Y coordinate as percentage (0-100)"},
        "x_max_percent": {**_COORDINATE, "description": "Maximum X coordinate as percentage (0-100)"},
        "y_max_percent": {**_COORDINATE, "description": "Maximum Y coordinate as percentage (0-100)"},
    },
    "required": ["type", "x_min_percent", "y_min_percent", "x_max_percent", "y_max_percent"],
}

_SCORE_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "description": "Question score information",
    "properties": {
        "questionNumber": {
            "oneOf": [{"type": "number"}, {"type": "string"}],
            "description": "Question number (can be number or string for Chinese question numbers)",
        },
        "score": {"type": "number", "description": "Score value", "minimum": 0},
    },
    "required": ["questionNumber", "score"],
}

_ANSWERS_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "description": "Standard answers (priority: blank sheet > answer images)",
    "properties": {
        "regions": {
            "type": "array",
            "description": "Array of region answer results",
            "items": {
                "type": "object",
                "properties": {
                    "type": {"type": "string", "enum": ["choice", "essay"]},
                    "region": {k: v for k, v in _REGION_SCHEMA.items() if k != "description"},
                    "questions": {
                        "type": "array",
                        "description": "Recognized answers for all questions in this region, including sub-questions",
                        "items": {
                            "type": "object",
                            "properties": {
                                "question_number": {
                                    "oneOf": [{"type": "number"}, {"type": "string"}],
                                    "description": (
                                        "Question number. Use number for regular questions "
                                        '(e.g., 1, 2, 13). Use string for sub-questions (e.g., "13(1)")'
                                    ),
                                },
                                "answer": {
                                    "type": "string",
                                    "description": "Answer content (A/B/C/D for choice, text for essay)",
                                },
                            },
                            "required": ["question_number", "answer"],
                        },
                    },
                },
                "required": ["type", "region", "questions"],
            },
        }
    },
    "required": ["regions"],
}


def build_recognition_schema(include_answers: bool = True) -> Dict[str, Any]:
    """识别结果 schema

    Args:
        include_answers: 统一识别需要 answers；单独识别空白答题卡时不需要
    """
    properties: Dict[str, Any] = {
        "regions": {
            "type": "array",
            "description": (
                "Array of detected question regions. If the exam paper contains choice "
                "questions, this array must not be empty and must include the choice region."
            ),
            "items": copy.deepcopy(_REGION_SCHEMA),
        },
        "scores": {
            "type": "array",
            "description": "Array of question scores",
            "items": copy.deepcopy(_SCORE_SCHEMA),
        },
    }
    required = ["regions", "scores"]
    if include_answers:
        properties["answers"] = copy.deepcopy(_ANSWERS_SCHEMA)
        required.append("answers")

    return {
        "title": "RecognitionResult",
        "type": "object",
        "description": "Recognition result containing question regions and scores",
        "properties": properties,
        "required": required,
    }
