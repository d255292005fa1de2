"""区域与分值数据模型

坐标统一使用百分比（0-100），原点为图片左上角。
"""

from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, field_validator, model_validator

from grading_agent.utils.question_number import normalize_question_number

QuestionType = Literal["choice", "essay"]

Number = Union[int, float]


def _coerce_question_number(value: Any) -> Union[int, str]:
    normalized = normalize_question_number(value)
    if normalized is None:
        raise ValueError(f"无效的题号: {value!r}")
    return normalized


# 所有模型里的题号都经过规范化，纯数字字符串统一为 int
QuestionNumberField = Annotated[Union[int, str], BeforeValidator(_coerce_question_number)]


class QuestionRegion(BaseModel):
    """题目区域（百分比坐标）"""

    type: QuestionType = Field(..., description="区域题型")
    x_min_percent: float = Field(..., ge=0, le=100, description="左边界百分比")
    y_min_percent: float = Field(..., ge=0, le=100, description="上边界百分比")
    x_max_percent: float = Field(..., ge=0, le=100, description="右边界百分比")
    y_max_percent: float = Field(..., ge=0, le=100, description="下边界百分比")

    @model_validator(mode="after")
    def validate_ordering(self) -> "QuestionRegion":
        """验证最小坐标小于最大坐标"""
        if self.x_min_percent >= self.x_max_percent:
            raise ValueError(
                f"x_min_percent ({self.x_min_percent}) 必须小于 x_max_percent ({self.x_max_percent})"
            )
        if self.y_min_percent >= self.y_max_percent:
            raise ValueError(
                f"y_min_percent ({self.y_min_percent}) 必须小于 y_max_percent ({self.y_max_percent})"
            )
        return self


class QuestionScore(BaseModel):
    """空白答题卡上声明的每题满分"""

    model_config = ConfigDict(populate_by_name=True)

    question_number: QuestionNumberField = Field(..., alias="questionNumber")
    score: Number

    @field_validator("score")
    @classmethod
    def validate_score(cls, v: Number) -> Number:
        if v < 0:
            raise ValueError(f"分值不能为负数: {v}")
        return v


FULL_IMAGE_BOX = {
    "x_min_percent": 0,
    "y_min_percent": 0,
    "x_max_percent": 100,
    "y_max_percent": 100,
}


def full_image_region(question_type: str) -> QuestionRegion:
    """整图区域，用于未做区域定位的识别结果"""
    return QuestionRegion(type=question_type, **FULL_IMAGE_BOX)
