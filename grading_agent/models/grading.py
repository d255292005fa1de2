"""判分与回调数据模型

对外 JSON 字段使用驼峰命名（gradingSheetId、objectiveScores 等），
Python 侧使用下划线命名，序列化时统一 by_alias=True。
"""

from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from grading_agent.models.answer import AnswerRecognitionResponse
from grading_agent.models.recognition import RecognitionResult
from grading_agent.models.region import Number, QuestionNumberField

GradedQuestionType = Literal["choice", "fill", "essay"]

OBJECTIVE_TYPES = ("choice", "fill")
SUBJECTIVE_TYPES = ("essay",)


class ScoreEntry(BaseModel):
    """单题得分与满分"""

    score: Number
    max_score: Number


class QuestionScoreResult(BaseModel):
    """单题判分结果"""

    model_config = ConfigDict(populate_by_name=True)

    question_number: QuestionNumberField
    type: GradedQuestionType = "choice"
    score: Number
    max_score: Number
    reason: Optional[str] = None
    student_answer: Optional[str] = Field(default=None, alias="studentAnswer")
    standard_answer: Optional[str] = Field(default=None, alias="standardAnswer")

    def to_entry(self) -> ScoreEntry:
        return ScoreEntry(score=self.score, max_score=self.max_score)


class ScoreCalculationResult(BaseModel):
    """一页或一份答卷的汇总判分结果"""

    model_config = ConfigDict(populate_by_name=True)

    questions: List[QuestionScoreResult] = Field(default_factory=list)
    objective_scores: Dict[QuestionNumberField, ScoreEntry] = Field(
        default_factory=dict, alias="objectiveScores"
    )
    subjective_scores: Dict[QuestionNumberField, ScoreEntry] = Field(
        default_factory=dict, alias="subjectiveScores"
    )
    total_score: Number = Field(default=0, alias="totalScore")
    total_max_score: Number = Field(default=0, alias="totalMaxScore")

    @classmethod
    def from_questions(cls, questions: List[QuestionScoreResult]) -> "ScoreCalculationResult":
        """按题目列表计算客观/主观分与总分，同一题号只计第一次"""
        objective: Dict[Any, ScoreEntry] = {}
        subjective: Dict[Any, ScoreEntry] = {}
        for question in questions:
            if question.type in OBJECTIVE_TYPES:
                objective.setdefault(question.question_number, question.to_entry())
            elif question.type in SUBJECTIVE_TYPES:
                subjective.setdefault(question.question_number, question.to_entry())

        return cls(
            questions=questions,
            objective_scores=objective,
            subjective_scores=subjective,
            total_score=sum(q.score for q in questions),
            total_max_score=sum(q.max_score for q in questions),
        )


class ResultPayload(BaseModel):
    questions: List[QuestionScoreResult] = Field(default_factory=list)


class CallbackPayload(BaseModel):
    """回调请求体"""

    model_config = ConfigDict(populate_by_name=True)

    grading_sheet_id: int = Field(..., alias="gradingSheetId")
    status: Literal["completed", "failed"]
    recognize_result: Optional[AnswerRecognitionResponse] = Field(
        default=None, alias="recognizeResult"
    )
    objective_scores: Optional[Dict[QuestionNumberField, ScoreEntry]] = Field(
        default=None, alias="objectiveScores"
    )
    subjective_scores: Optional[Dict[QuestionNumberField, ScoreEntry]] = Field(
        default=None, alias="subjectiveScores"
    )
    final_score: Optional[str] = Field(default=None, alias="finalScore")
    max_score: Optional[str] = Field(default=None, alias="maxScore")
    failure_reason: Optional[str] = Field(default=None, alias="failureReason")
    result_payload: Optional[ResultPayload] = Field(default=None, alias="resultPayload")

    def to_json_dict(self) -> Dict[str, Any]:
        """转换为回调 JSON，省略未设置的字段"""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class SheetInfo(BaseModel):
    """待批改的一份答卷（可能多页）"""

    model_config = ConfigDict(populate_by_name=True)

    grading_sheet_id: int = Field(..., alias="gradingSheetId")
    student_sheet_image_urls: List[str] = Field(
        ..., min_length=1, alias="studentSheetImageUrls", description="按页码排序的学生答卷图片"
    )


class GradeBatchRequest(BaseModel):
    """批量批改请求"""

    model_config = ConfigDict(populate_by_name=True)

    blank_sheet_recognition: List[RecognitionResult] = Field(
        ..., min_length=1, alias="blankSheetRecognition", description="按页码排序，所有答卷共用"
    )
    answer_recognition: Union[AnswerRecognitionResponse, List[AnswerRecognitionResponse]] = Field(
        ..., alias="answerRecognition", description="单个合并结果，或按页码排序的列表"
    )
    callback_url: str = Field(..., alias="callbackUrl")
    sheets: List[SheetInfo] = Field(..., min_length=1)
    max_concurrent: Optional[int] = Field(default=None, ge=1, alias="maxConcurrent")

    @field_validator("callback_url")
    @classmethod
    def validate_callback_url(cls, v: str) -> str:
        if not v.startswith(("http://", "https://")):
            raise ValueError("callbackUrl 必须是 http(s) 地址")
        return v


class GradeBatchResponse(BaseModel):
    """批量批改受理结果"""

    model_config = ConfigDict(populate_by_name=True)

    success: bool
    message: str
    submitted_count: int = Field(..., alias="submittedCount")
    batch_id: Optional[str] = Field(default=None, alias="batchId")
