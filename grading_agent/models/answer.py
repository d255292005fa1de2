"""答案识别数据模型"""

from typing import List

from pydantic import BaseModel, Field

from grading_agent.models.region import QuestionNumberField, QuestionRegion, QuestionType


class QuestionAnswer(BaseModel):
    """单题识别出的答案"""

    question_number: QuestionNumberField
    answer: str


class RegionAnswerResult(BaseModel):
    """同一题型下的全部答案及其来源区域"""

    type: QuestionType
    region: QuestionRegion
    questions: List[QuestionAnswer] = Field(default_factory=list)


class AnswerRecognitionResponse(BaseModel):
    """答案识别结果"""

    regions: List[RegionAnswerResult] = Field(default_factory=list)

    def iter_answers(self):
        """按出现顺序遍历 (题型, 答案)"""
        for region in self.regions:
            for question in region.questions:
                yield region.type, question
