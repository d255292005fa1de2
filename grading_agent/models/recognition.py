"""空白答题卡识别结果"""

from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from grading_agent.models.answer import AnswerRecognitionResponse
from grading_agent.models.region import QuestionRegion, QuestionScore


class RecognitionResult(BaseModel):
    """一次空白答题卡识别或统一识别的完整结果"""

    regions: List[QuestionRegion] = Field(default_factory=list)
    scores: List[QuestionScore] = Field(default_factory=list)
    answers: Optional[AnswerRecognitionResponse] = None

    def is_empty(self) -> bool:
        return not self.regions and not self.scores

    def score_map(self) -> Dict:
        """题号 -> 满分；同一题号出现多次时以最后一次为准"""
        return {entry.question_number: entry.score for entry in self.scores}
