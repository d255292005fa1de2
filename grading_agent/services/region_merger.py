"""识别与判分结果合并服务

将多页答卷的答案识别结果和判分结果合并为一份：
- 同一题目（题型 + 题号）只保留第一次出现的结果
- 选择题区域按坐标取并集，其他题型保留第一次出现的区域
- 总分基于去重后的题目重新计算，避免跨页重复计分
"""

import logging
from typing import Dict, List, Sequence, Tuple

from grading_agent.models.answer import AnswerRecognitionResponse, QuestionAnswer, RegionAnswerResult
from grading_agent.models.grading import QuestionScoreResult, ScoreCalculationResult, ScoreEntry
from grading_agent.models.region import QuestionRegion, full_image_region
from grading_agent.utils.question_number import QuestionNumber, question_number_sort_key

logger = logging.getLogger(__name__)


def _union_region(a: QuestionRegion, b: QuestionRegion) -> QuestionRegion:
    return a.model_copy(
        update={
            "x_min_percent": min(a.x_min_percent, b.x_min_percent),
            "y_min_percent": min(a.y_min_percent, b.y_min_percent),
            "x_max_percent": max(a.x_max_percent, b.x_max_percent),
            "y_max_percent": max(a.y_max_percent, b.y_max_percent),
        }
    )


class ResultMerger:
    """多页结果合并器"""

    def merge_answers(self, results: Sequence[AnswerRecognitionResponse]) -> AnswerRecognitionResponse:
        """合并多份答案识别结果

        Args:
            results: 各页答案识别结果（按页码顺序）

        Returns:
            合并后的结果，每个题型一个区域，区域按首题题号排序
        """
        bounding: Dict[str, QuestionRegion] = {}
        questions: Dict[Tuple[str, QuestionNumber], QuestionAnswer] = {}

        for result in results:
            for region_result in result.regions:
                question_type = region_result.type
                if question_type not in bounding:
                    bounding[question_type] = region_result.region
                elif question_type == "choice":
                    bounding[question_type] = _union_region(
                        bounding[question_type], region_result.region
                    )

                for question in region_result.questions:
                    key = (question_type, question.question_number)
                    if key not in questions:
                        questions[key] = question

        grouped: Dict[str, List[QuestionAnswer]] = {}
        for (question_type, _), question in questions.items():
            grouped.setdefault(question_type, []).append(question)

        merged: List[RegionAnswerResult] = []
        for question_type, items in grouped.items():
            items.sort(key=lambda q: question_number_sort_key(q.question_number))
            region = bounding.get(question_type) or full_image_region(question_type)
            merged.append(
                RegionAnswerResult(
                    type=question_type,
                    region=region.model_copy(update={"type": question_type}),
                    questions=items,
                )
            )

        merged.sort(key=lambda r: question_number_sort_key(r.questions[0].question_number))

        logger.info(f"合并 {len(results)} 份答案识别结果: {len(questions)} 道题, {len(merged)} 个区域")
        return AnswerRecognitionResponse(regions=merged)

    def merge_scores(self, results: Sequence[ScoreCalculationResult]) -> ScoreCalculationResult:
        """合并多份判分结果

        题目按题号去重（先出现者优先），客观/主观分按键合并（先出现者优先），
        totalScore 与 totalMaxScore 基于去重后的题目重新求和。
        """
        questions: Dict[QuestionNumber, QuestionScoreResult] = {}
        objective: Dict[QuestionNumber, ScoreEntry] = {}
        subjective: Dict[QuestionNumber, ScoreEntry] = {}

        for result in results:
            for question in result.questions:
                questions.setdefault(question.question_number, question)
            for key, entry in result.objective_scores.items():
                objective.setdefault(key, entry)
            for key, entry in result.subjective_scores.items():
                subjective.setdefault(key, entry)

        ordered = sorted(questions.values(), key=lambda q: question_number_sort_key(q.question_number))
        total_score = sum(q.score for q in ordered)
        total_max_score = sum(q.max_score for q in ordered)

        logger.info(
            f"合并 {len(results)} 份判分结果: {len(ordered)} 道题, "
            f"总分 {total_score}/{total_max_score}"
        )
        return ScoreCalculationResult(
            questions=ordered,
            objective_scores=objective,
            subjective_scores=subjective,
            total_score=total_score,
            total_max_score=total_max_score,
        )
