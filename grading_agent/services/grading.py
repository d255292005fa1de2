"""批量批改服务

以有界并发批改多份答卷，每份答卷独立隔离：
单份失败只会为该答卷发送 failed 回调，不影响其他答卷。
批改结果只通过回调通知，接口层提交任务后立即返回。
"""

import asyncio
import logging
import uuid
from typing import Any, List, Optional, Sequence, Set, Union

from grading_agent.models.answer import AnswerRecognitionResponse
from grading_agent.models.grading import (
    CallbackPayload,
    GradeBatchRequest,
    GradeBatchResponse,
    ResultPayload,
    ScoreCalculationResult,
    SheetInfo,
)
from grading_agent.models.recognition import RecognitionResult
from grading_agent.services.callback import CallbackService
from grading_agent.services.recognition import RecognitionService
from grading_agent.services.region_merger import ResultMerger
from grading_agent.services.response_parser import normalize_answer_keys
from grading_agent.services.score_calculation import ScoreCalculationService
from grading_agent.utils.errors import CallbackError

logger = logging.getLogger(__name__)

DEFAULT_MAX_CONCURRENT = 5

AnswerRecognitionInput = Union[AnswerRecognitionResponse, List[AnswerRecognitionResponse]]


def format_score(value: Any) -> str:
    """分数转字符串，整数值不带小数点"""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def _accepted_message(count: int) -> str:
    return f"Batch grading request accepted, processing {count} sheets"


class GradingService:
    """批量批改协调器"""

    def __init__(
        self,
        recognition: RecognitionService,
        scoring: ScoreCalculationService,
        callback: CallbackService,
        merger: Optional[ResultMerger] = None,
        *,
        max_concurrent: int = DEFAULT_MAX_CONCURRENT,
        callback_retries: Optional[int] = None,
    ):
        self.recognition = recognition
        self.scoring = scoring
        self.callback = callback
        self.merger = merger or ResultMerger()
        self.max_concurrent = max_concurrent
        self.callback_retries = callback_retries
        self._background_tasks: Set[asyncio.Task] = set()

    # ==================== 任务提交 ====================

    def submit_batch(self, request: GradeBatchRequest) -> GradeBatchResponse:
        """提交批量批改任务并立即返回受理结果

        任务在后台独立运行，最终状态只通过回调通知。
        """
        batch_id = str(uuid.uuid4())
        task = asyncio.create_task(self._run_batch(batch_id, request), name=f"grade-batch-{batch_id}")
        self._background_tasks.add(task)
        task.add_done_callback(self._background_tasks.discard)

        logger.info(f"批量批改任务已提交: batch_id={batch_id}, sheets={len(request.sheets)}")
        return GradeBatchResponse(
            success=True,
            message=_accepted_message(len(request.sheets)),
            submitted_count=len(request.sheets),
            batch_id=batch_id,
        )

    async def _run_batch(self, batch_id: str, request: GradeBatchRequest) -> None:
        try:
            await self.grade_batch(request)
        except Exception as e:
            # grade_batch 已隔离单份答卷的异常，这里只兜底记录
            logger.error(f"批量批改任务异常终止: batch_id={batch_id}, error={e}", exc_info=True)
        else:
            logger.info(f"批量批改任务完成: batch_id={batch_id}")

    async def wait_for_background_tasks(self) -> None:
        """等待所有已提交的后台任务结束"""
        if self._background_tasks:
            await asyncio.gather(*list(self._background_tasks), return_exceptions=True)

    @property
    def pending_batches(self) -> int:
        return len(self._background_tasks)

    # ==================== 批量批改 ====================

    async def grade_batch(self, request: GradeBatchRequest) -> GradeBatchResponse:
        """批量批改

        最多 max_concurrent 份答卷同时处理；每份答卷完成后各自发送回调。
        """
        max_concurrent = request.max_concurrent or self.max_concurrent
        semaphore = asyncio.Semaphore(max_concurrent)
        logger.info(f"开始批量批改: {len(request.sheets)} 份答卷, 并发上限 {max_concurrent}")

        async def _grade_with_limit(sheet: SheetInfo) -> None:
            async with semaphore:
                await self._grade_sheet_isolated(sheet, request)

        await asyncio.gather(*(_grade_with_limit(sheet) for sheet in request.sheets))

        logger.info(f"批量批改完成: {len(request.sheets)} 份答卷")
        return GradeBatchResponse(
            success=True,
            message=_accepted_message(len(request.sheets)),
            submitted_count=len(request.sheets),
        )

    async def _grade_sheet_isolated(self, sheet: SheetInfo, request: GradeBatchRequest) -> None:
        sheet_id = sheet.grading_sheet_id
        try:
            payload = await self.grade_sheet(
                sheet,
                request.blank_sheet_recognition,
                request.answer_recognition,
            )
        except Exception as e:
            logger.error(f"答卷 {sheet_id} 批改失败: {type(e).__name__}: {e}", exc_info=True)
            failure = CallbackPayload(
                grading_sheet_id=sheet_id,
                status="failed",
                failure_reason=str(e) or type(e).__name__,
            )
            try:
                await self.callback.send_callback(request.callback_url, failure, self.callback_retries)
            except CallbackError as callback_error:
                logger.error(f"答卷 {sheet_id} 失败回调投递失败: {callback_error}")
            return

        try:
            await self.callback.send_callback(request.callback_url, payload, self.callback_retries)
        except CallbackError as e:
            # 批改本身已成功，只是通知失败
            logger.error(f"答卷 {sheet_id} 完成回调投递失败: {e}")
            return
        logger.info(f"答卷 {sheet_id} 批改完成: {payload.final_score}/{payload.max_score}")

    # ==================== 单份答卷 ====================

    async def grade_sheet(
        self,
        sheet: SheetInfo,
        blank_sheets: Sequence[RecognitionResult],
        answer_recognition: AnswerRecognitionInput,
    ) -> CallbackPayload:
        """批改单份答卷（可能多页）并构造 completed 回调内容

        页面严格按顺序处理，保证学生答卷、空白答题卡与标准答案按下标对应。
        """
        image_urls = sheet.student_sheet_image_urls
        page_count = len(image_urls)
        page_blank_sheets = self._pair_pages(list(blank_sheets), page_count, "blank sheets")
        if isinstance(answer_recognition, list):
            page_answers = self._pair_pages(answer_recognition, page_count, "answer keys")
        else:
            page_answers = [answer_recognition] * page_count

        logger.info(f"批改答卷 {sheet.grading_sheet_id}: 共 {page_count} 页")

        student_pages: List[AnswerRecognitionResponse] = []
        score_pages: List[ScoreCalculationResult] = []
        for index, image_url in enumerate(image_urls):
            student_answers = await self.recognition.recognize_student_answers(
                image_url, page_blank_sheets[index]
            )
            score_result = await self.scoring.calculate_scores(
                student_answers, page_answers[index], page_blank_sheets[index]
            )
            logger.debug(
                f"答卷 {sheet.grading_sheet_id} 第 {index + 1}/{page_count} 页得分: "
                f"{score_result.total_score}"
            )
            student_pages.append(student_answers)
            score_pages.append(score_result)

        merged_answers = self.merger.merge_answers(student_pages)
        merged_scores = self.merger.merge_scores(score_pages)
        standard_answers = self.merger.merge_answers(page_answers)
        self._attach_answers(merged_scores, merged_answers, standard_answers)

        return CallbackPayload(
            grading_sheet_id=sheet.grading_sheet_id,
            status="completed",
            recognize_result=merged_answers,
            objective_scores=merged_scores.objective_scores,
            subjective_scores=merged_scores.subjective_scores,
            final_score=format_score(merged_scores.total_score),
            max_score=format_score(merged_scores.total_max_score),
            result_payload=ResultPayload(questions=merged_scores.questions),
        )

    @staticmethod
    def _pair_pages(items: List[Any], page_count: int, label: str) -> List[Any]:
        if len(items) == page_count:
            return items
        if len(items) == 1:
            return items * page_count
        raise ValueError(
            f"Mismatch in array lengths: student sheets ({page_count}), {label} ({len(items)})"
        )

    @staticmethod
    def _attach_answers(
        scores: ScoreCalculationResult,
        student_answers: AnswerRecognitionResponse,
        standard_answers: AnswerRecognitionResponse,
    ) -> None:
        """按题号为每道题附上学生答案与标准答案"""
        student_lookup = normalize_answer_keys(student_answers)
        standard_lookup = normalize_answer_keys(standard_answers)
        for question in scores.questions:
            question.student_answer = student_lookup.get(question.question_number)
            question.standard_answer = standard_lookup.get(question.question_number)
