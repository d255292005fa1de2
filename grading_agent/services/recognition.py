"""识别服务

负责三类识别：
- 空白答题卡：选择题区域 + 每题分值
- 统一识别：空白答题卡 + 答案图片，一次返回区域、分值与标准答案
- 学生答卷：选择题按区域裁剪并行识别，解答题整图识别，两路并发执行

结构化输出在部分模型上会静默返回空结果，因此识别调用带有回退链：
结构化结果为空时先解析原始文本，仍为空再发起一次无约束调用；
结构化调用直接报错时回退到一次无约束调用。
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional, Sequence

from grading_agent.models.answer import AnswerRecognitionResponse, RegionAnswerResult
from grading_agent.models.recognition import RecognitionResult
from grading_agent.models.region import QuestionRegion
from grading_agent.services.image_crop import DEFAULT_EXPAND_PERCENT, ImageCropper
from grading_agent.services.image_fetcher import ImageFetcher
from grading_agent.services.output_schema import build_recognition_schema
from grading_agent.services.prompt_builder import (
    build_batch_image_prompt,
    build_blank_sheet_prompt,
    build_choice_region_prompt,
    build_combined_prompt,
    build_full_image_prompt,
)
from grading_agent.services.response_parser import ResponseParser
from grading_agent.services.vision_model import (
    StructuredOutput,
    VisionChatModel,
    build_vision_message,
    message_text,
)
from grading_agent.utils.errors import ModelResponseError, ParseError
from grading_agent.utils.image import to_data_url

logger = logging.getLogger(__name__)


class RecognitionService:
    """识别编排服务"""

    def __init__(
        self,
        model: VisionChatModel,
        fetcher: ImageFetcher,
        cropper: ImageCropper,
        parser: Optional[ResponseParser] = None,
        *,
        structured_model: Optional[VisionChatModel] = None,
        choice_expand_percent: float = DEFAULT_EXPAND_PERCENT,
    ):
        """
        Args:
            model: 答案识别使用的模型
            fetcher: 图片大小校验与下载
            cropper: 区域裁剪
            parser: 响应解析器
            structured_model: 区域/分值识别使用的模型（输出更长），默认与 model 相同
            choice_expand_percent: 选择题区域裁剪时的外扩百分点
        """
        self.model = model
        self.structured_model = structured_model or model
        self.fetcher = fetcher
        self.cropper = cropper
        self.parser = parser or ResponseParser()
        self.choice_expand_percent = choice_expand_percent

    # ==================== 区域与分值识别 ====================

    async def recognize_blank_sheet(self, image_url: str) -> RecognitionResult:
        """识别空白答题卡的选择题区域与每题分值"""
        logger.info(f"识别空白答题卡: {image_url}")
        await self._validate_images([image_url])
        return await self._recognize_with_fallback(
            [image_url],
            build_blank_sheet_prompt(),
            build_recognition_schema(include_answers=False),
        )

    async def recognize_combined(
        self,
        blank_sheet_urls: Sequence[str],
        answer_urls: Sequence[str],
    ) -> RecognitionResult:
        """统一识别空白答题卡与答案图片

        图片顺序为空白答题卡在前、答案图片在后。
        """
        if not blank_sheet_urls:
            raise ValueError("At least one blank sheet image URL is required")
        if not answer_urls:
            raise ValueError("At least one answer image URL is required")

        logger.info(
            f"统一识别: 空白答题卡 {len(blank_sheet_urls)} 张, 答案图片 {len(answer_urls)} 张"
        )
        image_urls = [*blank_sheet_urls, *answer_urls]
        await self._validate_images(image_urls)
        return await self._recognize_with_fallback(
            image_urls,
            build_combined_prompt(len(blank_sheet_urls), len(answer_urls)),
            build_recognition_schema(include_answers=True),
        )

    async def _recognize_with_fallback(
        self,
        image_urls: List[str],
        prompt: str,
        schema: Dict[str, Any],
    ) -> RecognitionResult:
        message = build_vision_message(image_urls, prompt)

        try:
            output: StructuredOutput = await self.structured_model.ainvoke_structured([message], schema)
        except Exception as e:
            logger.warning(f"结构化输出调用失败，回退到普通调用: {type(e).__name__}: {e}")
            return await self._recognize_unconstrained(image_urls, prompt)

        if output.parsed is not None:
            result = self.parser.build_result(output.parsed)
            if not result.is_empty():
                logger.info(f"结构化输出识别完成: regions={len(result.regions)}, scores={len(result.scores)}")
                return result

        logger.warning("结构化输出返回空的 regions 与 scores，尝试解析原始响应")
        if output.raw_text.strip():
            try:
                result = self.parser.parse(output.raw_text)
                if not result.is_empty():
                    return result
            except ParseError as e:
                logger.warning(f"原始响应解析失败: {e}")

        logger.warning("原始响应仍为空，重新发起无约束调用")
        return await self._recognize_unconstrained(image_urls, prompt)

    async def _recognize_unconstrained(self, image_urls: List[str], prompt: str) -> RecognitionResult:
        content = await self._invoke_text(self.structured_model, image_urls, prompt)
        result = self.parser.parse(content)
        logger.info(f"普通调用识别完成: regions={len(result.regions)}, scores={len(result.scores)}")
        return result

    # ==================== 答案识别 ====================

    async def recognize_answers(self, image_url: str) -> AnswerRecognitionResponse:
        """整图识别标准答案（选择题与解答题）"""
        logger.info(f"识别答案图片: {image_url}")
        await self._validate_images([image_url])
        content = await self._invoke_text(self.model, [image_url], build_full_image_prompt())
        return self.parser.parse_full_image_answers(content)

    async def recognize_answers_batch(self, image_urls: Sequence[str]) -> AnswerRecognitionResponse:
        """一次调用识别多张答案图片，结果合并为一个"""
        if not image_urls:
            raise ValueError("At least one image URL is required")
        logger.info(f"批量识别答案图片: {len(image_urls)} 张（合并结果）")
        await self._validate_images(image_urls)
        content = await self._invoke_text(
            self.model, list(image_urls), build_batch_image_prompt(len(image_urls))
        )
        return self.parser.parse_full_image_answers(content)

    async def recognize_student_answers(
        self,
        image_url: str,
        blank_sheet: RecognitionResult,
    ) -> AnswerRecognitionResponse:
        """识别学生答卷

        选择题区域逐个裁剪并行识别，解答题整图识别（排除选择题），两路并发。
        单个选择题区域失败时该区域答案为空；解答题识别失败时解答题结果为空。
        结果按选择题在前、解答题在后拼接。
        """
        choice_regions = [r for r in blank_sheet.regions if r.type == "choice"]
        essay_regions = [r for r in blank_sheet.regions if r.type == "essay"]
        logger.info(
            f"识别学生答卷: {image_url}, 选择题区域 {len(choice_regions)} 个, "
            f"解答题区域 {len(essay_regions)} 个"
        )
        await self._validate_images([image_url])

        choice_results, essay_results = await asyncio.gather(
            self._recognize_choice_regions(image_url, choice_regions),
            self._recognize_essay_answers(image_url),
        )
        return AnswerRecognitionResponse(regions=[*choice_results, *essay_results])

    async def _recognize_choice_regions(
        self,
        image_url: str,
        regions: List[QuestionRegion],
    ) -> List[RegionAnswerResult]:
        if not regions:
            return []

        try:
            image_bytes = await self.fetcher.load(image_url)
        except Exception as e:
            logger.error(f"学生答卷下载失败，选择题结果为空: {type(e).__name__}: {e}")
            return [RegionAnswerResult(type=r.type, region=r, questions=[]) for r in regions]

        return list(
            await asyncio.gather(
                *(
                    self._recognize_choice_region(image_bytes, region, index)
                    for index, region in enumerate(regions)
                )
            )
        )

    async def _recognize_choice_region(
        self,
        image_bytes: bytes,
        region: QuestionRegion,
        index: int,
    ) -> RegionAnswerResult:
        try:
            cropped = await self.cropper.crop(image_bytes, region, self.choice_expand_percent)
            content = await self._invoke_text(
                self.model, [to_data_url(cropped)], build_choice_region_prompt()
            )
            questions = self.parser.parse_answer_list(content)
            logger.debug(f"选择题区域 {index + 1} 识别到 {len(questions)} 道题")
        except Exception as e:
            logger.error(f"选择题区域 {index + 1} 识别失败: {type(e).__name__}: {e}")
            questions = []
        return RegionAnswerResult(type=region.type, region=region, questions=questions)

    async def _recognize_essay_answers(self, image_url: str) -> List[RegionAnswerResult]:
        try:
            content = await self._invoke_text(
                self.model, [image_url], build_full_image_prompt(exclude_choice=True)
            )
            response = self.parser.parse_full_image_answers(content)
        except Exception as e:
            logger.error(f"解答题整图识别失败，结果为空: {type(e).__name__}: {e}")
            return []
        return response.regions

    # ==================== 公共方法 ====================

    async def _validate_images(self, image_urls: Sequence[str]) -> None:
        await asyncio.gather(*(self.fetcher.validate_image_size(url) for url in image_urls))

    @staticmethod
    async def _invoke_text(model: VisionChatModel, image_urls: List[str], prompt: str) -> str:
        response = await model.ainvoke([build_vision_message(image_urls, prompt)])
        content = message_text(getattr(response, "content", response))
        if not content.strip():
            raise ModelResponseError("Model returned empty response")
        return content
