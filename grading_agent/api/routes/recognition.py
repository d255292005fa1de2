"""识别 API 路由

- POST /api/recognition/blank-sheet - 识别空白答题卡（选择题区域 + 每题分值）
- POST /api/recognition/answers - 识别标准答案（单张或多张合并）
- POST /api/recognition/combined - 空白答题卡与答案图片统一识别
"""

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, ConfigDict, Field

from grading_agent.api.dependencies import get_recognition_service
from grading_agent.models.answer import AnswerRecognitionResponse
from grading_agent.models.recognition import RecognitionResult
from grading_agent.services.recognition import RecognitionService

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/recognition", tags=["识别"])


# ==================== 请求模型 ====================


class RecognizeBlankSheetRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    image_url: str = Field(..., min_length=1, alias="imageUrl", description="空白答题卡图片 URL")


class RecognizeAnswersRequest(BaseModel):
    """imageUrl 与 imageUrls 二选一；同时提供时以 imageUrls 为准"""

    model_config = ConfigDict(populate_by_name=True)

    image_url: Optional[str] = Field(default=None, alias="imageUrl")
    image_urls: Optional[List[str]] = Field(default=None, alias="imageUrls")


class RecognizeCombinedRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    blank_sheet_image_urls: List[str] = Field(..., min_length=1, alias="blankSheetImageUrls")
    answer_image_urls: List[str] = Field(..., min_length=1, alias="answerImageUrls")


# ==================== 路由 ====================


@router.post("/blank-sheet", response_model=RecognitionResult, response_model_exclude_none=True)
async def recognize_blank_sheet(
    request: RecognizeBlankSheetRequest,
    service: RecognitionService = Depends(get_recognition_service),
):
    """识别空白答题卡"""
    return await service.recognize_blank_sheet(request.image_url)


@router.post("/answers", response_model=AnswerRecognitionResponse)
async def recognize_answers(
    request: RecognizeAnswersRequest,
    service: RecognitionService = Depends(get_recognition_service),
):
    """识别标准答案

    多张图片在一次模型调用中识别，结果合并为一个。
    """
    if request.image_urls:
        return await service.recognize_answers_batch(request.image_urls)
    if request.image_url:
        return await service.recognize_answers(request.image_url)
    raise HTTPException(status_code=400, detail="Either imageUrl or imageUrls is required")


@router.post("/combined", response_model=RecognitionResult, response_model_exclude_none=True)
async def recognize_combined(
    request: RecognizeCombinedRequest,
    service: RecognitionService = Depends(get_recognition_service),
):
    """统一识别空白答题卡与答案图片"""
    return await service.recognize_combined(
        request.blank_sheet_image_urls, request.answer_image_urls
    )
