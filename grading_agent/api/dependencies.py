"""API 依赖注入

进程启动时构造一次服务容器并挂到 app.state，路由通过 Depends 取用。
"""

import logging
from dataclasses import dataclass
from typing import Optional

from fastapi import Request

from grading_agent.config.settings import AppSettings, LLMProvider
from grading_agent.services.callback import CallbackService
from grading_agent.services.grading import GradingService
from grading_agent.services.image_crop import ImageCropper
from grading_agent.services.image_fetcher import ImageFetcher
from grading_agent.services.llm_client import UnifiedLLMClient
from grading_agent.services.recognition import RecognitionService
from grading_agent.services.region_merger import ResultMerger
from grading_agent.services.response_parser import ResponseParser
from grading_agent.services.score_calculation import ScoreCalculationService
from grading_agent.services.vision_model import create_chat_model

logger = logging.getLogger(__name__)


@dataclass
class ServiceContainer:
    """进程内共享的服务实例"""

    settings: AppSettings
    recognition: RecognitionService
    grading: GradingService
    fetcher: ImageFetcher
    callback: CallbackService
    llm_client: Optional[UnifiedLLMClient] = None

    async def aclose(self) -> None:
        """等待后台批改任务结束并释放 HTTP 连接"""
        await self.grading.wait_for_background_tasks()
        await self.callback.close()
        await self.fetcher.close()
        if self.llm_client is not None:
            await self.llm_client.close()
        logger.info("服务容器已关闭")


def build_container(settings: AppSettings) -> ServiceContainer:
    """按配置构造全部服务"""
    settings.llm.validate()

    llm_client = None
    if settings.llm.provider == LLMProvider.DASHSCOPE:
        llm_client = UnifiedLLMClient(settings.llm)

    model = create_chat_model(settings.llm, client=llm_client)
    structured_model = create_chat_model(
        settings.llm, client=llm_client, max_tokens=settings.llm.structured_max_tokens
    )

    grading_config = settings.grading
    fetcher = ImageFetcher(max_size_bytes=grading_config.max_image_size_bytes)
    recognition = RecognitionService(
        model,
        fetcher,
        ImageCropper(fetcher),
        ResponseParser(),
        structured_model=structured_model,
        choice_expand_percent=grading_config.choice_crop_expand_percent,
    )
    callback = CallbackService(
        timeout=grading_config.callback_timeout,
        default_retries=grading_config.callback_retries,
    )
    grading = GradingService(
        recognition,
        ScoreCalculationService(model),
        callback,
        ResultMerger(),
        max_concurrent=grading_config.max_concurrent,
    )

    logger.info(
        f"服务容器初始化完成: provider={settings.llm.provider.value}, model={settings.llm.model}, "
        f"max_concurrent={grading_config.max_concurrent}"
    )
    return ServiceContainer(
        settings=settings,
        recognition=recognition,
        grading=grading,
        fetcher=fetcher,
        callback=callback,
        llm_client=llm_client,
    )


def get_container(request: Request) -> ServiceContainer:
    return request.app.state.container


def get_recognition_service(request: Request) -> RecognitionService:
    return get_container(request).recognition


def get_grading_service(request: Request) -> GradingService:
    return get_container(request).grading
