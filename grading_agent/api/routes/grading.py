"""批改 API 路由

- POST /api/grading/grade-batch - 提交批量批改任务，结果通过回调通知
"""

import logging

from fastapi import APIRouter, Depends, status

from grading_agent.api.dependencies import get_grading_service
from grading_agent.models.grading import GradeBatchRequest, GradeBatchResponse
from grading_agent.services.grading import GradingService

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/grading", tags=["批改"])


@router.post(
    "/grade-batch",
    response_model=GradeBatchResponse,
    response_model_by_alias=True,
    response_model_exclude_none=True,
    status_code=status.HTTP_202_ACCEPTED,
)
async def grade_batch(
    request: GradeBatchRequest,
    service: GradingService = Depends(get_grading_service),
):
    """提交批量批改

    立即返回 202，每份答卷的最终结果只通过 callbackUrl 回调获得。
    """
    logger.info(
        f"收到批量批改请求: sheets={len(request.sheets)}, callback={request.callback_url}"
    )
    return service.submit_batch(request)
