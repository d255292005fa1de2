"""区域裁剪服务

按百分比坐标裁剪图片，裁剪前先向外扩展一定百分点以容忍模型给出的偏紧边界。
"""

import asyncio
import logging
import math
from dataclasses import dataclass
from io import BytesIO
from typing import Tuple

from PIL import Image

from grading_agent.models.region import QuestionRegion
from grading_agent.services.image_fetcher import ImageFetcher, ImageSource
from grading_agent.utils.image import pil_to_bytes

logger = logging.getLogger(__name__)

DEFAULT_EXPAND_PERCENT = 2.0


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


@dataclass(frozen=True)
class PixelBox:
    left: int
    top: int
    width: int
    height: int

    def as_pil_box(self) -> Tuple[int, int, int, int]:
        return (self.left, self.top, self.left + self.width, self.top + self.height)


def compute_crop_box(
    region: QuestionRegion,
    image_width: int,
    image_height: int,
    expand_percent: float = DEFAULT_EXPAND_PERCENT,
) -> PixelBox:
    """将百分比区域（扩展后）换算为像素裁剪框

    Raises:
        ValueError: 裁剪尺寸非正
    """
    x_min = max(0.0, region.x_min_percent - expand_percent)
    y_min = max(0.0, region.y_min_percent - expand_percent)
    x_max = min(100.0, region.x_max_percent + expand_percent)
    y_max = min(100.0, region.y_max_percent + expand_percent)

    left = _round_half_up(x_min / 100 * image_width)
    top = _round_half_up(y_min / 100 * image_height)
    width = _round_half_up((x_max - x_min) / 100 * image_width)
    height = _round_half_up((y_max - y_min) / 100 * image_height)

    # 四舍五入可能越界 1 像素
    width = min(width, image_width - left)
    height = min(height, image_height - top)

    if width <= 0 or height <= 0:
        raise ValueError(f"Invalid crop dimensions: width={width}, height={height}")

    return PixelBox(left=left, top=top, width=width, height=height)


class ImageCropper:
    """图片裁剪器"""

    def __init__(self, fetcher: ImageFetcher):
        self.fetcher = fetcher

    async def crop(
        self,
        source: ImageSource,
        region: QuestionRegion,
        expand_percent: float = DEFAULT_EXPAND_PERCENT,
    ) -> bytes:
        """裁剪区域并返回编码后的图片字节

        Args:
            source: 图片 URL、本地路径或已下载的字节
            region: 百分比区域
            expand_percent: 每边向外扩展的百分点
        """
        data = await self.fetcher.load(source)
        return await asyncio.to_thread(self._crop_bytes, data, region, expand_percent)

    @staticmethod
    def _crop_bytes(data: bytes, region: QuestionRegion, expand_percent: float) -> bytes:
        with Image.open(BytesIO(data)) as image:
            image_format = image.format or "JPEG"
            width, height = image.size
            box = compute_crop_box(region, width, height, expand_percent)
            cropped = image.crop(box.as_pil_box())
            logger.debug(
                f"图片裁剪完成: 原图 {width}x{height}, "
                f"裁剪 {box.width}x{box.height} @ ({box.left},{box.top})"
            )
            return pil_to_bytes(cropped, image_format)
