"""区域裁剪单元测试"""

from io import BytesIO

import pytest
from PIL import Image

from grading_agent.models.region import QuestionRegion
from grading_agent.services.image_crop import ImageCropper, compute_crop_box
from grading_agent.services.image_fetcher import ImageFetcher
from grading_agent.utils.image import detect_mime_type, to_data_url


def _region(x_min, y_min, x_max, y_max):
    return QuestionRegion(
        type="choice",
        x_min_percent=x_min,
        y_min_percent=y_min,
        x_max_percent=x_max,
        y_max_percent=y_max,
    )


def _image_bytes(width, height, image_format="PNG"):
    buffer = BytesIO()
    Image.new("RGB", (width, height), color=(255, 255, 255)).save(buffer, format=image_format)
    return buffer.getvalue()


class TestComputeCropBox:
    """测试像素裁剪框换算"""

    def test_without_expansion(self):
        box = compute_crop_box(_region(10, 20, 50, 60), 1000, 500, expand_percent=0)
        assert (box.left, box.top, box.width, box.height) == (100, 100, 400, 200)

    def test_expansion_applied(self):
        box = compute_crop_box(_region(10, 20, 50, 60), 1000, 500, expand_percent=2)
        assert (box.left, box.top, box.width, box.height) == (80, 90, 440, 220)

    def test_expansion_clamped_to_image(self):
        box = compute_crop_box(_region(1, 1, 99, 99), 200, 100, expand_percent=2)
        assert (box.left, box.top) == (0, 0)
        assert box.as_pil_box() == (0, 0, 200, 100)

    def test_zero_size_rejected(self):
        with pytest.raises(ValueError, match="Invalid crop dimensions"):
            compute_crop_box(_region(10, 10, 10.01, 20), 10, 10, expand_percent=0)


class TestImageCropper:
    """测试裁剪器"""

    @pytest.mark.asyncio
    async def test_crop_png_bytes(self):
        cropper = ImageCropper(ImageFetcher())
        data = await cropper.crop(_image_bytes(400, 200), _region(0, 0, 50, 50), expand_percent=0)

        with Image.open(BytesIO(data)) as cropped:
            assert cropped.size == (200, 100)
            assert cropped.format == "PNG"
        assert detect_mime_type(data) == "image/png"

    @pytest.mark.asyncio
    async def test_crop_jpeg_from_path(self, tmp_path):
        path = tmp_path / "sheet.jpg"
        path.write_bytes(_image_bytes(100, 100, "JPEG"))
        cropper = ImageCropper(ImageFetcher())

        data = await cropper.crop(str(path), _region(25, 25, 75, 75), expand_percent=2)

        with Image.open(BytesIO(data)) as cropped:
            assert cropped.size == (54, 54)
        assert to_data_url(data).startswith("data:image/jpeg;base64,")


class TestDetectMimeType:
    @pytest.mark.parametrize(
        "header,expected",
        [
            (b"\xff\xd8\xff\xe0" + b"\x00" * 8, "image/jpeg"),
            (b"\x89PNG\r\n\x1a\n" + b"\x00" * 4, "image/png"),
            (b"RIFF\x00\x00\x00\x00WEBP", "image/webp"),
            (b"GIF89a" + b"\x00" * 6, "image/gif"),
            (b"unknown", "image/jpeg"),
        ],
    )
    def test_magic_numbers(self, header, expected):
        assert detect_mime_type(header) == expected
