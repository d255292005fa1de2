"""API 路由单元测试

使用伪造的服务容器，验证请求字段映射、响应格式与异常到 HTTP 状态码的映射。
"""

import logging
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

from fastapi.testclient import TestClient

from grading_agent.api.main import create_app, resolve_log_level
from grading_agent.config.settings import AppSettings, ServerConfig
from grading_agent.models.answer import AnswerRecognitionResponse
from grading_agent.models.grading import GradeBatchResponse
from grading_agent.models.recognition import RecognitionResult
from grading_agent.models.region import QuestionRegion, QuestionScore
from grading_agent.utils.errors import ImageSizeError, ModelResponseError, ParseError

BLANK_RESULT = RecognitionResult(
    regions=[
        QuestionRegion(
            type="choice", x_min_percent=8, y_min_percent=8, x_max_percent=52, y_max_percent=42
        )
    ],
    scores=[QuestionScore(question_number=1, score=3)],
)


def _build_client(recognition=None, grading=None, raise_server_exceptions=True) -> TestClient:
    container = SimpleNamespace(
        recognition=recognition or SimpleNamespace(),
        grading=grading or SimpleNamespace(),
    )
    app = create_app(settings=AppSettings(), container=container)
    return TestClient(app, raise_server_exceptions=raise_server_exceptions)


class TestHealth:
    def test_health_paths(self):
        with _build_client() as client:
            for path in ("/health", "/api/health"):
                resp = client.get(path)
                assert resp.status_code == 200
                assert resp.json()["status"] == "healthy"


class TestLogLevel:
    """测试日志级别取自服务配置"""

    def test_configured_level(self, monkeypatch):
        monkeypatch.setenv("LOG_LEVEL", "debug")
        assert resolve_log_level(ServerConfig.from_env()) == logging.DEBUG

    def test_unknown_level_falls_back_to_info(self):
        assert resolve_log_level(ServerConfig(log_level="VERBOSE")) == logging.INFO
        assert resolve_log_level(ServerConfig(log_level="BASIC_FORMAT")) == logging.INFO


class TestRecognitionRoutes:
    """测试识别接口"""

    def test_blank_sheet(self):
        recognition = SimpleNamespace(recognize_blank_sheet=AsyncMock(return_value=BLANK_RESULT))
        with _build_client(recognition=recognition) as client:
            resp = client.post("/api/recognition/blank-sheet", json={"imageUrl": "http://img/a.jpg"})

        assert resp.status_code == 200
        payload = resp.json()
        assert payload["scores"] == [{"questionNumber": 1, "score": 3}]
        assert payload["regions"][0]["x_min_percent"] == 8
        assert "answers" not in payload
        recognition.recognize_blank_sheet.assert_awaited_once_with("http://img/a.jpg")

    def test_blank_sheet_missing_url(self):
        with _build_client() as client:
            resp = client.post("/api/recognition/blank-sheet", json={})
        assert resp.status_code == 422

    def test_answers_single_and_batch(self):
        recognition = SimpleNamespace(
            recognize_answers=AsyncMock(return_value=AnswerRecognitionResponse()),
            recognize_answers_batch=AsyncMock(return_value=AnswerRecognitionResponse()),
        )
        with _build_client(recognition=recognition) as client:
            single = client.post("/api/recognition/answers", json={"imageUrl": "http://img/a.jpg"})
            batch = client.post(
                "/api/recognition/answers", json={"imageUrls": ["http://img/a.jpg", "http://img/b.jpg"]}
            )

        assert single.status_code == 200
        assert batch.status_code == 200
        assert single.json() == {"regions": []}
        recognition.recognize_answers.assert_awaited_once_with("http://img/a.jpg")
        recognition.recognize_answers_batch.assert_awaited_once_with(
            ["http://img/a.jpg", "http://img/b.jpg"]
        )

    def test_answers_requires_url(self):
        with _build_client() as client:
            resp = client.post("/api/recognition/answers", json={})
        assert resp.status_code == 400

    def test_combined(self):
        recognition = SimpleNamespace(recognize_combined=AsyncMock(return_value=BLANK_RESULT))
        with _build_client(recognition=recognition) as client:
            resp = client.post(
                "/api/recognition/combined",
                json={"blankSheetImageUrls": ["http://img/b.jpg"], "answerImageUrls": ["http://img/a.jpg"]},
            )

        assert resp.status_code == 200
        recognition.recognize_combined.assert_awaited_once_with(["http://img/b.jpg"], ["http://img/a.jpg"])

    def test_image_size_error_maps_to_400(self):
        recognition = SimpleNamespace(
            recognize_blank_sheet=AsyncMock(
                side_effect=ImageSizeError("Image size exceeds maximum allowed size of 10MB. Image size: 12.00MB")
            )
        )
        with _build_client(recognition=recognition) as client:
            resp = client.post("/api/recognition/blank-sheet", json={"imageUrl": "http://img/a.jpg"})

        assert resp.status_code == 400
        assert resp.json()["error"] == "image_too_large"
        assert "12.00MB" in resp.json()["message"]

    def test_parse_error_maps_to_502(self):
        recognition = SimpleNamespace(recognize_blank_sheet=AsyncMock(side_effect=ParseError("bad json")))
        with _build_client(recognition=recognition) as client:
            resp = client.post("/api/recognition/blank-sheet", json={"imageUrl": "http://img/a.jpg"})
        assert resp.status_code == 502

    def test_empty_model_response_maps_to_502(self):
        recognition = SimpleNamespace(
            recognize_answers=AsyncMock(side_effect=ModelResponseError("Model returned empty response"))
        )
        with _build_client(recognition=recognition) as client:
            resp = client.post("/api/recognition/answers", json={"imageUrl": "http://img/a.jpg"})
        assert resp.status_code == 502

    def test_unexpected_error_maps_to_500(self):
        recognition = SimpleNamespace(recognize_blank_sheet=AsyncMock(side_effect=RuntimeError("boom")))
        with _build_client(recognition=recognition, raise_server_exceptions=False) as client:
            resp = client.post("/api/recognition/blank-sheet", json={"imageUrl": "http://img/a.jpg"})

        assert resp.status_code == 500
        assert resp.json() == {"error": "internal_server_error", "message": "boom"}


class TestGradingRoutes:
    """测试批改接口"""

    def _request_body(self, **overrides):
        body = {
            "blankSheetRecognition": [BLANK_RESULT.model_dump(by_alias=True)],
            "answerRecognition": {"regions": []},
            "callbackUrl": "http://example.com/callback",
            "sheets": [
                {"gradingSheetId": 1, "studentSheetImageUrls": ["http://img/s1.jpg"]},
                {"gradingSheetId": 2, "studentSheetImageUrls": ["http://img/s2.jpg"]},
            ],
        }
        body.update(overrides)
        return body

    def test_grade_batch_accepted(self):
        grading = SimpleNamespace(
            submit_batch=MagicMock(
                return_value=GradeBatchResponse(
                    success=True,
                    message="Batch grading request accepted, processing 2 sheets",
                    submitted_count=2,
                    batch_id="batch-1",
                )
            )
        )
        with _build_client(grading=grading) as client:
            resp = client.post("/api/grading/grade-batch", json=self._request_body())

        assert resp.status_code == 202
        assert resp.json() == {
            "success": True,
            "message": "Batch grading request accepted, processing 2 sheets",
            "submittedCount": 2,
            "batchId": "batch-1",
        }
        request = grading.submit_batch.call_args.args[0]
        assert [s.grading_sheet_id for s in request.sheets] == [1, 2]
        assert request.blank_sheet_recognition[0].scores[0].question_number == 1

    def test_grade_batch_rejects_empty_sheets(self):
        with _build_client() as client:
            resp = client.post("/api/grading/grade-batch", json=self._request_body(sheets=[]))
        assert resp.status_code == 422

    def test_grade_batch_rejects_invalid_callback_url(self):
        with _build_client() as client:
            resp = client.post(
                "/api/grading/grade-batch", json=self._request_body(callbackUrl="ftp://example.com")
            )
        assert resp.status_code == 422
