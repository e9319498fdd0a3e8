"""Unit tests for stableimage/api/transport.py.

Covers:
- _parse_body (JSON, text fallback, empty)
- _raise_for_status (every status mapping, production sanitisation)
- _interpret (image, 202 task, 200 JSON with id, plain JSON)
- AsyncStabilityTransport.request (headers, multipart, network errors,
  metrics, credential redaction in logs)
- AsyncStabilityTransport.close / context manager
"""

from __future__ import annotations

import io
import json
import logging
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from stableimage.api.transport import (
    GENERIC_ERROR_MESSAGE,
    AsyncStabilityTransport,
    _interpret,
    _parse_body,
    _raise_for_status,
)
from stableimage.config import StableImageConfig
from stableimage.errors import (
    StableImageAuthError,
    StableImageContentModeratedError,
    StableImageInvalidParametersError,
    StableImagePayloadTooLargeError,
    StableImageRateLimitError,
    StableImageTransientError,
    StableImageUnknownUpstreamError,
)
from stableimage.form import MultipartForm
from stableimage.models import ImageResult, JsonBody, TaskHandle
from stableimage.observability import StructuredFormatter

API_KEY = "sk-live-abcdefgh9876"

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def make_response(
    status_code: int = 200,
    body: dict | list | None = None,
    content: bytes | None = None,
    headers: dict | None = None,
) -> httpx.Response:
    """Build a minimal httpx.Response for testing."""
    hdrs = dict(headers or {})
    if body is not None:
        content = json.dumps(body).encode()
        hdrs.setdefault("content-type", "application/json")
    resp = httpx.Response(status_code, content=content or b"", headers=hdrs)
    resp.request = httpx.Request("POST", "https://api.stability.ai/v2beta/test")
    return resp


def make_transport(**overrides) -> AsyncStabilityTransport:
    values = {"api_key": API_KEY}
    values.update(overrides)
    logger = logging.getLogger(f"test.transport.{id(values)}")
    return AsyncStabilityTransport(StableImageConfig(**values), logger=logger)


# ---------------------------------------------------------------------------
# _parse_body
# ---------------------------------------------------------------------------


class TestParseBody:
    def test_json(self):
        assert _parse_body(make_response(400, body={"errors": ["x"]})) == {"errors": ["x"]}

    def test_json_despite_image_content_type(self):
        resp = make_response(
            400, content=b'{"name": "bad_request"}', headers={"content-type": "image/png"},
        )
        assert _parse_body(resp) == {"name": "bad_request"}

    def test_text_fallback_truncated(self):
        resp = make_response(500, content=b"x" * 1000, headers={"content-type": "text/plain"})
        assert _parse_body(resp) == "x" * 500

    def test_empty(self):
        assert _parse_body(make_response(502)) == {}


# ---------------------------------------------------------------------------
# _raise_for_status
# ---------------------------------------------------------------------------


class TestRaiseForStatus:
    @pytest.mark.parametrize("status,exc_type,message", [
        (401, StableImageAuthError, "Authentication failed. Check your API key."),
        (403, StableImageContentModeratedError, "Content moderation flagged your request."),
        (413, StableImagePayloadTooLargeError, "Request payload too large (max 10MB)."),
        (429, StableImageRateLimitError, "Rate limit exceeded. Please wait before retrying."),
    ])
    def test_named_statuses(self, status, exc_type, message):
        with pytest.raises(exc_type) as exc_info:
            _raise_for_status(make_response(status, body={"name": "x"}), "POST", "/v2beta/x")
        assert exc_info.value.message == message
        assert exc_info.value.context["status_code"] == status

    def test_named_statuses_keep_message_in_production(self):
        with pytest.raises(StableImageAuthError) as exc_info:
            _raise_for_status(make_response(401), "POST", "/x", production=True)
        assert exc_info.value.message == "Authentication failed. Check your API key."
        assert "body" not in exc_info.value.context

    def test_400_joins_errors_list(self):
        resp = make_response(400, body={"errors": ["prompt: too long", "seed: out of range"]})
        with pytest.raises(StableImageInvalidParametersError) as exc_info:
            _raise_for_status(resp, "POST", "/x")
        err = exc_info.value
        assert err.message == "Invalid parameters: prompt: too long, seed: out of range"
        assert err.context["errors"] == ["prompt: too long", "seed: out of range"]

    def test_400_without_errors_list_uses_body(self):
        with pytest.raises(StableImageInvalidParametersError) as exc_info:
            _raise_for_status(make_response(400, body={"message": "bad"}), "POST", "/x")
        assert '"message": "bad"' in exc_info.value.message

    @pytest.mark.parametrize("status", [502, 503])
    def test_gateway_statuses_are_transient(self, status):
        with pytest.raises(StableImageTransientError) as exc_info:
            _raise_for_status(make_response(status, body={"detail": "down"}), "GET", "/x")
        assert exc_info.value.message.startswith(f"Request failed with status code {status}")
        assert exc_info.value.context["body"] == {"detail": "down"}

    @pytest.mark.parametrize("status", [404, 409, 500, 418, 504])
    def test_other_statuses_are_unknown(self, status):
        with pytest.raises(StableImageUnknownUpstreamError) as exc_info:
            _raise_for_status(make_response(status, body={"oops": 1}), "GET", "/x")
        assert str(status) in exc_info.value.message

    @pytest.mark.parametrize("status,exc_type", [
        (500, StableImageUnknownUpstreamError),
        (503, StableImageTransientError),
        (400, StableImageInvalidParametersError),
    ])
    def test_production_sanitises_message_and_context(self, status, exc_type):
        resp = make_response(status, body={"internal": "stack trace at db01"})
        with pytest.raises(exc_type) as exc_info:
            _raise_for_status(resp, "POST", "/x", production=True)
        assert exc_info.value.message == GENERIC_ERROR_MESSAGE
        assert "body" not in exc_info.value.context
        assert "db01" not in repr(exc_info.value)


# ---------------------------------------------------------------------------
# _interpret
# ---------------------------------------------------------------------------


class TestInterpret:
    def test_image(self):
        resp = make_response(
            200,
            content=b"\x89PNGdata",
            headers={"content-type": "image/png", "finish-reason": "SUCCESS", "seed": "123"},
        )
        outcome = _interpret(resp, expects_task=False)
        assert outcome == ImageResult(
            image=b"\x89PNGdata", finish_reason="SUCCESS", seed="123", content_type="image/png",
        )

    def test_202_is_task(self):
        outcome = _interpret(make_response(202, body={"id": "task-1"}), expects_task=False)
        assert outcome == TaskHandle(id="task-1")

    def test_202_without_id(self):
        with pytest.raises(StableImageUnknownUpstreamError):
            _interpret(make_response(202, body={}), expects_task=True)

    def test_200_json_id_is_task_for_async_endpoint(self):
        outcome = _interpret(
            make_response(200, body={"id": "abc", "status": "in-progress"}), expects_task=True,
        )
        assert outcome == TaskHandle(id="abc", status="in-progress")

    def test_200_json_id_is_body_for_sync_endpoint(self):
        outcome = _interpret(make_response(200, body={"id": "abc"}), expects_task=False)
        assert outcome == JsonBody(data={"id": "abc"})

    def test_plain_json(self):
        assert _interpret(make_response(200, body={"credits": 5}), expects_task=False) == JsonBody(
            data={"credits": 5},
        )

    def test_non_dict_json_wrapped(self):
        assert _interpret(make_response(200, body=[1, 2]), expects_task=False) == JsonBody(
            data={"data": [1, 2]},
        )


# ---------------------------------------------------------------------------
# AsyncStabilityTransport
# ---------------------------------------------------------------------------


class TestTransportInit:
    def test_empty_key_rejected(self):
        with pytest.raises(StableImageAuthError) as exc_info:
            AsyncStabilityTransport(StableImageConfig(api_key=""))
        assert "STABILITY_API_KEY" in exc_info.value.message

    async def test_bearer_header_and_base_url(self):
        transport = make_transport()
        assert transport._client.headers["authorization"] == f"Bearer {API_KEY}"
        assert str(transport._client.base_url).startswith("https://api.stability.ai")
        await transport.close()


class TestTransportRequest:
    async def test_image_response(self):
        transport = make_transport()
        transport._client.request = AsyncMock(return_value=make_response(
            200, content=b"\x89PNG", headers={"content-type": "image/png"},
        ))
        outcome = await transport.request("POST", "/v2beta/x", form=MultipartForm(data={"a": "1"}))
        assert isinstance(outcome, ImageResult)

        args, kwargs = transport._client.request.call_args
        assert args == ("POST", "/v2beta/x")
        assert kwargs["headers"]["accept"] == "image/*"
        assert kwargs["data"] == {"a": "1"}
        assert kwargs["files"] == {"none": (None, b"")}

    async def test_get_sends_no_body(self):
        transport = make_transport()
        transport._client.request = AsyncMock(return_value=make_response(200, body={"credits": 1}))
        await transport.request("GET", "/v1/user/balance", accept="application/json")
        kwargs = transport._client.request.call_args.kwargs
        assert "data" not in kwargs and "files" not in kwargs
        assert kwargs["headers"]["accept"] == "application/json"

    async def test_expects_task_forwarded(self):
        transport = make_transport()
        transport._client.request = AsyncMock(return_value=make_response(200, body={"id": "t1"}))
        assert await transport.request("POST", "/x", expects_task=True) == TaskHandle(id="t1")

    async def test_error_status_raises(self):
        transport = make_transport()
        transport._client.request = AsyncMock(return_value=make_response(
            400, body={"errors": ["bad seed"]},
        ))
        with pytest.raises(StableImageInvalidParametersError):
            await transport.request("POST", "/x")

    async def test_auth_error_carries_redacted_key_hint(self):
        transport = make_transport()
        transport._client.request = AsyncMock(return_value=make_response(401, body={}))
        with pytest.raises(StableImageAuthError) as exc_info:
            await transport.request("POST", "/x")
        assert exc_info.value.context["key_hint"] == "xxx...9876"
        assert API_KEY not in repr(exc_info.value)

    async def test_network_error(self):
        transport = make_transport()
        transport._client.request = AsyncMock(side_effect=httpx.ConnectError("refused"))
        with pytest.raises(StableImageUnknownUpstreamError) as exc_info:
            await transport.request("POST", "/x")
        assert "Network error on POST /x" in exc_info.value.message
        assert isinstance(exc_info.value.__cause__, httpx.ConnectError)

    async def test_network_error_in_production(self):
        transport = make_transport(production=True)
        transport._client.request = AsyncMock(side_effect=httpx.ReadTimeout("slow"))
        with pytest.raises(StableImageUnknownUpstreamError) as exc_info:
            await transport.request("POST", "/x")
        assert exc_info.value.message == GENERIC_ERROR_MESSAGE

    async def test_metrics_emitted(self):
        metrics = MagicMock()
        transport = make_transport(metrics=metrics)
        transport._client.request = AsyncMock(return_value=make_response(200, body={}))
        await transport.request("GET", "/x", accept="*/*")
        metrics.increment.assert_called_once()
        name = metrics.increment.call_args.args[0]
        assert name == "stableimage.requests_total"
        assert metrics.increment.call_args.kwargs["tags"]["status"] == "200"
        metrics.timing.assert_called_once()

    async def test_api_key_never_logged(self):
        stream = io.StringIO()
        handler = logging.StreamHandler(stream)
        handler.setFormatter(StructuredFormatter())
        logger = logging.getLogger("test.transport.redaction")
        logger.handlers = [handler]
        logger.setLevel(logging.DEBUG)
        logger.propagate = False

        transport = AsyncStabilityTransport(StableImageConfig(api_key=API_KEY), logger=logger)
        transport._client.request = AsyncMock(return_value=make_response(
            401, body={"message": f"bad key Bearer {API_KEY}"},
        ))
        with pytest.raises(StableImageAuthError):
            await transport.request(
                "POST", "/x", headers={"authorization": f"Bearer {API_KEY}"},
            )

        output = stream.getvalue()
        assert output
        assert API_KEY not in output
        assert "xxx...9876" in output


class TestTransportLifecycle:
    async def test_close(self):
        transport = make_transport()
        await transport.close()
        assert transport._client.is_closed

    async def test_context_manager(self):
        async with make_transport() as transport:
            pass
        assert transport._client.is_closed
