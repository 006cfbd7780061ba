from __future__ import annotations

import asyncio
import dataclasses
import json
import logging

import httpx
import pytest
from pydantic import BaseModel

from camphub import (
    APIError,
    AsyncApiClient,
    ClientConfig,
    ConfigurationError,
    NetworkError,
    NotFoundError,
    RateLimitError,
    RequestTimeoutError,
    ResponseDecodeError,
    ServerError,
    TransportError,
)
from camphub.clients.http import backoff_delay, build_url, encode_params, with_params
from camphub.clients.pipeline import ApiRequest, RawResponse

BASE_URL = "https://api.example.org"


class RecordingSleep:
    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


class Member(BaseModel):
    id: int
    name: str


def make_client(handler, *, sleep: RecordingSleep | None = None, **config) -> AsyncApiClient:
    return AsyncApiClient(
        ClientConfig(base_url=BASE_URL, **config),
        transport=httpx.MockTransport(handler),
        sleep=sleep or RecordingSleep(),
    )


# =============================================================================
# Retries
# =============================================================================


@pytest.mark.asyncio
async def test_server_errors_are_retried_with_exponential_backoff() -> None:
    attempts = 0

    def handler(request: httpx.Request) -> httpx.Response:
        nonlocal attempts
        attempts += 1
        if attempts < 3:
            return httpx.Response(500, json={"message": "boom"}, request=request)
        return httpx.Response(200, json={"ok": True}, request=request)

    sleep = RecordingSleep()
    async with make_client(handler, sleep=sleep, retry=2, retry_delay=0.1) as api:
        response = await api.get("/health")

    assert response.data == {"ok": True}
    assert response.status == 200
    assert response.status_text == "OK"
    assert attempts == 3
    assert sleep.delays == pytest.approx([0.1, 0.2])


@pytest.mark.asyncio
async def test_client_error_is_not_retried() -> None:
    attempts = 0

    def handler(request: httpx.Request) -> httpx.Response:
        nonlocal attempts
        attempts += 1
        return httpx.Response(404, json={"message": "Event not found"}, request=request)

    sleep = RecordingSleep()
    async with make_client(handler, sleep=sleep, retry=2, retry_delay=0.1) as api:
        with pytest.raises(NotFoundError) as excinfo:
            await api.get("/events/99")

    assert attempts == 1
    assert sleep.delays == []
    assert excinfo.value.status_code == 404
    assert excinfo.value.status_text == "Not Found"
    assert excinfo.value.message == "Event not found"
    assert excinfo.value.body == {"message": "Event not found"}


@pytest.mark.asyncio
async def test_rate_limit_is_a_client_error_and_not_retried() -> None:
    attempts = 0

    def handler(request: httpx.Request) -> httpx.Response:
        nonlocal attempts
        attempts += 1
        return httpx.Response(429, text="slow down", request=request)

    async with make_client(handler, retry=3) as api:
        with pytest.raises(RateLimitError) as excinfo:
            await api.get("/events")
    assert attempts == 1
    assert excinfo.value.body == "slow down"
    assert excinfo.value.message == "Too Many Requests"


@pytest.mark.asyncio
async def test_exhausted_retries_raise_last_failure() -> None:
    attempts = 0

    def handler(request: httpx.Request) -> httpx.Response:
        nonlocal attempts
        attempts += 1
        return httpx.Response(503, json={"error": f"down {attempts}"}, request=request)

    sleep = RecordingSleep()
    async with make_client(handler, sleep=sleep, retry=2, retry_delay=0.5) as api:
        with pytest.raises(ServerError) as excinfo:
            await api.get("/events")

    assert attempts == 3
    assert sleep.delays == pytest.approx([0.5, 1.0])
    assert excinfo.value.status_code == 503
    assert excinfo.value.message == "down 3"


@pytest.mark.asyncio
async def test_no_retry_by_default() -> None:
    attempts = 0

    def handler(request: httpx.Request) -> httpx.Response:
        nonlocal attempts
        attempts += 1
        return httpx.Response(500, request=request)

    async with make_client(handler) as api:
        with pytest.raises(ServerError) as excinfo:
            await api.get("/events")
    assert attempts == 1
    assert excinfo.value.message == "Internal Server Error"


@pytest.mark.asyncio
async def test_per_call_retry_overrides_config() -> None:
    attempts = 0

    def handler(request: httpx.Request) -> httpx.Response:
        nonlocal attempts
        attempts += 1
        if attempts == 1:
            return httpx.Response(502, request=request)
        return httpx.Response(200, json=[1, 2, 3], request=request)

    sleep = RecordingSleep()
    async with make_client(handler, sleep=sleep) as api:
        response = await api.get("/events", retry=1, retry_delay=0.25)
    assert response.data == [1, 2, 3]
    assert sleep.delays == [0.25]


@pytest.mark.asyncio
async def test_network_errors_are_retried_and_wrapped() -> None:
    attempts = 0

    def handler(request: httpx.Request) -> httpx.Response:
        nonlocal attempts
        attempts += 1
        raise httpx.ConnectError("connection refused", request=request)

    async with make_client(handler, retry=1, retry_delay=0.01) as api:
        with pytest.raises(NetworkError) as excinfo:
            await api.get("/events")

    assert attempts == 2
    assert isinstance(excinfo.value.cause, httpx.ConnectError)
    assert isinstance(excinfo.value, TransportError)


@pytest.mark.asyncio
async def test_attempt_timeout_raises_request_timeout_and_is_retried() -> None:
    attempts = 0

    async def handler(request: httpx.Request) -> httpx.Response:
        nonlocal attempts
        attempts += 1
        await asyncio.sleep(1.0)
        return httpx.Response(200, json={}, request=request)

    sleep = RecordingSleep()
    async with make_client(handler, sleep=sleep, timeout=0.05, retry=1, retry_delay=0.01) as api:
        with pytest.raises(RequestTimeoutError):
            await api.get("/slow")
    assert attempts == 2
    assert sleep.delays == [0.01]


@pytest.mark.asyncio
async def test_timeout_applies_per_attempt() -> None:
    attempts = 0

    async def handler(request: httpx.Request) -> httpx.Response:
        nonlocal attempts
        attempts += 1
        if attempts == 1:
            await asyncio.sleep(1.0)
        return httpx.Response(200, json={"attempt": attempts}, request=request)

    async with make_client(handler, timeout=0.05, retry=1, retry_delay=0.0) as api:
        response = await api.get("/slow")
    assert response.data == {"attempt": 2}


@pytest.mark.asyncio
async def test_undecodable_success_body_is_retried_then_raised() -> None:
    attempts = 0

    def handler(request: httpx.Request) -> httpx.Response:
        nonlocal attempts
        attempts += 1
        return httpx.Response(
            200,
            content=b"{truncated",
            headers={"Content-Type": "application/json"},
            request=request,
        )

    async with make_client(handler, retry=1, retry_delay=0.0) as api:
        with pytest.raises(ResponseDecodeError):
            await api.get("/events")
    assert attempts == 2


@pytest.mark.asyncio
async def test_empty_json_body_on_success_is_a_decode_error() -> None:
    attempts = 0

    def handler(request: httpx.Request) -> httpx.Response:
        nonlocal attempts
        attempts += 1
        return httpx.Response(
            200, content=b"", headers={"Content-Type": "application/json"}, request=request
        )

    sleep = RecordingSleep()
    async with make_client(handler, sleep=sleep, retry=1, retry_delay=0.1) as api:
        with pytest.raises(ResponseDecodeError):
            await api.get("/events")
    assert attempts == 2
    assert sleep.delays == [0.1]


def test_backoff_delay_doubles() -> None:
    assert backoff_delay(0.1, 0) == pytest.approx(0.1)
    assert backoff_delay(0.1, 1) == pytest.approx(0.2)
    assert backoff_delay(0.1, 3) == pytest.approx(0.8)
    assert backoff_delay(0.0, 5) == 0.0


# =============================================================================
# URLs and bodies
# =============================================================================


def test_encode_params_repeats_lists_and_drops_none() -> None:
    pairs = encode_params(
        {"tag": ["hike", None, "swim"], "page": 2, "draft": None, "public": True, "paid": False}
    )
    assert pairs == [
        ("tag", "hike"),
        ("tag", "swim"),
        ("page", "2"),
        ("public", "true"),
        ("paid", "false"),
    ]


def test_build_url_resolves_endpoint_against_base() -> None:
    assert build_url(BASE_URL, "/events") == "https://api.example.org/events"
    assert build_url("https://api.example.org/v1/", "events") == "https://api.example.org/v1/events"
    assert (
        build_url(BASE_URL, "https://cdn.example.org/file.json")
        == "https://cdn.example.org/file.json"
    )


def test_params_are_appended_after_existing_query() -> None:
    assert (
        build_url(BASE_URL, "/events?sort=asc", {"page": 1})
        == "https://api.example.org/events?sort=asc&page=1"
    )
    assert with_params("https://api.example.org/events", None) == "https://api.example.org/events"


@pytest.mark.asyncio
async def test_query_params_are_sent() -> None:
    seen: list[httpx.URL] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request.url)
        return httpx.Response(200, json=[], request=request)

    async with make_client(handler) as api:
        await api.get("/events", params={"tag": ["a", "b"], "season": 2026, "cursor": None})

    assert seen[0].path == "/events"
    assert seen[0].params.multi_items() == [("tag", "a"), ("tag", "b"), ("season", "2026")]


@pytest.mark.asyncio
async def test_json_verbs_encode_body_and_set_content_type() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(201, json={"id": 1}, request=request)

    async with make_client(handler) as api:
        await api.post("/members", {"name": "Robin"})
        await api.put("/members/1", {"name": "Robin B."})
        await api.patch("/members/1", Member(id=1, name="Rob"))
        await api.delete("/members/1")

    assert [r.method for r in seen] == ["POST", "PUT", "PATCH", "DELETE"]
    assert json.loads(seen[0].content) == {"name": "Robin"}
    assert seen[0].headers["content-type"] == "application/json"
    assert json.loads(seen[1].content) == {"name": "Robin B."}
    assert json.loads(seen[2].content) == {"id": 1, "name": "Rob"}
    assert seen[3].content == b""


@pytest.mark.asyncio
async def test_post_without_data_sends_no_body() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(204, request=request)

    async with make_client(handler) as api:
        response = await api.post("/members/1/approve")

    assert response.data is None
    assert response.status == 204
    assert seen[0].content == b""
    assert seen[0].headers["content-type"] == "application/json"


@pytest.mark.asyncio
async def test_caller_headers_override_defaults() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, request=request)

    api = AsyncApiClient(
        ClientConfig(base_url=BASE_URL, headers={"X-Site": "camp", "Accept": "application/json"}),
        transport=httpx.MockTransport(handler),
    )
    async with api:
        await api.post(
            "/notes",
            "plain",
            headers={"Content-Type": "text/plain", "Accept": "text/plain"},
        )

    headers = seen[0].headers
    assert headers["x-site"] == "camp"
    assert headers["accept"] == "text/plain"
    assert headers["content-type"] == "text/plain"


@pytest.mark.asyncio
async def test_raw_request_body_is_sent_as_is() -> None:
    seen: list[bytes] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request.content)
        return httpx.Response(200, text="done", request=request)

    async with make_client(handler) as api:
        response = await api.request("/import", method="post", body="a,b\n1,2\n")

    assert seen == [b"a,b\n1,2\n"]
    assert response.data == "done"


@pytest.mark.asyncio
async def test_redirects_are_followed() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/old":
            return httpx.Response(
                301, headers={"Location": "https://api.example.org/new"}, request=request
            )
        return httpx.Response(200, json={"path": request.url.path}, request=request)

    async with make_client(handler) as api:
        response = await api.get("/old")
    assert response.data == {"path": "/new"}


@pytest.mark.asyncio
async def test_non_redirect_3xx_is_an_api_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(304, request=request)

    async with make_client(handler) as api:
        with pytest.raises(APIError) as excinfo:
            await api.get("/events")
    assert type(excinfo.value) is APIError
    assert excinfo.value.status_code == 304


@pytest.mark.asyncio
async def test_response_parse_validates_into_model() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            200,
            json=[{"id": 1, "name": "Robin"}, {"id": 2, "name": "Sam"}],
            headers={"X-Total": "2"},
            request=request,
        )

    async with make_client(handler) as api:
        response = await api.get("/members")

    members = response.parse(list[Member])
    assert [m.name for m in members] == ["Robin", "Sam"]
    assert response.headers["x-total"] == "2"


# =============================================================================
# Interceptors
# =============================================================================


@pytest.mark.asyncio
async def test_request_interceptors_run_in_order_once_per_call() -> None:
    calls: list[str] = []
    attempts = 0

    def handler(request: httpx.Request) -> httpx.Response:
        nonlocal attempts
        attempts += 1
        assert request.headers["x-chain"] == "sync,async"
        if attempts < 3:
            return httpx.Response(500, request=request)
        return httpx.Response(200, json={}, request=request)

    def first(request: ApiRequest) -> ApiRequest:
        calls.append("first")
        request.headers["X-Chain"] = "sync"
        return request

    async def second(request: ApiRequest) -> ApiRequest:
        calls.append("second")
        request.headers["X-Chain"] = request.headers["X-Chain"] + ",async"
        return request

    async with make_client(handler, retry=2, retry_delay=0.0) as api:
        api.add_request_interceptor(first)
        api.add_request_interceptor(second)
        await api.get("/events")

    assert calls == ["first", "second"]
    assert attempts == 3


@pytest.mark.asyncio
async def test_response_interceptors_run_on_every_attempt() -> None:
    statuses: list[int] = []
    attempts = 0

    def handler(request: httpx.Request) -> httpx.Response:
        nonlocal attempts
        attempts += 1
        status = 500 if attempts == 1 else 200
        return httpx.Response(status, json={}, request=request)

    async def record(raw: RawResponse) -> RawResponse:
        statuses.append(raw.status_code)
        return raw

    async with make_client(handler, retry=1, retry_delay=0.0) as api:
        api.add_response_interceptor(record)
        await api.get("/events")

    assert statuses == [500, 200]


@pytest.mark.asyncio
async def test_status_is_classified_after_response_interceptors() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(404, request=request)

    def fallback(raw: RawResponse) -> RawResponse:
        if raw.status_code != 404:
            return raw
        return dataclasses.replace(
            raw,
            status_code=200,
            reason_phrase="OK",
            headers=httpx.Headers({"Content-Type": "application/json"}),
            content=b'{"fallback": true}',
        )

    async with make_client(handler) as api:
        api.add_response_interceptor(fallback)
        response = await api.get("/events/1")
    assert response.data == {"fallback": True}


@pytest.mark.asyncio
async def test_failing_response_interceptor_is_wrapped_and_retried() -> None:
    attempts = 0

    def handler(request: httpx.Request) -> httpx.Response:
        nonlocal attempts
        attempts += 1
        return httpx.Response(200, json={}, request=request)

    def broken(raw: RawResponse) -> RawResponse:
        raise ValueError("bad interceptor")

    async with make_client(handler, retry=1, retry_delay=0.0) as api:
        api.add_response_interceptor(broken)
        with pytest.raises(TransportError) as excinfo:
            await api.get("/events")

    assert attempts == 2
    assert isinstance(excinfo.value.cause, ValueError)


@pytest.mark.asyncio
async def test_failing_request_interceptor_propagates_before_any_io() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        pytest.fail(f"Unexpected network call: {request.method} {request.url!s}")

    def broken(request: ApiRequest) -> ApiRequest:
        raise RuntimeError("no session")

    async with make_client(handler, retry=2) as api:
        api.add_request_interceptor(broken)
        with pytest.raises(RuntimeError, match="no session"):
            await api.get("/events")


# =============================================================================
# Configuration and lifecycle
# =============================================================================


@pytest.mark.parametrize(
    "kwargs",
    [
        {"base_url": ""},
        {"base_url": BASE_URL, "timeout": 0},
        {"base_url": BASE_URL, "retry": -1},
        {"base_url": BASE_URL, "retry_delay": -0.5},
    ],
)
def test_invalid_config_is_rejected(kwargs: dict) -> None:
    with pytest.raises(ConfigurationError):
        ClientConfig(**kwargs)


@pytest.mark.asyncio
async def test_invalid_per_call_options_fail_before_io() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        pytest.fail("Unexpected network call")

    async with make_client(handler) as api:
        with pytest.raises(ConfigurationError):
            await api.get("/events", timeout=-1)


@pytest.mark.asyncio
async def test_supplied_http_client_is_not_closed() -> None:
    http_client = httpx.AsyncClient(
        transport=httpx.MockTransport(lambda request: httpx.Response(200, request=request))
    )
    async with AsyncApiClient(ClientConfig(base_url=BASE_URL), http_client=http_client) as api:
        await api.get("/events")
    assert not http_client.is_closed
    await http_client.aclose()


@pytest.mark.asyncio
async def test_request_logging_hooks(caplog: pytest.LogCaptureFixture) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"ok": True}, request=request)

    caplog.set_level(logging.DEBUG, logger="camphub")
    async with make_client(handler, log_requests=True, headers={"Authorization": "Bearer s3cret"}) as api:
        await api.get("/events")

    messages = [r.getMessage() for r in caplog.records if r.name == "camphub.http"]
    assert "-> GET https://api.example.org/events" in messages
    assert any(m.startswith("<- 200 OK") for m in messages)
    assert not any("s3cret" in m for m in messages)


@pytest.mark.asyncio
async def test_retries_are_logged(caplog: pytest.LogCaptureFixture) -> None:
    attempts = 0

    def handler(request: httpx.Request) -> httpx.Response:
        nonlocal attempts
        attempts += 1
        return httpx.Response(500 if attempts == 1 else 200, request=request)

    caplog.set_level(logging.WARNING, logger="camphub")
    async with make_client(handler, retry=1, retry_delay=0.1) as api:
        await api.get("/events")

    warnings = [r.getMessage() for r in caplog.records if r.levelno == logging.WARNING]
    assert len(warnings) == 1
    assert "retrying in 0.10s (attempt 2/2)" in warnings[0]
