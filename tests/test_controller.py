import asyncio
from unittest import mock

import httpx
import pytest

from repoaudit.controller import CredentialsExhaustedError, RequestController, is_rate_limit_error
from repoaudit.vault import ServiceClass


def make_transport(statuses, seen_auth):
    responses = iter(statuses)

    def handler(request):
        seen_auth.append(request.headers.get("Authorization"))
        return httpx.Response(next(responses), json={})

    return httpx.MockTransport(handler)


def test_rotates_until_success(vault):
    for i in range(3):
        vault.add(f"key{i}", ServiceClass.REPO_HOST, f"ghp_{i}")
    seen_auth = []

    async def run_test():
        async with httpx.AsyncClient(transport=make_transport([429, 429, 200], seen_auth)) as http_client:
            controller = RequestController(vault, http_client)
            with mock.patch.object(vault, "mark_rate_limited", wraps=vault.mark_rate_limited) as marked:
                response = await controller.execute(
                    httpx.Request("GET", "https://api.github.com/repos/a/b"),
                    ServiceClass.REPO_HOST,
                )
            return response, marked.call_count

    response, mark_calls = asyncio.run(run_test())

    assert response.status_code == 200
    assert mark_calls == 2
    assert seen_auth == ["Bearer ghp_0", "Bearer ghp_1", "Bearer ghp_2"]


def test_non_rate_limit_status_is_returned_without_retry(vault):
    vault.add("key", ServiceClass.REPO_HOST, "ghp_0")
    seen_auth = []

    async def run_test():
        async with httpx.AsyncClient(transport=make_transport([404], seen_auth)) as http_client:
            controller = RequestController(vault, http_client)
            return await controller.execute(httpx.Request("GET", "https://x/y"), ServiceClass.REPO_HOST)

    response = asyncio.run(run_test())

    assert response.status_code == 404
    assert len(seen_auth) == 1
    assert vault.get_usable(ServiceClass.REPO_HOST) is not None


def test_exhausted_when_every_credential_is_rate_limited(vault):
    vault.add("a", ServiceClass.REPO_HOST, "ghp_a")
    vault.add("b", ServiceClass.REPO_HOST, "ghp_b")
    seen_auth = []

    async def run_test():
        async with httpx.AsyncClient(transport=make_transport([403, 429, 200], seen_auth)) as http_client:
            controller = RequestController(vault, http_client)
            await controller.execute(httpx.Request("GET", "https://x/y"), ServiceClass.REPO_HOST)

    with pytest.raises(CredentialsExhaustedError) as exc_info:
        asyncio.run(run_test())

    assert exc_info.value.service_class == ServiceClass.REPO_HOST
    assert exc_info.value.response.status_code == 429
    assert len(seen_auth) == 2


def test_attempt_ceiling(vault):
    for i in range(5):
        vault.add(f"key{i}", ServiceClass.REPO_HOST, f"ghp_{i}")
    seen_auth = []

    async def run_test():
        async with httpx.AsyncClient(transport=make_transport([429] * 5, seen_auth)) as http_client:
            controller = RequestController(vault, http_client)
            await controller.execute(httpx.Request("GET", "https://x/y"), ServiceClass.REPO_HOST, max_attempts=2)

    with pytest.raises(CredentialsExhaustedError):
        asyncio.run(run_test())

    assert len(seen_auth) == 2


def test_anonymous_request_when_no_credentials(vault):
    seen_auth = []

    async def run_test():
        async with httpx.AsyncClient(transport=make_transport([403], seen_auth)) as http_client:
            controller = RequestController(vault, http_client)
            return await controller.execute(httpx.Request("GET", "https://x/y"), ServiceClass.REPO_HOST)

    response = asyncio.run(run_test())

    assert response.status_code == 403
    assert seen_auth == [None]


class RateLimited(Exception):
    def __init__(self, code):
        self.code = code
        super().__init__(f"status {code}")


def test_stream_rotates_on_rate_limit_error(vault):
    vault.add("a", ServiceClass.LLM_PROVIDER, "key-a")
    vault.add("b", ServiceClass.LLM_PROVIDER, "key-b")
    used = []

    async def open_stream(credential):
        used.append(credential.display_name)
        if credential.display_name == "a":
            raise RateLimited(429)
        yield "hello"
        yield "world"

    async def run_test():
        controller = RequestController(vault)
        return [item async for item in controller.stream(open_stream, ServiceClass.LLM_PROVIDER)]

    assert asyncio.run(run_test()) == ["hello", "world"]
    assert used == ["a", "b"]


def test_stream_signals_reset_after_partial_output(vault):
    vault.add("a", ServiceClass.LLM_PROVIDER, "key-a")
    vault.add("b", ServiceClass.LLM_PROVIDER, "key-b")

    async def open_stream(credential):
        yield f"partial from {credential.display_name}"
        if credential.display_name == "a":
            raise RateLimited(429)
        yield "rest"

    async def run_test():
        controller = RequestController(vault)
        return [
            item async for item in controller.stream(
                open_stream, ServiceClass.LLM_PROVIDER, reset=lambda: "RESET"
            )
        ]

    assert asyncio.run(run_test()) == ["partial from a", "RESET", "partial from b", "rest"]


def test_stream_no_reset_when_failed_attempt_yielded_nothing(vault):
    vault.add("a", ServiceClass.LLM_PROVIDER, "key-a")
    vault.add("b", ServiceClass.LLM_PROVIDER, "key-b")

    async def open_stream(credential):
        if credential.display_name == "a":
            raise RateLimited(429)
        yield "hello"

    async def run_test():
        controller = RequestController(vault)
        return [
            item async for item in controller.stream(
                open_stream, ServiceClass.LLM_PROVIDER, reset=lambda: "RESET"
            )
        ]

    assert asyncio.run(run_test()) == ["hello"]


def test_stream_resets_before_exhaustion(vault):
    vault.add("a", ServiceClass.LLM_PROVIDER, "key-a")
    items = []

    async def open_stream(credential):
        yield "partial"
        raise RateLimited(429)

    async def run_test():
        controller = RequestController(vault)
        async for item in controller.stream(open_stream, ServiceClass.LLM_PROVIDER, reset=lambda: "RESET"):
            items.append(item)

    with pytest.raises(CredentialsExhaustedError):
        asyncio.run(run_test())
    assert items == ["partial", "RESET"]


def test_stream_propagates_other_errors(vault):
    vault.add("a", ServiceClass.LLM_PROVIDER, "key-a")

    async def open_stream(credential):
        raise RateLimited(500)
        yield

    async def run_test():
        controller = RequestController(vault)
        return [item async for item in controller.stream(open_stream, ServiceClass.LLM_PROVIDER)]

    with pytest.raises(RateLimited):
        asyncio.run(run_test())
    assert vault.get_usable(ServiceClass.LLM_PROVIDER) is not None


def test_stream_without_credential_requirement_passes_none(vault):
    vault.add("a", ServiceClass.LLM_PROVIDER, "key-a")
    received = []

    async def open_stream(credential):
        received.append(credential)
        yield "local"

    async def run_test():
        controller = RequestController(vault)
        return [
            item async for item in controller.stream(
                open_stream, ServiceClass.LLM_PROVIDER, credential_required=False
            )
        ]

    assert asyncio.run(run_test()) == ["local"]
    assert received == [None]


def test_stream_requires_a_credential(vault):
    async def open_stream(credential):
        yield "never"

    async def run_test():
        controller = RequestController(vault)
        return [item async for item in controller.stream(open_stream, ServiceClass.LLM_PROVIDER)]

    with pytest.raises(CredentialsExhaustedError):
        asyncio.run(run_test())


def test_is_rate_limit_error():
    request = httpx.Request("GET", "https://x")
    response = httpx.Response(429, request=request)

    assert is_rate_limit_error(httpx.HTTPStatusError("limited", request=request, response=response))
    assert is_rate_limit_error(RateLimited(403))
    assert not is_rate_limit_error(RateLimited(500))
    assert not is_rate_limit_error(ValueError("nope"))
