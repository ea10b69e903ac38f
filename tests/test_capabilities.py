"""
Tests for capability adapters.

HTTP capabilities are exercised against httpx.MockTransport so no network
is touched.
"""

import json

import httpx
import pytest

from sentiflow.capabilities import (
    CallableCapability,
    CapabilityError,
    FailureReason,
    HttpCapability,
    InMemoryNotificationChannel,
    InMemoryRecordStore,
)
from sentiflow.capabilities.base import ensure_payload


def http_capability(handler, **kwargs):
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return HttpCapability("classifier", "http://classifier.test/invoke", http_client=client, **kwargs)


class TestHttpCapability:
    """Request encoding, envelope unwrapping and error mapping."""

    async def test_posts_payload_and_unwraps_envelope(self):
        requests = []

        def handler(request):
            requests.append(request)
            body = json.loads(request.content)
            return httpx.Response(200, json={"StatusCode": 200, "Payload": {**body, "emotion": "NEGATIVE"}})

        capability = http_capability(handler, headers={"X-Api-Key": "k"})
        output = await capability.invoke({"age": "34", "text": "I hate this"})

        assert output == {"age": "34", "text": "I hate this", "emotion": "NEGATIVE"}
        assert requests[0].method == "POST"
        assert requests[0].headers["x-api-key"] == "k"
        assert requests[0].headers["content-type"] == "application/json"

    async def test_bare_object_response(self):
        capability = http_capability(lambda r: httpx.Response(200, json={"emotion": "POSITIVE"}))

        assert await capability.invoke({}) == {"emotion": "POSITIVE"}

    async def test_result_path_disabled(self):
        capability = http_capability(
            lambda r: httpx.Response(200, json={"Payload": {"x": 1}}), result_path=None
        )

        assert await capability.invoke({}) == {"Payload": {"x": 1}}

    async def test_http_error_status(self):
        capability = http_capability(lambda r: httpx.Response(500, text="upstream exploded"))

        with pytest.raises(CapabilityError) as exc_info:
            await capability.invoke({})

        assert exc_info.value.reason == FailureReason.INVOCATION_ERROR
        assert exc_info.value.details["status_code"] == 500
        assert "upstream exploded" in exc_info.value.details["body"]

    async def test_timeout(self):
        def handler(request):
            raise httpx.ReadTimeout("slow", request=request)

        with pytest.raises(CapabilityError) as exc_info:
            await http_capability(handler, timeout=1.5).invoke({})

        assert exc_info.value.reason == FailureReason.TIMEOUT
        assert "1.5s" in exc_info.value.message

    async def test_connection_error(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        with pytest.raises(CapabilityError) as exc_info:
            await http_capability(handler).invoke({})

        assert exc_info.value.reason == FailureReason.INVOCATION_ERROR

    async def test_function_error_envelope(self):
        body = {"Payload": {"errorMessage": "Task timed out", "errorType": "Sandbox.Timedout"}}
        capability = http_capability(lambda r: httpx.Response(200, json=body))

        with pytest.raises(CapabilityError) as exc_info:
            await capability.invoke({})

        assert exc_info.value.reason == FailureReason.INVOCATION_ERROR
        assert exc_info.value.details == {"error_type": "Sandbox.Timedout"}
        assert "Task timed out" in exc_info.value.message

    async def test_function_error_header(self):
        capability = http_capability(
            lambda r: httpx.Response(200, json={}, headers={"X-Amz-Function-Error": "Unhandled"})
        )

        with pytest.raises(CapabilityError) as exc_info:
            await capability.invoke({})

        assert exc_info.value.details == {"error_type": "Unhandled"}

    async def test_non_json_body(self):
        capability = http_capability(lambda r: httpx.Response(200, text="<html>oops</html>"))

        with pytest.raises(CapabilityError) as exc_info:
            await capability.invoke({})

        assert exc_info.value.reason == FailureReason.MALFORMED_RESPONSE

    @pytest.mark.parametrize("body", [["NEGATIVE"], "NEGATIVE", 3, None])
    async def test_non_object_body(self, body):
        capability = http_capability(lambda r: httpx.Response(200, json={"Payload": body}))

        with pytest.raises(CapabilityError) as exc_info:
            await capability.invoke({})

        assert exc_info.value.reason == FailureReason.MALFORMED_RESPONSE

    async def test_owned_client_closed_on_aclose(self):
        capability = HttpCapability("classifier", "http://classifier.test/invoke")
        client = capability._client()

        await capability.aclose()

        assert client.is_closed

    async def test_shared_client_left_open(self):
        client = httpx.AsyncClient(transport=httpx.MockTransport(lambda r: httpx.Response(200, json={})))
        async with HttpCapability("c", "http://c.test", http_client=client):
            pass

        assert not client.is_closed
        await client.aclose()


class TestInMemoryRecordStore:
    def test_put_and_get(self, record_store):
        assert len(record_store) == 3
        assert record_store.get("34") == {"age": "34", "text": "I hate this"}
        assert record_store.get(34) == {"age": "34", "text": "I hate this"}
        assert record_store.get("0") is None

    def test_put_requires_key(self, record_store):
        with pytest.raises(ValueError):
            record_store.put({"text": "no key"})

    def test_get_returns_copy(self, record_store):
        record_store.get("34")["text"] = "changed"
        assert record_store.get("34")["text"] == "I hate this"

    async def test_invoke_merges_record_over_payload(self, record_store):
        output = await record_store.invoke({"age": "50", "request_id": "r1"})

        assert output == {"age": "50", "request_id": "r1", "text": "What a lovely day"}

    async def test_invoke_unknown_key(self, record_store):
        with pytest.raises(CapabilityError) as exc_info:
            await record_store.invoke({"age": "7"})

        assert exc_info.value.reason == FailureReason.NOT_FOUND
        assert exc_info.value.details == {"key": "7"}

    async def test_invoke_without_key(self, record_store):
        with pytest.raises(CapabilityError) as exc_info:
            await record_store.invoke({"text": "orphan"})

        assert exc_info.value.reason == FailureReason.INVOCATION_ERROR


class TestInMemoryNotificationChannel:
    async def test_publishes_and_returns_payload(self, notifier):
        payload = {"age": "34", "emotion": "NEGATIVE"}

        output = await notifier.invoke(payload)

        assert output == payload
        message = notifier.messages[0]
        assert message.topic == "MyTopic"
        assert message.subject == "My Sample SNS Topic"
        assert message.destination == "oncall@example.com"
        assert json.loads(message.body) == payload

    async def test_each_publish_gets_its_own_id(self):
        channel = InMemoryNotificationChannel()
        await channel.invoke({})
        await channel.invoke({})

        assert len({m.message_id for m in channel.messages}) == 2


class TestCallableCapability:
    async def test_sync_function(self):
        capability = CallableCapability("upper", lambda p: {"text": p["text"].upper()})
        assert await capability.invoke({"text": "hi"}) == {"text": "HI"}

    async def test_async_function(self):
        async def func(payload):
            return {"ok": True}

        assert await CallableCapability("async", func).invoke({}) == {"ok": True}

    async def test_non_object_result(self):
        with pytest.raises(CapabilityError) as exc_info:
            await CallableCapability("bad", lambda p: None).invoke({})

        assert exc_info.value.reason == FailureReason.MALFORMED_RESPONSE

    async def test_default_health_check(self):
        assert await CallableCapability("x", dict).health_check() is True

    def test_repr(self):
        assert repr(CallableCapability("x", dict)) == "CallableCapability('x')"


def test_ensure_payload_passthrough():
    payload = {"a": 1}
    assert ensure_payload(payload, "x") is payload


def test_capability_error_to_dict():
    error = CapabilityError("gone", FailureReason.NOT_FOUND, {"key": "7"})
    assert error.to_dict() == {"reason": "not_found", "message": "gone", "key": "7"}
