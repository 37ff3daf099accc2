import asyncio
import json

import httpx
import pytest

from app.integrations.interakt_service import InteraktService


def _service(handler):
    return InteraktService(
        api_key="secret-key",
        base_url="https://api.interakt.ai",
        timeout=5,
        country_code="91",
        language_code="en",
        transport=httpx.MockTransport(handler),
    )


class TestInteraktService:
    """Template sends against a mocked Interakt API."""

    @pytest.mark.asyncio
    async def test_otp_template_request(self):
        captured = {}

        def handler(request: httpx.Request):
            captured["url"] = str(request.url)
            captured["auth"] = request.headers["Authorization"]
            captured["body"] = json.loads(request.content)
            return httpx.Response(201, json={"result": True, "message": "Message created successfully", "id": "abc-123"})

        service = _service(handler)
        result = await service.send_template("9876543210", "otp_verification", ["482913"], [["482913"]])
        await service.close()

        assert result.success is True
        assert result.message_id == "abc-123"
        assert captured["url"] == "https://api.interakt.ai/v1/public/message/"
        assert captured["auth"] == "Basic secret-key"
        assert captured["body"] == {
            "countryCode": "91",
            "phoneNumber": "9876543210",
            "type": "Template",
            "template": {
                "name": "otp_verification",
                "languageCode": "en",
                "bodyValues": ["482913"],
                "buttonValues": [["482913"]],
            },
        }

    def test_payload_without_buttons(self):
        service = _service(lambda request: httpx.Response(200, json={}))

        payload = service.build_payload("9876543210", "chat_unlocked", [])

        assert "buttonValues" not in payload["template"]
        assert payload["template"]["bodyValues"] == []

    @pytest.mark.asyncio
    async def test_rejected_template(self):
        service = _service(lambda request: httpx.Response(400, json={"result": False, "message": "Template not approved"}))

        result = await service.send_template("9876543210", "otp_verification", ["482913"])

        assert result.success is False
        assert result.message == "Template not approved"

    @pytest.mark.asyncio
    async def test_result_false_with_ok_status(self):
        service = _service(lambda request: httpx.Response(200, json={"result": False}))

        result = await service.send_template("9876543210", "otp_verification", ["482913"])

        assert result.success is False
        assert result.message == "Failed to send message"

    @pytest.mark.asyncio
    async def test_non_json_error_body(self):
        service = _service(lambda request: httpx.Response(502, text="<html>bad gateway</html>"))

        result = await service.send_template("9876543210", "otp_verification", ["482913"])

        assert result.success is False
        assert result.message == "Failed to send message"

    @pytest.mark.asyncio
    async def test_timeout(self):
        def handler(request):
            raise httpx.ReadTimeout("timed out", request=request)

        result = await _service(handler).send_template("9876543210", "otp_verification", ["482913"])

        assert result.success is False
        assert result.message == "Messaging provider timed out"

    @pytest.mark.asyncio
    async def test_connection_error(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        result = await _service(handler).send_template("9876543210", "otp_verification", ["482913"])

        assert result.success is False
        assert result.message == "Failed to connect to messaging provider"

    def test_missing_api_key(self):
        with pytest.raises(ValueError):
            InteraktService(api_key="", transport=httpx.MockTransport(lambda request: httpx.Response(200)))

    @pytest.mark.asyncio
    async def test_send_deadline_caps_total_time(self):
        async def handler(request):
            await asyncio.sleep(1)
            return httpx.Response(200, json={"result": True})

        service = InteraktService(
            api_key="secret-key",
            timeout=5,
            send_deadline=0.05,
            transport=httpx.MockTransport(handler),
        )

        result = await service.send_template("9876543210", "otp_verification", ["482913"])

        assert result.success is False
        assert result.message == "Messaging provider timed out"
