"""Gemini outpainting backend against a mocked SDK client."""

import base64
import sys
from io import BytesIO
from unittest.mock import MagicMock, patch

import pytest
from PIL import Image

from tilegen.exceptions import TransientServiceError
from tilegen.models.outpaint_region import OutpaintResult
from tilegen.services.gemini_service import GeminiService


def _image_part(size=(614, 512), as_base64=False):
    buf = BytesIO()
    Image.new("RGBA", size, (100, 150, 200, 255)).save(buf, format="PNG")
    payload = buf.getvalue()
    return MagicMock(inline_data=MagicMock(data=base64.b64encode(payload).decode() if as_base64 else payload))


def _response(*parts):
    candidate = MagicMock()
    candidate.content.parts = list(parts)
    return MagicMock(candidates=[candidate])


@pytest.fixture(autouse=True)
def genai_types():
    """Stand-in for google.genai so no SDK install is needed."""
    types = MagicMock()
    with patch.dict(sys.modules, {"google.genai": MagicMock(types=types)}):
        yield types


@pytest.fixture
def service():
    return GeminiService(api_key="gemini-test-key")


@pytest.fixture
def client(service):
    """SDK client double answering with one 614x512 image."""
    fake = MagicMock()
    fake.models.generate_content.return_value = _response(_image_part())
    service._client = fake
    return fake


@pytest.fixture
def canvas():
    return Image.new("RGBA", (614, 512), (128, 128, 128, 255))


@pytest.fixture
def mask():
    return Image.new("L", (614, 512), 0)


def _sent_contents(client):
    return client.models.generate_content.call_args.kwargs["contents"]


class TestInit:
    def test_missing_key(self):
        with patch.dict("os.environ", {}, clear=True):
            with pytest.raises(ValueError, match="API key required"):
                GeminiService()

    def test_key_from_environment(self):
        with patch.dict("os.environ", {"GOOGLE_API_KEY": "env-key"}):
            assert GeminiService().api_key == "env-key"

    def test_client_created_on_demand(self, service):
        assert service._client is None


class TestOutpaint:
    def test_returns_rgba_result(self, service, client, canvas, mask):
        result = service.outpaint(canvas, mask, "rocky highland")

        assert isinstance(result, OutpaintResult)
        assert result.image.size == (614, 512)
        assert result.image.mode == "RGBA"
        assert result.model == "gemini-2.5-flash-image"
        client.models.generate_content.assert_called_once()

    def test_sends_canvas_then_mask_then_prompt(self, service, client, canvas, mask):
        service.outpaint(canvas, mask, "rocky highland")

        upload, sent_mask, prompt = _sent_contents(client)
        assert upload.size == (614, 512)
        assert sent_mask.mode == "L"
        assert prompt.endswith("rocky highland")
        assert "mask" in prompt

    def test_large_canvas_is_fitted(self, service, client):
        service.outpaint(Image.new("RGBA", (3000, 1500)), Image.new("L", (3000, 1500)), "x", max_size=1024)

        upload, sent_mask, _ = _sent_contents(client)
        assert upload.size == (1024, 512)
        assert sent_mask.size == (1024, 512)

    def test_base64_payload(self, service, client, canvas, mask):
        client.models.generate_content.return_value = _response(_image_part(as_base64=True))

        assert service.outpaint(canvas, mask, "x").image.size == (614, 512)

    def test_sdk_error_is_transient(self, service, client, canvas, mask):
        client.models.generate_content.side_effect = RuntimeError("quota exceeded")

        with pytest.raises(TransientServiceError, match="quota exceeded") as excinfo:
            service.outpaint(canvas, mask, "x")
        assert excinfo.value.provider == "gemini"

    def test_no_candidates_is_transient(self, service, client, canvas, mask):
        client.models.generate_content.return_value = MagicMock(candidates=[])

        with pytest.raises(TransientServiceError, match="Could not extract image"):
            service.outpaint(canvas, mask, "x")


def test_text_parts_are_skipped(service):
    response = _response(MagicMock(inline_data=None), _image_part(size=(32, 16)))

    image = service._extract_image_from_response(response)

    assert image.size == (32, 16)
    assert image.mode == "RGBA"
