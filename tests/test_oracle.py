"""Tests for image preparation and the oracle client, using LiteLLM mocks for the model."""

import threading
from io import BytesIO
from pathlib import Path
from types import SimpleNamespace
from typing import Any

import litellm
import pytest
from PIL import Image
from pydantic_ai import BinaryContent, ModelSettings

from media_annotator.errors import EmptyDescriptionError, ImagePreparationError, OracleError
from media_annotator.oracle import DEFAULT_USER_PROMPT, OracleClient, prepare_image


class LiteLLMAgentStub:
    """Minimal agent stub that delegates to LiteLLM's mock completion helper."""

    def __init__(self, payload: str | Exception, *, model: str = "gpt-4o-mini") -> None:
        """Store the canned payload (or error) and model name used for mock completions."""
        self._payload = payload
        self._model = model
        self.calls: list[dict[str, Any]] = []

    def run_sync(
        self,
        items: list[object],
        model_settings: ModelSettings,
    ) -> SimpleNamespace:
        """Mimic Agent.run_sync for a plain-text output agent."""
        self.calls.append(
            {
                "items": items,
                "temperature": model_settings.get("temperature"),
                "max_tokens": model_settings.get("max_tokens"),
            },
        )
        if isinstance(self._payload, Exception):
            raise self._payload

        response = litellm.mock_completion(
            model=self._model,
            messages=[{"role": "user", "content": "stub"}],
            mock_response=self._payload,
        )
        content = response.choices[0].message["content"]  # type: ignore[union-attr]
        return SimpleNamespace(output=content)


IMAGE = BinaryContent(data=b"\xff\xd8stubjpeg", media_type="image/jpeg")


def test_describe_returns_stripped_text_and_forwards_settings() -> None:
    """The model text comes back stripped; prompt, image and settings reach the agent."""
    agent = LiteLLMAgentStub("  Two marmosets share a quiet branch in the canopy.\n")
    client = OracleClient(lambda: agent, temperature=0.42, max_tokens=88)  # type: ignore[arg-type,return-value]

    description = client.describe(IMAGE)

    assert description == "Two marmosets share a quiet branch in the canopy."
    assert len(agent.calls) == 1
    recorded = agent.calls[0]
    assert recorded["items"][0] == DEFAULT_USER_PROMPT
    assert recorded["items"][1] is IMAGE
    assert recorded["temperature"] == pytest.approx(0.42)
    assert recorded["max_tokens"] == 88


def test_describe_raises_on_empty_response() -> None:
    """Whitespace-only output is an error, not a silent default."""
    client = OracleClient(lambda: LiteLLMAgentStub("   "))  # type: ignore[arg-type,return-value]

    with pytest.raises(EmptyDescriptionError):
        client.describe(IMAGE)


def test_describe_wraps_request_errors() -> None:
    """Transport errors surface as OracleError with the cause chained."""
    cause = ConnectionError("connection refused")
    client = OracleClient(lambda: LiteLLMAgentStub(cause))  # type: ignore[arg-type,return-value]

    with pytest.raises(OracleError, match="connection refused") as excinfo:
        client.describe(IMAGE)

    assert excinfo.value.__cause__ is cause
    assert not isinstance(excinfo.value, EmptyDescriptionError)


def test_agents_are_created_once_per_thread() -> None:
    """Each worker thread builds and reuses its own agent."""
    created: list[LiteLLMAgentStub] = []
    lock = threading.Lock()

    def factory() -> LiteLLMAgentStub:
        agent = LiteLLMAgentStub("a harbour at dusk")
        with lock:
            created.append(agent)
        return agent

    client = OracleClient(factory)  # type: ignore[arg-type]

    def work() -> None:
        client.describe(IMAGE)
        client.describe(IMAGE)

    threads = [threading.Thread(target=work) for _ in range(3)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert len(created) == 3
    assert all(len(agent.calls) == 2 for agent in created)


def test_prepare_image_flattens_alpha_and_downscales(tmp_path: Path) -> None:
    """A transparent PNG becomes an RGB JPEG no larger than max_size."""
    source = tmp_path / "logo.png"
    Image.new("RGBA", (400, 200), (255, 0, 0, 0)).save(source)

    content = prepare_image(source, jpg_quality=70, max_size=100)

    assert content.media_type == "image/jpeg"
    with Image.open(BytesIO(content.data)) as decoded:
        assert decoded.format == "JPEG"
        assert decoded.mode == "RGB"
        assert decoded.size == (100, 50)
        assert decoded.getpixel((50, 25)) == pytest.approx((255, 255, 255), abs=8)


def test_prepare_image_never_upscales(tmp_path: Path) -> None:
    """Small images keep their size."""
    source = tmp_path / "tiny.bmp"
    Image.new("RGB", (32, 16), (0, 128, 0)).save(source)

    content = prepare_image(source, max_size=1280)

    with Image.open(BytesIO(content.data)) as decoded:
        assert decoded.size == (32, 16)


def test_prepare_image_rejects_corrupt_files(tmp_path: Path) -> None:
    """Undecodable files raise ImagePreparationError naming the file."""
    source = tmp_path / "broken.gif"
    source.write_bytes(b"this is not an image")

    with pytest.raises(ImagePreparationError, match="broken.gif"):
        prepare_image(source)
