"""
Annotation oracle: turn one still image into a search-friendly description.

Images are converted to a downscaled JPEG in memory and sent to an OpenAI-compatible
vision-language model through a Pydantic AI agent. One request per image, no retries.
"""

import threading
import time
from collections.abc import Callable
from io import BytesIO
from pathlib import Path

import httpx
from loguru import logger
from PIL import Image, UnidentifiedImageError
from pydantic_ai import Agent, AgentRunResult, BinaryContent, ModelSettings
from pydantic_ai.models.openai import OpenAIChatModel
from pydantic_ai.providers.openai import OpenAIProvider

from media_annotator.errors import EmptyDescriptionError, ImagePreparationError, OracleError


DEFAULT_JPEG_QUALITY = 80
DEFAULT_DIMENSIONS = 1280
DEFAULT_TEMPERATURE = 0.2
DEFAULT_MAX_TOKENS = 300
DEFAULT_REQUEST_TIMEOUT = 120.0

DEFAULT_SYSTEM_PROMPT = (
    "You write image descriptions that are stored in the file's metadata and used for search."
)

DEFAULT_USER_PROMPT = (
    "Describe this image in a way that helps with searching. "
    "Queries will likely include key features of the image as well as what it's \"about\", "
    "including key objects, colors, and themes. "
    "If there is text in the image, read it and summarize. "
    "If the image appears to be a meme or image macro (e.g., text added over photo or "
    "illustration), use the word \"meme\" in the description. "
    "If you recognize a famous person or character in the image, mention them by name. "
    "Just respond with a human-readable description that includes the keywords in the "
    "description. Your response will be placed in the image's metadata as a comment, directly. "
    "Do not include any other text or labels (e.g., \"Metadata: \"). Just the description."
)


def prepare_image(
    image_path: Path,
    jpg_quality: int = DEFAULT_JPEG_QUALITY,
    max_size: int = DEFAULT_DIMENSIONS,
) -> BinaryContent:
    """
    Decode an image file into JPEG bytes ready for the agent.

    Alpha is composited onto white, the image is downscaled (never upscaled) to fit
    `max_size`, and the result is encoded in memory. Animated formats use their first frame.

    Raises:
        ImagePreparationError: if the file cannot be read or decoded.

    """
    try:
        with Image.open(image_path) as src:
            if src.mode in ("RGBA", "LA") or (src.mode == "P" and "transparency" in src.info):
                alpha = src.convert("RGBA")
                bg = Image.new("RGBA", alpha.size, (255, 255, 255, 255))
                img = Image.alpha_composite(bg, alpha).convert("RGB")
            else:
                img = src.convert("RGB")

        img.thumbnail((max_size, max_size), Image.Resampling.LANCZOS)
        buf = BytesIO()
        img.save(buf, format="JPEG", quality=jpg_quality)
        jpeg_bytes = buf.getvalue()
    except (OSError, UnidentifiedImageError, ValueError) as exc:
        msg = f"cannot decode {image_path.name}: {exc}"
        raise ImagePreparationError(msg) from exc

    logger.debug(
        "image_prepared_for_agent",
        width=img.width,
        height=img.height,
        size_kb=len(jpeg_bytes) // 1024,
    )
    return BinaryContent(data=jpeg_bytes, media_type="image/jpeg")


def create_agent(
    model_name: str,
    *,
    api_key: str,
    base_url: str | None = None,
    timeout: float = DEFAULT_REQUEST_TIMEOUT,
) -> Agent[None, str]:
    """Build a plain-text agent over an OpenAI-compatible chat completions endpoint."""
    provider = OpenAIProvider(
        base_url=base_url,
        api_key=api_key,
        http_client=httpx.AsyncClient(timeout=timeout),
    )
    chat_model = OpenAIChatModel(model_name=model_name, provider=provider)
    return Agent(chat_model, output_type=str, system_prompt=DEFAULT_SYSTEM_PROMPT)


class OracleClient:
    """
    Describe images with a vision-language model.

    Agents are built lazily, one per worker thread: each agent owns an async HTTP client bound
    to the event loop of the thread that runs it.
    """

    def __init__(
        self,
        agent_factory: Callable[[], Agent[None, str]],
        *,
        user_prompt: str = DEFAULT_USER_PROMPT,
        temperature: float = DEFAULT_TEMPERATURE,
        max_tokens: int = DEFAULT_MAX_TOKENS,
    ) -> None:
        self._agent_factory = agent_factory
        self._local = threading.local()
        self.user_prompt = user_prompt
        self.temperature = temperature
        self.max_tokens = max_tokens

    @property
    def agent(self) -> Agent[None, str]:
        agent = getattr(self._local, "agent", None)
        if agent is None:
            agent = self._agent_factory()
            self._local.agent = agent
        return agent

    def describe(self, image: BinaryContent) -> str:
        """
        Return the model's description of one image.

        Raises:
            OracleError: if the request fails.
            EmptyDescriptionError: if the model answered with no text.

        """
        _t0 = time.perf_counter()
        try:
            result: AgentRunResult[str] = self.agent.run_sync(
                [self.user_prompt, image],
                model_settings=ModelSettings(
                    temperature=self.temperature,
                    max_tokens=self.max_tokens,
                ),
            )
        except Exception as exc:  # noqa: BLE001
            msg = f"annotation request failed: {exc}"
            raise OracleError(msg) from exc

        text = (result.output or "").strip()
        logger.debug(
            "ai_inference_completed",
            seconds=round(time.perf_counter() - _t0, 3),
            chars=len(text),
        )
        if not text:
            msg = "model returned an empty description"
            raise EmptyDescriptionError(msg)
        return text
