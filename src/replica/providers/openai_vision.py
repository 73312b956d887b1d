"""OpenAI vision collaborators: generator, judge and critiquer.

All three send screenshots as base64 data URLs through chat completions.
The judge and critiquer ask for JSON objects and validate them with
pydantic; the generator returns a bare HTML document.

The client is injectable so tests can pass a stub with the same
`chat.completions.create` surface.
"""

from __future__ import annotations

import base64
import logging
import re
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, ValidationError

from replica.core.config import Settings, get_settings
from replica.core.errors import CritiqueFailure, GenerationFailure, JudgeFailure
from replica.models.types import Critique, CritiqueItem, JudgeResult
from replica.providers.base import CritiquerBase, GeneratorBase, JudgeBase

logger = logging.getLogger(__name__)

_CODE_FENCE_RE = re.compile(r"^```[a-zA-Z]*\s*\n(.*?)\n?```\s*$", re.DOTALL)

GENERATOR_PROMPT = (
    "You are an expert front-end developer. Recreate the webpage shown in the "
    "screenshot as a single self-contained HTML document with inline CSS. "
    "Match layout, colors, typography and spacing as closely as possible at the "
    "screenshot's viewport size. Do not reference external images or scripts. "
    "Respond with the HTML document only."
)

JUDGE_PROMPT = (
    "You compare two webpage screenshots. The first image is the TARGET, the second "
    "is the CANDIDATE.\nGoal: {goal}\n"
    "Rate how well the candidate meets the goal from 0 to 100. Respond with a JSON "
    'object: {{"score": <number>, "notes": "<short explanation>"}}.'
)

CRITIQUE_PROMPT = (
    "You review a webpage recreation. The first image is the TARGET, the second is "
    "the CANDIDATE. Context: {context}\n"
    "List concrete visual discrepancies the candidate must fix, most important first. "
    'Respond with a JSON object: {{"summary": "<one sentence>", "items": [{{"priority": '
    '"critical|high|medium|low", "category": "<layout|color|typography|spacing|content>", '
    '"element": "<which element>", "issue": "<what is wrong>", "expected": "<target>", '
    '"actual": "<candidate>"}}]}}.'
)


class _JudgeVerdict(BaseModel):
    """JSON shape the judge model returns."""

    score: float = Field(ge=0, le=100)
    notes: str = ""


class _CritiquePayload(BaseModel):
    """JSON shape the critique model returns."""

    summary: str
    items: list[CritiqueItem] = Field(default_factory=list)


def image_data_url(path: Path) -> str:
    """Encode a PNG file as a data URL for image input."""
    data = Path(path).read_bytes()
    return f"data:image/png;base64,{base64.b64encode(data).decode('ascii')}"


def strip_code_fences(text: str) -> str:
    """Remove a surrounding ``` fence from model output, if present."""
    stripped = text.strip()
    match = _CODE_FENCE_RE.match(stripped)
    return match.group(1).strip() if match else stripped


def create_client(settings: Settings | None = None) -> Any:
    """Build an OpenAI client from settings.

    Raises:
        ValueError: If no API key is configured.
    """
    from openai import OpenAI

    settings = settings or get_settings()
    if not settings.openai_api_key:
        raise ValueError("OPENAI_API_KEY is not set")
    return OpenAI(api_key=settings.openai_api_key, timeout=settings.request_timeout_s)


class _OpenAIVisionBase:
    """Shared request plumbing."""

    def __init__(self, model: str, client: Any = None, settings: Settings | None = None):
        self.model = model
        self._client = client
        self._settings = settings

    @property
    def client(self) -> Any:
        if self._client is None:
            self._client = create_client(self._settings)
        return self._client

    def _complete(self, text: str, images: list[Path], json_mode: bool = False) -> str:
        content: list[dict[str, Any]] = [{"type": "text", "text": text}]
        for image in images:
            content.append({"type": "image_url", "image_url": {"url": image_data_url(image)}})

        kwargs: dict[str, Any] = {
            "model": self.model,
            "messages": [{"role": "user", "content": content}],
        }
        if json_mode:
            kwargs["response_format"] = {"type": "json_object"}

        response = self.client.chat.completions.create(**kwargs)
        message = response.choices[0].message.content
        if not message:
            raise ValueError("Model returned an empty response")
        return message


class OpenAIGenerator(_OpenAIVisionBase, GeneratorBase):
    """Generates HTML from a reference screenshot."""

    def __init__(self, model: str | None = None, client: Any = None, settings: Settings | None = None):
        settings = settings or get_settings()
        super().__init__(model or settings.generator_model, client, settings)

    def generate(self, reference_image: Path, revision_context: str | None = None) -> str:
        prompt = GENERATOR_PROMPT
        if revision_context:
            prompt += (
                "\n\nYour previous attempt was reviewed. Fix these issues in the new version:\n\n"
                + revision_context
            )

        try:
            raw = self._complete(prompt, [Path(reference_image)])
        except Exception as e:
            raise GenerationFailure(f"Markup generation failed: {e}") from e

        markup = strip_code_fences(raw)
        if "<" not in markup:
            raise GenerationFailure("Model response contains no markup")

        logger.debug(f"Generated {len(markup)} chars of markup with {self.model}")
        return markup


class OpenAIJudge(_OpenAIVisionBase, JudgeBase):
    """Scores a candidate screenshot against the target."""

    def __init__(
        self,
        model: str | None = None,
        client: Any = None,
        settings: Settings | None = None,
        pass_threshold: float = 85.0,
    ):
        settings = settings or get_settings()
        super().__init__(model or settings.judge_model, client, settings)
        self.pass_threshold = pass_threshold

    def compare(self, goal: str, target_image: Path, candidate_image: Path) -> JudgeResult:
        try:
            raw = self._complete(
                JUDGE_PROMPT.format(goal=goal),
                [Path(target_image), Path(candidate_image)],
                json_mode=True,
            )
            verdict = _JudgeVerdict.model_validate_json(strip_code_fences(raw))
        except ValidationError as e:
            raise JudgeFailure(f"Judge returned an invalid verdict: {e}") from e
        except Exception as e:
            raise JudgeFailure(f"Judge call failed: {e}") from e

        return JudgeResult(
            passed=verdict.score >= self.pass_threshold,
            score=verdict.score,
            notes=verdict.notes,
        )


class OpenAICritiquer(_OpenAIVisionBase, CritiquerBase):
    """Produces a prioritized punch list of visual discrepancies."""

    def __init__(self, model: str | None = None, client: Any = None, settings: Settings | None = None):
        settings = settings or get_settings()
        super().__init__(model or settings.judge_model, client, settings)

    def critique(self, target_image: Path, candidate_image: Path, context: str) -> Critique:
        try:
            raw = self._complete(
                CRITIQUE_PROMPT.format(context=context),
                [Path(target_image), Path(candidate_image)],
                json_mode=True,
            )
            payload = _CritiquePayload.model_validate_json(strip_code_fences(raw))
        except ValidationError as e:
            raise CritiqueFailure(f"Critique response is malformed: {e}") from e
        except Exception as e:
            raise CritiqueFailure(f"Critique call failed: {e}") from e

        return Critique(summary=payload.summary, items=payload.items)
