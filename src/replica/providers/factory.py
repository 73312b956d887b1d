"""Collaborator sets for scripts and the worker."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass

from replica.core.config import Settings, get_settings
from replica.models.types import RecreationConfig
from replica.providers.base import CritiquerBase, GeneratorBase, JudgeBase, ScreenshotterBase


@dataclass
class Collaborators:
    """Collaborator set for one session."""

    screenshotter: ScreenshotterBase
    generator: GeneratorBase
    judge: JudgeBase | None = None
    critiquer: CritiquerBase | None = None


CollaboratorFactory = Callable[[RecreationConfig], Collaborators]


def build_mock_collaborators(config: RecreationConfig, use_judge: bool = True) -> Collaborators:
    """Deterministic collaborators; no browser or network needed."""
    from replica.providers.mock import MockCritiquer, MockGenerator, MockJudge, MockScreenshotter

    return Collaborators(
        screenshotter=MockScreenshotter(),
        generator=MockGenerator(),
        judge=MockJudge(pass_threshold=config.judge_threshold) if use_judge else None,
        critiquer=MockCritiquer(),
    )


def build_live_collaborators(
    config: RecreationConfig,
    use_judge: bool = True,
    settings: Settings | None = None,
) -> Collaborators:
    """Playwright screenshots plus OpenAI generator, judge and critiquer.

    Raises:
        ValueError: If OPENAI_API_KEY is not configured.
    """
    from replica.adapter.browser import PlaywrightScreenshotter
    from replica.providers.openai_vision import (
        OpenAICritiquer,
        OpenAIGenerator,
        OpenAIJudge,
        create_client,
    )

    settings = settings or get_settings()
    client = create_client(settings)

    return Collaborators(
        screenshotter=PlaywrightScreenshotter(disable_animations=config.disable_animations),
        generator=OpenAIGenerator(client=client, settings=settings),
        judge=(
            OpenAIJudge(client=client, settings=settings, pass_threshold=config.judge_threshold)
            if use_judge
            else None
        ),
        critiquer=OpenAICritiquer(client=client, settings=settings),
    )
