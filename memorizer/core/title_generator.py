"""
Title generation for Memorizer.

A title generator turns memory text into a short human-readable title.
Generation is best-effort: resolve_title() falls back to truncated text
whenever the generator fails or returns something unusable.
"""

import logging
from typing import Optional, Protocol

from openai import OpenAI

from memorizer.config import Config, TitleProvider

logger = logging.getLogger(__name__)

MIN_TITLE_LENGTH = 3
FALLBACK_MAX_LENGTH = 50
FALLBACK_TRUNCATE_AT = 47
PROMPT_CONTENT_LIMIT = 500

TITLE_PROMPT = """Generate a short, descriptive title (maximum 10 words) for this content. Only output the title, nothing else.

Content: {content}

Title:"""


class TitleGenerator(Protocol):
    """Protocol defining the title generator interface."""

    def generate_title(self, text: str) -> str: ...


def fallback_title(text: str) -> str:
    """First 47 characters plus "..." for long text, otherwise the text itself."""
    if len(text) > FALLBACK_MAX_LENGTH:
        return text[:FALLBACK_TRUNCATE_AT] + "..."
    return text


def clean_title(title: str) -> str:
    """Keep the first line and strip quotes and surrounding whitespace."""
    title = title.strip().splitlines()[0] if title.strip() else ""
    return title.replace('"', "").replace("'", "").strip()


def resolve_title(generator: Optional[TitleGenerator], text: str) -> str:
    """
    Produce a title for text, never raising.

    Args:
        generator: Title generator to try first (None skips straight to the fallback)
        text: The memory text

    Returns:
        The generated title, or the truncated-text fallback
    """
    if generator is None:
        return fallback_title(text)

    try:
        title = clean_title(generator.generate_title(text) or "")
    except Exception as e:
        logger.warning(f"Title generation failed, using fallback: {e}")
        return fallback_title(text)

    if len(title) < MIN_TITLE_LENGTH:
        logger.debug("Generated title too short, using fallback")
        return fallback_title(text)

    return title


class TruncatingTitleGenerator:
    """Title generator that never calls a model."""

    def generate_title(self, text: str) -> str:
        return fallback_title(text)


class OpenAITitleGenerator:
    """Title generator backed by an OpenAI chat model."""

    def __init__(self, api_key: str, model: str = "gpt-4o-mini", max_tokens: int = 30):
        if not api_key:
            raise ValueError("OpenAI API key is required")

        self.client = OpenAI(api_key=api_key, max_retries=0)
        self.model = model
        self.max_tokens = max_tokens

    def generate_title(self, text: str) -> str:
        content = text if len(text) <= PROMPT_CONTENT_LIMIT else text[:PROMPT_CONTENT_LIMIT] + "..."

        response = self.client.chat.completions.create(
            model=self.model,
            messages=[{"role": "user", "content": TITLE_PROMPT.format(content=content)}],
            max_tokens=self.max_tokens,
            temperature=0.2,
        )
        title = response.choices[0].message.content or ""
        logger.debug(f"Generated title: {title}")
        return title


def create_title_generator(config: Config) -> TitleGenerator:
    """Create a title generator based on configuration."""
    if config.title_provider == TitleProvider.OPENAI:
        logger.info(f"Using OpenAI titles: {config.openai_title_model}")
        return OpenAITitleGenerator(
            api_key=config.openai_api_key,
            model=config.openai_title_model,
        )

    return TruncatingTitleGenerator()
