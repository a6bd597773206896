"""
Question answering over retrieved memories.

Sends the question together with the matched screenshots to a vision model,
so the answer is grounded in the captures themselves rather than only in
their stored descriptions.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from datetime import datetime
from pathlib import Path

from glimpse.core.models import RetrievalResult
from glimpse.providers.base import VisionProvider

logger = logging.getLogger(__name__)

ANSWER_PROMPT = """I'm showing you {count} screenshots from my computer activity.
Please analyze these images and answer the following question based on what you see in them.

Question: {question}

Images shown:
{image_context}

Please provide a detailed answer based on the actual content visible in the images."""


def format_image_context(results: Sequence[RetrievalResult]) -> str:
    """One line per image, numbered in the order the images are sent."""
    lines = []
    for i, result in enumerate(results, 1):
        captured = datetime.fromtimestamp(result.record.capture_time / 1000)
        lines.append(f"Image {i} (captured at {captured:%Y-%m-%d %H:%M:%S})")
    return "\n".join(lines)


def build_answer_prompt(question: str, results: Sequence[RetrievalResult]) -> str:
    return ANSWER_PROMPT.format(
        count=len(results),
        question=question.strip(),
        image_context=format_image_context(results),
    )


async def answer_question(
    vision: VisionProvider,
    question: str,
    results: Sequence[RetrievalResult],
) -> str | None:
    """Ask the vision model ``question`` about the screenshots behind ``results``.

    Results whose capture file no longer exists are left out.

    Returns:
        The model's answer, or None when none of the screenshots are available

    Raises:
        ProviderError: If the vision request fails
    """
    available = []
    for result in results:
        if await asyncio.to_thread(Path(result.record.media_ref).is_file):
            available.append(result)
        else:
            logger.warning(f"Screenshot for {result.record.id} is missing: {result.record.media_ref}")

    if not available:
        return None

    prompt = build_answer_prompt(question, available)
    return await vision.answer(prompt, [r.record.media_ref for r in available])
