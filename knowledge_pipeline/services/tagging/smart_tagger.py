"""LLM-powered smart tagging of extracted content.

Uses an :class:`~knowledge_pipeline.interfaces.llm_provider.ILLMProvider`
to label content with 3-8 categorized, confidence-scored tags.

The flow:
1. Title, locator and the first 4000 characters of text go to the LLM
2. The LLM returns a JSON array of tag objects
3. The array is located (markdown fences and surrounding prose are
   tolerated) and each element validated on its own
4. Invalid elements are dropped; if nothing survives, or the call failed,
   the single fallback tag is used

Tagging is best-effort: :meth:`SmartTagger.tag` never raises.
"""

from __future__ import annotations

import asyncio
import json
import re
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

import structlog
from pydantic import ValidationError as PydanticValidationError

from knowledge_pipeline.models.tags import FALLBACK_TAG, SmartTag

if TYPE_CHECKING:
    from knowledge_pipeline.interfaces.llm_provider import ILLMProvider
    from knowledge_pipeline.interfaces.record_store import IIngestionRecordStore

logger = structlog.get_logger(logger_name=__name__)

MAX_TAGS = 8
_CONTENT_LIMIT = 4000

_TAGGING_SYSTEM_PROMPT = """\
You are a content analysis expert. Analyze the provided content and generate \
relevant tags that categorize and describe it.

Return between 3 and 8 tags as a JSON array. Each tag must have:
- tag_name: a concise label of 1-3 words
- confidence_score: a number between 0.0 and 1.0
- tag_category: one of "topic", "industry", "content_type", "sentiment", "difficulty"
- tag_description: a short explanation of why the tag applies
- entities: optional list of named entities (people, organizations, products) \
the tag is based on

Respond with the JSON array only."""

_TAGGING_USER_PROMPT = """\
Title: {title}
URL: {locator}
Content: {content}"""

_FENCE_RE = re.compile(r"```(?:json)?\s*\n?(.*?)```", re.DOTALL)


@dataclass(frozen=True)
class TaggingOutcome:
    """Tags to persist plus how they were obtained."""

    tags: list[SmartTag]
    used_fallback: bool = False
    error: str | None = None
    rejected: int = 0
    raw_preview: str = field(default="", repr=False)


class SmartTagger:
    """Generates smart tags for a record's text and persists them.

    Parameters
    ----------
    llm:
        The LLM provider used for tagging prompts (injected, swappable).
    store:
        Optional record store; when given, :meth:`tag_record` replaces the
        record's tags atomically.
    max_concurrent:
        Maximum number of concurrent LLM calls from this tagger.
    """

    def __init__(
        self,
        llm: ILLMProvider,
        store: IIngestionRecordStore | None = None,
        max_concurrent: int = 5,
        temperature: float = 0.3,
    ) -> None:
        self._llm = llm
        self._store = store
        self._semaphore = asyncio.Semaphore(max_concurrent)
        self._temperature = temperature

    async def tag(
        self,
        content_text: str,
        title: str | None = None,
        locator: str | None = None,
    ) -> TaggingOutcome:
        """Return tags for *content_text*; falls back instead of raising."""
        user_prompt = _TAGGING_USER_PROMPT.format(
            title=title or "",
            locator=locator or "",
            content=content_text[:_CONTENT_LIMIT],
        )
        try:
            async with self._semaphore:
                response = await self._llm.complete(
                    system_prompt=_TAGGING_SYSTEM_PROMPT,
                    user_prompt=user_prompt,
                    temperature=self._temperature,
                    max_tokens=1000,
                )
        except Exception as exc:  # noqa: BLE001
            logger.warning(
                "smart_tagging_failed",
                provider=self._llm.get_provider_name(),
                error=str(exc),
                msg="Using fallback tag.",
            )
            return TaggingOutcome(tags=[FALLBACK_TAG], used_fallback=True, error=str(exc))

        tags, rejected = self.parse_tags(response)
        if not tags:
            logger.warning(
                "smart_tagging_unusable_response",
                rejected=rejected,
                response_preview=response[:200],
            )
            return TaggingOutcome(
                tags=[FALLBACK_TAG],
                used_fallback=True,
                error="no valid tags in response",
                rejected=rejected,
                raw_preview=response[:200],
            )
        return TaggingOutcome(tags=tags, rejected=rejected)

    async def tag_record(
        self,
        record_id: str,
        content_text: str,
        title: str | None = None,
        locator: str | None = None,
    ) -> TaggingOutcome:
        """Tag content and replace the record's stored tag set.

        A store failure is logged and reported in the outcome's ``error``;
        it does not propagate.
        """
        outcome = await self.tag(content_text, title=title, locator=locator)
        if self._store is None:
            return outcome
        try:
            await self._store.replace_tags(record_id, outcome.tags)
        except Exception as exc:  # noqa: BLE001
            logger.warning("smart_tags_persist_failed", record_id=record_id, error=str(exc))
            return TaggingOutcome(
                tags=outcome.tags,
                used_fallback=outcome.used_fallback,
                error=f"failed to persist tags: {exc}",
                rejected=outcome.rejected,
            )
        logger.info(
            "smart_tags_saved",
            record_id=record_id,
            tag_count=len(outcome.tags),
            fallback=outcome.used_fallback,
        )
        return outcome

    # ------------------------------------------------------------------
    # Parsing
    # ------------------------------------------------------------------

    @classmethod
    def parse_tags(cls, response: str) -> tuple[list[SmartTag], int]:
        """Parse an LLM response into valid tags.

        Handles a bare JSON array, a fenced block, an array embedded in
        prose, and an object wrapping a ``tags`` list.

        Returns
        -------
        tuple[list[SmartTag], int]
            Valid tags (at most :data:`MAX_TAGS`, duplicates by name
            removed) and the number of elements rejected.
        """
        elements = cls._locate_elements(response)
        if elements is None:
            return [], 0

        tags: list[SmartTag] = []
        seen: set[str] = set()
        rejected = 0
        for element in elements:
            tag = cls._to_tag(element)
            if tag is None:
                rejected += 1
                continue
            key = tag.name.lower()
            if key in seen:
                continue
            seen.add(key)
            tags.append(tag)
        return tags[:MAX_TAGS], rejected

    @staticmethod
    def _locate_elements(response: str) -> list[Any] | None:
        cleaned = (response or "").strip()
        fence_match = _FENCE_RE.search(cleaned)
        if fence_match:
            cleaned = fence_match.group(1).strip()

        candidates = [cleaned]
        bracket_start, bracket_end = cleaned.find("["), cleaned.rfind("]")
        if bracket_start != -1 and bracket_end > bracket_start:
            candidates.append(cleaned[bracket_start : bracket_end + 1])
        brace_start, brace_end = cleaned.find("{"), cleaned.rfind("}")
        if brace_start != -1 and brace_end > brace_start:
            candidates.append(cleaned[brace_start : brace_end + 1])

        for candidate in candidates:
            try:
                data = json.loads(candidate)
            except json.JSONDecodeError:
                continue
            if isinstance(data, list):
                return data
            if isinstance(data, dict) and isinstance(data.get("tags"), list):
                return data["tags"]

        logger.warning("json_parse_failed", response_preview=(response or "")[:200])
        return None

    @staticmethod
    def _to_tag(element: Any) -> SmartTag | None:
        if not isinstance(element, dict):
            return None
        entities = element.get("entities") or element.get("extracted_entities") or []
        if not isinstance(entities, list):
            entities = []
        try:
            return SmartTag(
                name=element.get("tag_name", element.get("name", "")),
                category=element.get("tag_category", element.get("category")),
                confidence=element.get("confidence_score", element.get("confidence")),
                description=str(element.get("tag_description", element.get("description")) or ""),
                extracted_entities=[str(e) for e in entities if e],
            )
        except (PydanticValidationError, TypeError):
            return None
