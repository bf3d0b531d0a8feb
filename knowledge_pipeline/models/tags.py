"""Smart tag models produced by the tagging stage.

A SmartTag belongs to exactly one IngestionRecord.  Tags are validated
element-by-element when parsed from LLM output; anything that fails these
constraints is dropped rather than coerced.
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator


class TagCategory(str, Enum):  # noqa: UP042
    """Closed set of tag categories the tagger may emit."""

    TOPIC = "topic"
    INDUSTRY = "industry"
    CONTENT_TYPE = "content_type"
    DIFFICULTY = "difficulty"
    SENTIMENT = "sentiment"


class SmartTag(BaseModel):
    """A categorized, confidence-scored label attached to extracted content."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(min_length=1, max_length=64)
    category: TagCategory
    confidence: float = Field(ge=0.0, le=1.0)
    description: str = ""
    extracted_entities: list[str] = Field(default_factory=list)

    @field_validator("name")
    @classmethod
    def _short_name(cls, value: str) -> str:
        # Tag names are short labels: 1-3 words.
        value = " ".join(value.split())
        if not value:
            raise ValueError("tag name must not be blank")
        if len(value.split(" ")) > 3:
            raise ValueError("tag name must be at most 3 words")
        return value


FALLBACK_TAG = SmartTag(
    name="web_content",
    category=TagCategory.CONTENT_TYPE,
    confidence=0.9,
    description="Web scraped content",
)
