"""Crawler request options and results."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class CrawlOptions(BaseModel):
    """Options forwarded to the content-acquisition service."""

    model_config = ConfigDict(frozen=True)

    limit: int = Field(default=10, ge=1)
    max_depth: int = Field(default=2, ge=0)
    include_paths: list[str] = Field(default_factory=list)
    exclude_paths: list[str] = Field(default_factory=list)
    formats: list[str] = Field(default_factory=lambda: ["markdown"])
    only_main_content: bool = True


class CrawledPage(BaseModel):
    """One page returned by the crawler."""

    model_config = ConfigDict(frozen=True)

    url: str
    title: str = ""
    content: str = ""
    markdown: str = ""

    @property
    def best_text(self) -> str:
        """Markdown when the crawler produced it, otherwise the raw content."""
        return self.markdown or self.content
