"""Content extraction: raw bytes + declared MIME type -> text + typed description.

Classification runs in priority order:

1. **text**    -- MIME contains ``text`` or the name ends ``.txt``/``.md``
2. **json**    -- MIME contains ``json`` or the name ends ``.json``;
                  unparsable JSON degrades to text with an
                  ``invalid-format`` annotation
3. **archive** -- zip/tar/gzip/7z/rar by MIME or extension; acknowledged
                  with its size, never unpacked
4. **binary**  -- everything else; only name, MIME and size are recorded

The extractor never raises for a payload it can classify and always
returns non-empty ``content_text``, so the embedding stage has something
to work with even for binaries.
"""

from __future__ import annotations

import codecs
import json
from pathlib import PurePosixPath
from typing import Awaitable, Callable

import structlog

from knowledge_pipeline.models.ingestion import (
    ArchiveContent,
    BinaryContent,
    ExtractionResult,
    JsonContent,
    TextContent,
)

logger = structlog.get_logger(logger_name=__name__)

ProgressCallback = Callable[[int], Awaitable[None]]

_TEXT_EXTENSIONS = (".txt", ".md", ".markdown")
_JSON_EXTENSIONS = (".json",)

# extension -> archive format label
_ARCHIVE_EXTENSIONS: dict[str, str] = {
    ".zip": "zip",
    ".tar": "tar",
    ".tgz": "tar.gz",
    ".gz": "gzip",
    ".7z": "7z",
    ".rar": "rar",
}
# MIME fragment -> archive format label
_ARCHIVE_MIME_MARKERS: dict[str, str] = {
    "zip": "zip",
    "x-tar": "tar",
    "gzip": "gzip",
    "x-7z": "7z",
    "rar": "rar",
}

INVALID_FORMAT = "invalid-format"

_MEGABYTE = 1024 * 1024


def _format_mb(size: int) -> str:
    return f"{size / _MEGABYTE:.2f}"


class ContentExtractor:
    """Turns downloaded bytes into normalized text and an ExtractedContent."""

    async def extract(
        self,
        data: bytes,
        mime_type: str,
        file_name: str,
        on_progress: ProgressCallback | None = None,
    ) -> ExtractionResult:
        """Classify *data* and report progress (30 once decoded, 70 once classified).

        Parameters
        ----------
        data:
            Raw bytes as downloaded from blob storage.
        mime_type:
            Declared MIME type; may be empty.
        file_name:
            Declared file name, used for extension checks and summaries.
        on_progress:
            Optional coroutine callback receiving percentage milestones.
        """
        if on_progress is not None:
            await on_progress(30)
        result = self.classify(data, mime_type, file_name)
        if on_progress is not None:
            await on_progress(70)
        logger.info(
            "content_extracted",
            file_name=file_name,
            mime_type=mime_type,
            content_type=result.extracted_content.type,
            text_length=len(result.content_text),
        )
        return result

    def classify(self, data: bytes, mime_type: str, file_name: str) -> ExtractionResult:
        mime = (mime_type or "application/octet-stream").lower()
        name = file_name or "unnamed"
        suffix = PurePosixPath(name.lower()).suffix

        if "text" in mime or suffix in _TEXT_EXTENSIONS:
            return self._extract_text(data, name)
        if "json" in mime or suffix in _JSON_EXTENSIONS:
            return self._extract_json(data, name)
        archive_format = self._archive_format(mime, suffix)
        if archive_format is not None:
            return self._extract_archive(data, name, archive_format)
        return self._extract_binary(data, name, mime)

    # ------------------------------------------------------------------
    # Per-kind extraction
    # ------------------------------------------------------------------

    def _extract_text(
        self, data: bytes, name: str, annotation: str | None = None
    ) -> ExtractionResult:
        text = self._decode(data)
        content = TextContent(
            line_count=text.count("\n") + 1,
            character_count=len(text),
            annotation=annotation,
        )
        content_text = text if text.strip() else f"Empty file: {name}"
        return ExtractionResult(content_text=content_text, extracted_content=content)

    def _extract_json(self, data: bytes, name: str) -> ExtractionResult:
        text = self._decode(data)
        try:
            parsed = json.loads(text)
            pretty = json.dumps(parsed, indent=2, ensure_ascii=False)
        except (ValueError, RecursionError):
            # deeply nested input raises RecursionError
            logger.warning("json_parse_failed", file_name=name, size=len(data))
            return self._extract_text(data, name, annotation=INVALID_FORMAT)

        if isinstance(parsed, (dict, list)):
            key_count = len(parsed)
        else:
            key_count = 0
        content = JsonContent(key_count=key_count, size=len(data))
        return ExtractionResult(content_text=pretty, extracted_content=content)

    def _extract_archive(self, data: bytes, name: str, archive_format: str) -> ExtractionResult:
        content = ArchiveContent(format=archive_format, size=len(data))
        return ExtractionResult(
            content_text=f"{archive_format.upper()} Archive: {name} ({_format_mb(len(data))} MB)",
            extracted_content=content,
        )

    def _extract_binary(self, data: bytes, name: str, mime: str) -> ExtractionResult:
        content = BinaryContent(mime_type=mime, file_name=name, size=len(data))
        return ExtractionResult(
            content_text=f"Binary file: {name} ({mime}) - {_format_mb(len(data))} MB",
            extracted_content=content,
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _decode(data: bytes) -> str:
        if data.startswith(codecs.BOM_UTF8):
            data = data[len(codecs.BOM_UTF8):]
        return data.decode("utf-8", errors="replace")

    @staticmethod
    def _archive_format(mime: str, suffix: str) -> str | None:
        for marker, label in _ARCHIVE_MIME_MARKERS.items():
            if marker in mime:
                return label
        return _ARCHIVE_EXTENSIONS.get(suffix)
