"""Unit tests for the operator CLI: argument parsing and subcommand handlers."""

from __future__ import annotations

from pathlib import Path
from typing import Any
from unittest.mock import AsyncMock, patch

import pytest

from knowledge_pipeline.cli import ingest
from knowledge_pipeline.config.settings import Settings
from knowledge_pipeline.models.crawl import CrawledPage
from knowledge_pipeline.models.ingestion import AnonymousActor, IngestionStatus
from knowledge_pipeline.services.embedding.embedder import Embedder
from knowledge_pipeline.services.ingestion.batch_ingestion_service import BatchIngestionService
from knowledge_pipeline.services.vector_store.uploader import VectorStoreUploader
from knowledge_pipeline.utils.errors import ConfigurationError
from tests.conftest import (
    InMemoryBlobStorage,
    InMemoryRecordStore,
    InMemoryVectorStore,
    MockEmbeddingProvider,
    build_orchestrator,
)


def _components(crawler: Any = None) -> dict[str, Any]:
    record_store = InMemoryRecordStore()
    blob_storage = InMemoryBlobStorage()
    vector_store = InMemoryVectorStore()
    embedding_provider = MockEmbeddingProvider()
    embedder = Embedder(embedding_provider, pacing_delay=0.0)
    uploader = VectorStoreUploader(vector_store)
    return {
        "record_store": record_store,
        "blob_storage": blob_storage,
        "vector_store": vector_store,
        "embedder": embedder,
        "uploader": uploader,
        "orchestrator": build_orchestrator(
            record_store, blob_storage, embedding_provider, vector_store
        ),
        "batch_service": BatchIngestionService(embedder, uploader, crawler=crawler),
        "crawler": crawler,
        "settings": Settings(_env_file=None),
    }


def _args(*argv: str):
    return ingest._build_parser().parse_args(list(argv))


# ======================================================================
# Parser
# ======================================================================


class TestParser:
    def test_upload_arguments(self) -> None:
        args = _args("--user", "u-1", "upload", "notes.md", "--title", "Notes", "--no-process")
        assert args.command == "upload"
        assert args.file == "notes.md"
        assert args.title == "Notes"
        assert args.no_process is True
        assert args.user == "u-1"

    def test_crawl_defaults(self) -> None:
        args = _args("crawl", "https://docs.example.com")
        assert args.limit == 10
        assert args.max_depth == 2
        assert args.collection is None

    def test_global_config_default(self) -> None:
        assert _args("health").config == "config/config.yaml"

    def test_no_command_exits_with_help(self, capsys: pytest.CaptureFixture[str]) -> None:
        with pytest.raises(SystemExit) as exc_info:
            ingest.main([])
        assert exc_info.value.code == 1
        assert "upload" in capsys.readouterr().out


class TestActor:
    def test_anonymous_by_default(self) -> None:
        assert ingest._actor(_args("status")) == AnonymousActor()

    def test_user_flag(self) -> None:
        actor = ingest._actor(_args("--user", "u-7", "status"))
        assert actor.owner_id == "u-7"


# ======================================================================
# Handlers
# ======================================================================


class TestUploadAndProcess:
    @pytest.mark.asyncio
    async def test_upload_processes_file(
        self, tmp_path: Path, capsys: pytest.CaptureFixture[str]
    ) -> None:
        source = tmp_path / "notes.txt"
        source.write_text("hello world", encoding="utf-8")
        components = _components()

        code = await ingest._handle_upload(_args("upload", str(source)), components)

        assert code == 0
        out = capsys.readouterr().out
        assert "text/plain" in out
        assert "completed" in out
        records = list(components["record_store"].records.values())
        assert records[0].status == IngestionStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_upload_no_process_leaves_pending(self, tmp_path: Path) -> None:
        source = tmp_path / "data.json"
        source.write_text('{"a": 1}', encoding="utf-8")
        components = _components()

        code = await ingest._handle_upload(
            _args("upload", str(source), "--no-process"), components
        )

        assert code == 0
        record = next(iter(components["record_store"].records.values()))
        assert record.status == IngestionStatus.PENDING
        assert record.mime_type == "application/json"

    @pytest.mark.asyncio
    async def test_upload_missing_file(
        self, tmp_path: Path, capsys: pytest.CaptureFixture[str]
    ) -> None:
        code = await ingest._handle_upload(_args("upload", str(tmp_path / "nope")), _components())
        assert code == 1
        assert "file not found" in capsys.readouterr().err

    @pytest.mark.asyncio
    async def test_process_requires_ids_or_pending(self) -> None:
        assert await ingest._handle_process(_args("process"), _components()) == 1

    @pytest.mark.asyncio
    async def test_process_pending(self, capsys: pytest.CaptureFixture[str]) -> None:
        components = _components()
        orchestrator = components["orchestrator"]
        for name in ("a.txt", "b.txt"):
            await orchestrator.submit_upload(AnonymousActor(), name, "text/plain", b"some text")

        code = await ingest._handle_process(_args("process", "--pending"), components)

        assert code == 0
        assert "Processed 2 record(s)" in capsys.readouterr().out

    @pytest.mark.asyncio
    async def test_process_unknown_id_reported(self, capsys: pytest.CaptureFixture[str]) -> None:
        code = await ingest._handle_process(_args("process", "missing"), _components())
        assert code == 1
        assert "missing: not processed" in capsys.readouterr().out


class TestStatusAndRetry:
    @pytest.mark.asyncio
    async def test_status_counts(self, capsys: pytest.CaptureFixture[str]) -> None:
        components = _components()
        await components["orchestrator"].submit_upload(
            AnonymousActor(), "a.txt", "text/plain", b"text", title="Alpha"
        )

        assert await ingest._handle_status(_args("status"), components) == 0
        out = capsys.readouterr().out
        assert "pending" in out
        assert "Alpha" in out

    @pytest.mark.asyncio
    async def test_status_detail(self, capsys: pytest.CaptureFixture[str]) -> None:
        components = _components()
        orchestrator = components["orchestrator"]
        record = await orchestrator.submit_upload(AnonymousActor(), "a.txt", "text/plain", b"text")
        await orchestrator.process(record.id)

        assert await ingest._handle_status(_args("status", record.id), components) == 0
        out = capsys.readouterr().out
        assert "completed" in out
        assert "Progress:     100%" in out

    @pytest.mark.asyncio
    async def test_retry_rejection_reported(self, capsys: pytest.CaptureFixture[str]) -> None:
        components = _components()
        record = await components["orchestrator"].submit_upload(
            AnonymousActor(), "a.txt", "text/plain", b"text"
        )

        code = await ingest._handle_retry(_args("retry", record.id), components)

        assert code == 1
        assert "only failed records can be retried" in capsys.readouterr().out


class TestCrawl:
    @pytest.mark.asyncio
    async def test_crawl_without_crawler(self, capsys: pytest.CaptureFixture[str]) -> None:
        code = await ingest._handle_crawl(_args("crawl", "https://example.com"), _components())
        assert code == 1
        assert "FIRECRAWL_API_KEY" in capsys.readouterr().err

    @pytest.mark.asyncio
    async def test_crawl_ingests_pages(self, capsys: pytest.CaptureFixture[str]) -> None:
        crawler = AsyncMock()
        crawler.crawl = AsyncMock(
            return_value=[
                CrawledPage(url="https://example.com", title="Home", markdown="# Home"),
                CrawledPage(url="https://example.com/a", title="A", content="page a"),
            ]
        )
        components = _components(crawler=crawler)

        code = await ingest._handle_crawl(
            _args("crawl", "https://example.com", "--limit", "5", "--collection", "Docs"),
            components,
        )

        assert code == 0
        options = crawler.crawl.call_args.args[1]
        assert options.limit == 5
        assert len(components["vector_store"].collections["Docs"]) == 2
        assert "Uploaded:         2 -> Docs" in capsys.readouterr().out


class TestVectorStoreCommands:
    @pytest.mark.asyncio
    async def test_clear_with_yes(self, capsys: pytest.CaptureFixture[str]) -> None:
        components = _components()
        await components["batch_service"].ingest_texts("Docs", ["one", "two"])

        code = await ingest._handle_clear(_args("clear", "Docs", "--yes"), components)

        assert code == 0
        assert components["vector_store"].collections["Docs"] == {}
        assert "Deleted 2 of 2" in capsys.readouterr().out

    @pytest.mark.asyncio
    async def test_clear_aborted_without_confirmation(self) -> None:
        components = _components()
        await components["batch_service"].ingest_texts("Docs", ["one"])

        with patch("builtins.input", return_value="n"):
            code = await ingest._handle_clear(_args("clear", "Docs"), components)

        assert code == 0
        assert len(components["vector_store"].collections["Docs"]) == 1

    @pytest.mark.asyncio
    async def test_health_unreachable(self, capsys: pytest.CaptureFixture[str]) -> None:
        components = _components()
        components["vector_store"].unreachable = True

        assert await ingest._handle_health(_args("health"), components) == 1
        assert "unreachable" in capsys.readouterr().out

    @pytest.mark.asyncio
    async def test_health_connected(self, capsys: pytest.CaptureFixture[str]) -> None:
        components = _components()
        await components["batch_service"].ingest_texts("Docs", ["one"])

        assert await ingest._handle_health(_args("health"), components) == 0
        assert "Total objects:  1" in capsys.readouterr().out

    @pytest.mark.asyncio
    async def test_search_uses_default_collection(
        self, capsys: pytest.CaptureFixture[str]
    ) -> None:
        components = _components()
        await components["batch_service"].ingest_texts(
            "KnowledgeFragment", ["vector databases"], [{"title": "Vectors"}]
        )

        assert await ingest._handle_search(_args("search", "vector databases"), components) == 0
        out = capsys.readouterr().out
        assert "1 result(s) in KnowledgeFragment" in out
        assert "Vectors" in out


# ======================================================================
# Entry point
# ======================================================================


class TestMain:
    def test_configuration_error_exits_2(self, capsys: pytest.CaptureFixture[str]) -> None:
        with (
            patch("knowledge_pipeline.main.load_settings", return_value=Settings(_env_file=None)),
            patch(
                "knowledge_pipeline.main.build_components",
                side_effect=ConfigurationError(message="OPENAI_API_KEY is required"),
            ),
            pytest.raises(SystemExit) as exc_info,
        ):
            ingest.main(["health"])
        assert exc_info.value.code == 2
        assert "OPENAI_API_KEY" in capsys.readouterr().err

    def test_dispatches_and_reports_pipeline_errors(
        self, capsys: pytest.CaptureFixture[str]
    ) -> None:
        components = _components()
        with (
            patch("knowledge_pipeline.main.load_settings", return_value=Settings(_env_file=None)),
            patch("knowledge_pipeline.main.build_components", return_value=components),
            pytest.raises(SystemExit) as exc_info,
        ):
            ingest.main(["status", "does-not-exist"])
        assert exc_info.value.code == 1
        assert "not found" in capsys.readouterr().err
