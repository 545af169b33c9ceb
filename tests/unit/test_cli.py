"""Unit tests for the knowledge CLI (src/cli/knowledge.py).

Commands run end to end against temporary SQLite databases, the project's
workspace config, the hashing embedding provider and a whitespace
tokenizer, so no network access is needed.
"""

from __future__ import annotations

import functools
import json
from collections.abc import Iterator
from pathlib import Path
from unittest.mock import MagicMock

import pytest
from structlog.testing import capture_logs

from src.cli.knowledge import _build_parser, _source_from_args, main
from src.services.ingestion.chunker import TextChunker
from tests.conftest import ENGLISH_FAQ, WhitespaceEncoding

# ======================================================================
# Shared helpers
# ======================================================================


@pytest.fixture
def cli_env(
    tmp_path: Path, project_root: Path, monkeypatch: pytest.MonkeyPatch
) -> Iterator[MagicMock]:
    """Point every Settings field the CLI touches at *tmp_path*.

    Log events are captured instead of printed so stdout holds only the
    command output.
    """
    monkeypatch.chdir(tmp_path)
    env = {
        "CHUNK_DB_PATH": str(tmp_path / "chunks.db"),
        "JOB_DB_PATH": str(tmp_path / "jobs.db"),
        "WORKSPACE_CONFIG_PATH": str(project_root / "config" / "config.yaml"),
        "OPENAI_API_KEY": "",
        "OPENAI_BASE_URL": "",
        "CHUNK_MIN_TOKENS": "5",
        "CHUNK_MAX_TOKENS": "10",
        "CHUNK_OVERLAP_TOKENS": "2",
        "EMBEDDING_BACKOFF_SECONDS": "0",
        "WORKER_POLL_INTERVAL_SECONDS": "0.01",
    }
    for key, value in env.items():
        monkeypatch.setenv(key, value)
    monkeypatch.setattr(
        "src.main.TextChunker", functools.partial(TextChunker, encoding=WhitespaceEncoding())
    )
    configure = MagicMock()
    monkeypatch.setattr("src.cli.knowledge.configure_logging", configure)
    with capture_logs():
        yield configure


@pytest.fixture
def faq_file(tmp_path: Path) -> Path:
    path = tmp_path / "faq.txt"
    path.write_text(ENGLISH_FAQ, encoding="utf-8")
    return path


def _run(argv: list[str], capsys: pytest.CaptureFixture[str]) -> tuple[int, str, str]:
    with pytest.raises(SystemExit) as exc_info:
        main(argv)
    captured = capsys.readouterr()
    return exc_info.value.code, captured.out, captured.err


# ======================================================================
# Parser
# ======================================================================


class TestParser:
    def test_enqueue_arguments(self) -> None:
        args = _build_parser().parse_args(
            [
                "enqueue",
                "--file",
                "docs/faq.txt",
                "--document-id",
                "faq",
                "--workspace",
                "acme-support",
            ]
        )
        assert args.command == "enqueue"
        assert args.source_type == "file"
        assert args.job_id is None
        assert _source_from_args(args) == {
            "source_type": "file",
            "url": None,
            "filename": "faq.txt",
            "title": None,
            "workspace_id": "acme-support",
        }

    def test_url_source_keeps_filename_empty(self) -> None:
        args = _build_parser().parse_args(
            [
                "ingest",
                "--file",
                "page.txt",
                "--document-id",
                "page",
                "--workspace",
                "acme-support",
                "--source-type",
                "url",
                "--url",
                "https://acme.test/help",
            ]
        )
        source = _source_from_args(args)
        assert source["filename"] is None
        assert source["url"] == "https://acme.test/help"

    def test_retrieve_arguments(self) -> None:
        args = _build_parser().parse_args(
            ["retrieve", "--workspace", "w", "--query", "q", "--lambda", "0.4", "--max-contexts", "3"]
        )
        assert args.mmr_lambda == pytest.approx(0.4)
        assert args.max_contexts == 3
        assert args.language is None
        assert args.json is False

    def test_status_targets_are_exclusive(self) -> None:
        with pytest.raises(SystemExit):
            _build_parser().parse_args(["status", "--document-id", "d", "--chunk-id", "c"])

    def test_no_command_exits_1(self, capsys: pytest.CaptureFixture[str]) -> None:
        code, out, _ = _run([], capsys)
        assert code == 1
        assert "enqueue" in out


# ======================================================================
# Commands
# ======================================================================


class TestCommands:
    def test_enqueue_work_status_retrieve(
        self, cli_env: MagicMock, faq_file: Path, capsys: pytest.CaptureFixture[str]
    ) -> None:
        code, out, _ = _run(
            [
                "enqueue",
                "--file",
                str(faq_file),
                "--document-id",
                "faq",
                "--workspace",
                "acme-support",
                "--job-id",
                "job-faq",
            ],
            capsys,
        )
        assert code == 0
        assert "Job ID: job-faq" in out

        code, out, _ = _run(["work"], capsys)
        assert code == 0
        assert "Chunk jobs:     1" in out

        code, out, _ = _run(["status", "--document-id", "faq"], capsys)
        assert code == 0
        assert "vectorized" in out
        assert "Total chunks: 0" not in out

        code, out, _ = _run(["status", "--chunk-id", "faq::chunk::0"], capsys)
        assert code == 0
        assert "Status:   vectorized" in out
        assert "Attempts: 1" in out

        code, out, _ = _run(
            [
                "retrieve",
                "--workspace",
                "acme-support",
                "--query",
                "How do I reset the password?",
                "--language",
                "en",
                "--json",
            ],
            capsys,
        )
        assert code == 0
        payload = json.loads(out)
        assert payload["metadata"]["workspace_id"] == "acme-support"
        assert payload["contexts"]
        assert payload["contexts"][0]["citation"]["filename"] == "faq.txt"

    def test_ingest(
        self, cli_env: MagicMock, faq_file: Path, capsys: pytest.CaptureFixture[str]
    ) -> None:
        code, out, _ = _run(
            [
                "--log-level",
                "DEBUG",
                "ingest",
                "--file",
                str(faq_file),
                "--document-id",
                "faq",
                "--workspace",
                "acme-support",
            ],
            capsys,
        )
        assert code == 0
        assert "Language:          en" in out
        assert "Chunks vectorized:" in out
        cli_env.assert_called_once_with(log_level="DEBUG")

    def test_workspaces(self, cli_env: MagicMock, capsys: pytest.CaptureFixture[str]) -> None:
        code, out, _ = _run(["workspaces"], capsys)
        assert code == 0
        assert "acme-support" in out
        assert "archived" in out

    def test_unknown_chunk(self, cli_env: MagicMock, capsys: pytest.CaptureFixture[str]) -> None:
        code, _, err = _run(["status", "--chunk-id", "missing::chunk::0"], capsys)
        assert code == 1
        assert "Chunk not found" in err

    def test_unknown_workspace_reports_error(
        self, cli_env: MagicMock, capsys: pytest.CaptureFixture[str]
    ) -> None:
        code, _, err = _run(["retrieve", "--workspace", "nope", "--query", "hello"], capsys)
        assert code == 1
        assert err.startswith("Error:")

    def test_missing_file_reports_error(
        self, cli_env: MagicMock, tmp_path: Path, capsys: pytest.CaptureFixture[str]
    ) -> None:
        code, _, err = _run(
            [
                "enqueue",
                "--file",
                str(tmp_path / "absent.txt"),
                "--document-id",
                "d",
                "--workspace",
                "acme-support",
            ],
            capsys,
        )
        assert code == 1
        assert "Error:" in err

    def test_retrieve_text_output(
        self, cli_env: MagicMock, faq_file: Path, capsys: pytest.CaptureFixture[str]
    ) -> None:
        _run(
            [
                "ingest",
                "--file",
                str(faq_file),
                "--document-id",
                "faq",
                "--workspace",
                "acme-support",
                "--title",
                "Password FAQ",
            ],
            capsys,
        )

        code, out, _ = _run(
            ["retrieve", "--workspace", "acme-support", "--query", "reset password", "--language", "en"],
            capsys,
        )

        assert code == 0
        assert "Workspace: Acme Support (acme-support)" in out
        assert "Password FAQ" in out
        assert "Prompt instructions:" in out
