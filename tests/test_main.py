# ABOUTME: Tests for the echograph CLI commands
# ABOUTME: Uses the asyncclick test runner with the pipeline service replaced by a stub

import json
from unittest.mock import patch

import pytest
from asyncclick.testing import CliRunner
from fakes import make_unique
from loguru import logger as loguru_logger

import echograph.config as config_module
from echograph.config import Config, get_config
from echograph.core.pipeline import RunResult
from echograph.core.state import PipelineState
from echograph.errors import SourceLoadError
from echograph.main import app, build_run_request
from echograph.persistence import DatabaseManager
from echograph.stages.export import build_snapshot
from echograph.utils.concurrency import LimiterStats

SOURCE = "https://news.example.com/politics"


@pytest.fixture(autouse=True)
def _isolated_cli(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("ECHOGRAPH_DATABASE_URL", f"sqlite+aiosqlite:///{tmp_path / 'cli.db'}")
    config_module._config_instance = None
    yield
    config_module._config_instance = None
    loguru_logger.remove()


class StubPipelineService:
    requests: list = []
    error: Exception | None = None

    def __init__(self, config=None, output_dir=None):
        self.output_dir = output_dir

    async def run(self, request):
        StubPipelineService.requests.append(request)
        if StubPipelineService.error is not None:
            raise StubPipelineService.error
        state = PipelineState(config=request.config, unique_quotes=[make_unique("We will fix the roads.")])
        return RunResult(
            state=state, snapshot=build_snapshot(state, {"succeeded": 4}), snapshot_path=None, limiter_stats=LimiterStats()
        )

    async def close(self):
        return None


@pytest.fixture
def stub_service():
    StubPipelineService.requests = []
    StubPipelineService.error = None
    with patch("echograph.core.pipeline.QuotePipelineService", StubPipelineService):
        yield StubPipelineService


@pytest.mark.asyncio
async def test_main_command_help():
    runner = CliRunner()
    result = await runner.invoke(app, ["--help"])

    assert result.exit_code == 0
    assert "echograph" in result.output
    assert "add-source" in result.output


@pytest.mark.asyncio
async def test_logging_status():
    runner = CliRunner()
    result = await runner.invoke(app, ["logging-status"])

    assert result.exit_code == 0
    assert "Logging Configuration" in result.output


@pytest.mark.asyncio
async def test_run_renders_summary(stub_service):
    runner = CliRunner()
    result = await runner.invoke(app, ["run", "-s", SOURCE, "--threshold", "0.9", "--run-id", "run-cli"])

    assert result.exit_code == 0, result.output
    assert "Run Summary" in result.output
    assert "run-cli" in result.output

    [request] = stub_service.requests
    assert request.sources == [SOURCE]
    assert request.config.similarity_threshold == 0.9
    assert request.config.run_id == "run-cli"


@pytest.mark.asyncio
async def test_run_with_request_file_and_json_output(stub_service, tmp_path):
    request_file = tmp_path / "request.json"
    request_file.write_text(
        json.dumps({"sources": [SOURCE], "config": {"similarityThreshold": 0.9, "maxRetries": 4, "runId": "run-file"}})
    )

    runner = CliRunner()
    result = await runner.invoke(
        app, ["--json", "--log-level", "ERROR", "run", "--request", str(request_file), "--max-retries", "2"]
    )

    assert result.exit_code == 0, result.output
    output = json.loads(result.output)
    assert output["run_id"] == "run-file"
    assert output["stats"]["unique_quotes"] == 1

    [request] = stub_service.requests
    assert request.sources == [SOURCE]
    assert request.config.similarity_threshold == 0.9
    assert request.config.max_retries == 2


@pytest.mark.asyncio
async def test_run_with_invalid_request_file(stub_service, tmp_path):
    request_file = tmp_path / "request.json"
    request_file.write_text(json.dumps({"config": {"similarityThreshold": 3}}))

    runner = CliRunner()
    result = await runner.invoke(app, ["run", "--request", str(request_file)])

    assert result.exit_code == 2
    assert stub_service.requests == []


@pytest.mark.asyncio
async def test_run_fails_when_sources_cannot_be_loaded(stub_service):
    stub_service.error = SourceLoadError("Could not load monitored sources: locked")

    runner = CliRunner()
    result = await runner.invoke(app, ["run"])

    assert result.exit_code == 1
    assert "Could not load monitored sources" in result.output


@pytest.mark.asyncio
async def test_add_and_list_sources():
    runner = CliRunner()

    added = await runner.invoke(app, ["add-source", SOURCE])
    assert added.exit_code == 0, added.output
    assert "Monitoring" in added.output

    listed = await runner.invoke(app, ["--json", "--log-level", "ERROR", "list-sources"])
    assert listed.exit_code == 0, listed.output
    [source] = json.loads(listed.output)
    assert source["url"] == SOURCE
    assert source["active"] is True


@pytest.mark.asyncio
async def test_add_source_rejects_non_http_urls():
    runner = CliRunner()
    result = await runner.invoke(app, ["add-source", "ftp://news.example.com"])

    assert result.exit_code == 2


@pytest.mark.asyncio
async def test_remove_source_keeps_it_listed_as_inactive():
    runner = CliRunner()
    await runner.invoke(app, ["add-source", SOURCE])

    removed = await runner.invoke(app, ["remove-source", SOURCE])
    assert removed.exit_code == 0, removed.output
    assert "Stopped monitoring" in removed.output

    listed = await runner.invoke(app, ["--json", "--log-level", "ERROR", "list-sources"])
    [source] = json.loads(listed.output)
    assert source["active"] is False


@pytest.mark.asyncio
async def test_remove_unknown_source_fails():
    runner = CliRunner()
    result = await runner.invoke(app, ["remove-source", SOURCE])

    assert result.exit_code == 1


@pytest.mark.asyncio
async def test_list_quotes_without_staged_quotes():
    runner = CliRunner()

    rendered = await runner.invoke(app, ["list-quotes"])
    assert rendered.exit_code == 0, rendered.output
    assert "No staged quotes" in rendered.output

    as_json = await runner.invoke(app, ["--json", "--log-level", "ERROR", "list-quotes"])
    assert json.loads(as_json.output) == []


@pytest.mark.asyncio
async def test_list_quotes_filters_by_run():
    db = DatabaseManager(get_config().database_url)
    try:
        await db.create_tables()
        await db.insert_quotes([make_unique("We will fix the roads.")], run_id="run-1")
        await db.insert_quotes([make_unique("Taxes stay flat.")], run_id="run-2")
    finally:
        await db.close()
    config_module._config_instance = None

    runner = CliRunner()
    result = await runner.invoke(app, ["--json", "--log-level", "ERROR", "list-quotes", "--run-id", "run-2"])

    assert result.exit_code == 0, result.output
    [row] = json.loads(result.output)
    assert row["quote_raw"] == "Taxes stay flat."
    assert row["run_id"] == "run-2"


def _write_request(tmp_path, config: dict):
    request_file = tmp_path / "request.json"
    request_file.write_text(json.dumps({"sources": [SOURCE], "config": config}))
    return request_file


NO_FLAGS = {"similarity_threshold": None, "max_concurrent": None, "max_retries": None, "run_id": None}


def test_build_run_request_keeps_request_file_values_when_flags_are_omitted(tmp_path):
    request_file = _write_request(tmp_path, {"similarityThreshold": 0.9, "maxConcurrent": 2, "runId": "run-file"})

    request = build_run_request(Config(), (), request_file, NO_FLAGS)

    assert request.sources == [SOURCE]
    assert request.config.similarity_threshold == 0.9
    assert request.config.max_concurrent == 2
    assert request.config.run_id == "run-file"
    assert request.config.max_retries == Config().max_retries


def test_build_run_request_flags_win_over_request_file(tmp_path):
    request_file = _write_request(tmp_path, {"similarityThreshold": 0.9, "maxConcurrent": 2})

    request = build_run_request(
        Config(), ("https://news.example.com/world",), request_file, {**NO_FLAGS, "max_concurrent": 7}
    )

    assert request.sources == ["https://news.example.com/world"]
    assert request.config.similarity_threshold == 0.9
    assert request.config.max_concurrent == 7
