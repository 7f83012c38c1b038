import json
import re

import pytest
from typer.testing import CliRunner

from plume_cli import utils
from plume_cli.main import app

runner = CliRunner()


@pytest.fixture(autouse=True)
def cli_env(settings, monkeypatch):
    monkeypatch.setenv("PLUME_DATABASE_URL", settings.database_url)
    monkeypatch.setenv("PLUME_QUEUE_STRATEGY", "postgres")
    monkeypatch.setattr(utils.console, "width", 200)


def enqueue(batch_id="B1"):
    payload = json.dumps({"userId": "U1", "batchId": batch_id})
    result = runner.invoke(app, ["jobs", "enqueue", "generate", "--payload", payload])
    assert result.exit_code == 0, result.output
    match = re.search(r"Queued job ([0-9a-f-]{36})", result.output)
    assert match is not None, result.output
    return match.group(1)


def test_list_empty():
    result = runner.invoke(app, ["jobs", "list"])

    assert result.exit_code == 0
    assert "No jobs found" in result.output


def test_enqueue_then_list_newest_first():
    first = enqueue("B1")
    second = enqueue("B2")

    result = runner.invoke(app, ["jobs", "list"])

    assert result.exit_code == 0
    assert "Latest 2 jobs" in result.output
    assert result.output.index(second) < result.output.index(first)
    assert "pending" in result.output


def test_list_limit_and_status_filter():
    for batch_id in ("B1", "B2", "B3"):
        enqueue(batch_id)

    limited = runner.invoke(app, ["jobs", "list", "--limit", "2"])
    assert "Latest 2 jobs" in limited.output

    completed = runner.invoke(app, ["jobs", "list", "--status", "completed"])
    assert "No jobs found" in completed.output


def test_get_job():
    job_id = enqueue()

    quiet = runner.invoke(app, ["jobs", "get", job_id, "--quiet"])
    assert quiet.exit_code == 0
    assert quiet.output.strip() == "pending"

    full = runner.invoke(app, ["jobs", "get", job_id])
    assert full.exit_code == 0
    assert '"batchId": "B1"' in full.output


def test_get_missing_job():
    result = runner.invoke(app, ["jobs", "get", "missing"])

    assert result.exit_code == 1
    assert "not found" in result.output


def test_enqueue_rejects_bad_input():
    bad_json = runner.invoke(app, ["jobs", "enqueue", "generate", "--payload", "{oops"])
    assert bad_json.exit_code == 1
    assert "Invalid payload JSON" in bad_json.output

    unknown = runner.invoke(app, ["jobs", "enqueue", "resize", "--payload", "{}"])
    assert unknown.exit_code == 1
    assert "Unknown job type" in unknown.output
