import json
import threading

import pytest
import requests
from typer.testing import CliRunner

from grabbitctl.cli import app
from grabbitctl.models import DEFAULTS

from conftest import FakeResponse, status_body

runner = CliRunner()

ENVIRONMENTS = {
    "test": {
        "username": "admin",
        "password": "admin",
        "protocol": "http",
        "publishers": {"pub1": 4503, "pub2": 4503},
    }
}


@pytest.fixture
def files(tmp_path):
    env_conf = tmp_path / "env.json"
    env_conf.write_text(json.dumps(ENVIRONMENTS), encoding="utf-8")
    jobs_conf = tmp_path / "jobs.json"
    jobs_conf.write_text(json.dumps({"clientNodeType": "publisher", "pathConfigurations": []}),
                         encoding="utf-8")
    return tmp_path, env_conf, jobs_conf


@pytest.fixture
def routes(monkeypatch):
    """(method, url) -> FakeResponse or exception, served through requests.request."""
    table = {}

    def fake_request(method, url, **kwargs):
        route = table.get((method, url))
        if route is None:
            raise requests.ConnectionError("Connection refused")
        if isinstance(route, list):
            route = route.pop(0)
        if isinstance(route, Exception):
            raise route
        return route

    monkeypatch.setattr(requests, "request", fake_request)
    return table


def test_start_prints_job_ids_and_isolates_failed_host(files, routes):
    tmp_path, env_conf, jobs_conf = files
    routes[("PUT", "http://pub1:4503/grabbit/job")] = FakeResponse("[1, 2]")

    result = runner.invoke(app, ["start", str(jobs_conf), str(env_conf), "test"])

    assert result.exit_code == 1
    assert "http://pub1:4503, 1" in result.output
    assert "http://pub1:4503, 2" in result.output
    assert "Could not start jobs on http://pub2:4503" in result.output


def test_start_and_monitor(files, routes):
    tmp_path, env_conf, jobs_conf = files
    cache_file = tmp_path / "grabbitIds.out"
    routes[("PUT", "http://pub1:4503/grabbit/job")] = FakeResponse("[7]")
    routes[("PUT", "http://pub2:4503/grabbit/job")] = FakeResponse("[8]")
    routes[("GET", "http://pub1:4503/grabbit/job/7.json")] = [
        FakeResponse(status_body(7, exit_code="EXECUTING", running=True)),
        FakeResponse(status_body(7, exit_code="COMPLETED")),
    ]
    routes[("GET", "http://pub2:4503/grabbit/job/8.json")] = FakeResponse(status_body(8, exit_code="FAILED"))

    result = runner.invoke(app, ["start", str(jobs_conf), str(env_conf), "test", "--monitor",
                                 "--cache-file", str(cache_file), "--poll-interval-ms", "1"])

    assert result.exit_code == 0, result.output
    assert "Polling Grabbit job 7 on http://pub1:4503" in result.output
    assert "Sleeping for 1 ms" in result.output
    assert "COMPLETED" in result.output
    assert "FAILED" in result.output
    assert "Finished monitoring" in result.output
    assert cache_file.read_text(encoding="utf-8") == (
        "http://pub1:4503,7,COMPLETED\n"
        "http://pub2:4503,8,FAILED\n"
    )


def test_monitor_resumes_from_cache_file(files, routes):
    tmp_path, env_conf, _ = files
    cache_file = tmp_path / "ids.out"
    cache_file.write_text("http://pub1:4503,7,RUNNING\nhttp://pub2:4503,8,COMPLETED\n", encoding="utf-8")
    routes[("GET", "http://pub1:4503/grabbit/job/7.json")] = FakeResponse(status_body(7, exit_code="COMPLETED"))

    result = runner.invoke(app, ["monitor", str(env_conf), "test", str(cache_file)])

    assert result.exit_code == 0, result.output
    assert "Polling Grabbit job 7 on http://pub1:4503" in result.output
    assert "job 8" not in result.output
    assert cache_file.read_text(encoding="utf-8").startswith("http://pub1:4503,7,COMPLETED\n")


def test_monitor_poll_failure_exits_non_zero(files, routes):
    tmp_path, env_conf, _ = files
    cache_file = tmp_path / "ids.out"
    cache_file.write_text("http://pub1:4503,7,RUNNING\n", encoding="utf-8")

    result = runner.invoke(app, ["monitor", str(env_conf), "test", str(cache_file)])

    assert result.exit_code == 1
    assert "when trying to connect to http://pub1:4503/grabbit/job/7.json" in result.output


def test_monitor_missing_cache_file(files):
    tmp_path, env_conf, _ = files
    result = runner.invoke(app, ["monitor", str(env_conf), "test", str(tmp_path / "nope.out")])

    assert result.exit_code == 1
    assert "does not exist" in result.output


def test_unknown_environment(files):
    tmp_path, env_conf, jobs_conf = files
    result = runner.invoke(app, ["start", str(jobs_conf), str(env_conf), "prod"])

    assert result.exit_code == 1
    assert 'Can not find "prod"' in result.output


def test_host_that_never_answers_is_reported_not_raised(files, monkeypatch):
    tmp_path, env_conf, jobs_conf = files
    env_conf.write_text(json.dumps({"test": dict(ENVIRONMENTS["test"], publishers={"pub1": 4503})}),
                        encoding="utf-8")
    release = threading.Event()

    def slow_response(method, url, **kwargs):
        release.wait(5)
        return FakeResponse("[1]")

    monkeypatch.setitem(DEFAULTS, "host_start_timeout_s", 0.05)
    monkeypatch.setattr(requests, "request", slow_response)
    try:
        result = runner.invoke(app, ["start", str(jobs_conf), str(env_conf), "test"])
    finally:
        release.set()

    assert result.exit_code == 1
    assert isinstance(result.exception, SystemExit)
    assert "TimeoutError" in result.output
