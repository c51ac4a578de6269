import json

import pytest
import requests

from grabbitctl.environment import Environment
from grabbitctl.models import Credentials, HostInfo, JobState, JobStatus, NodeType
from grabbitctl.utils import utcnow


class FakeResponse:
    def __init__(self, text="", status_code=200, reason="OK"):
        self.text = text
        self.status_code = status_code
        self.reason = reason

    @property
    def ok(self):
        return 200 <= self.status_code < 400


class FakeSession:
    """
    Stands in for requests.Session. `routes` maps (method, url) to a FakeResponse,
    an exception to raise, or a list of either consumed one call at a time.
    """

    def __init__(self, routes=None):
        self.routes = dict(routes or {})
        self.calls = []

    def request(self, method, url, **kwargs):
        self.calls.append((method, url, kwargs))
        route = self.routes.get((method, url))
        if route is None:
            raise requests.ConnectionError("Connection refused")
        if isinstance(route, list):
            route = route.pop(0)
        if isinstance(route, Exception):
            raise route
        return route


def status_body(job_id, exit_code="UNKNOWN", running=False, **extra):
    body = {
        "transactionID": 1,
        "jobExecutionId": job_id,
        "startTime": "2016-03-01T10:15:30-0700",
        "path": "/content/site",
        "timeTaken": 42,
        "jcrNodesWritten": 17,
        "exitStatus": {"exitDescription": "", "exitCode": exit_code, "running": running},
    }
    body.update(extra)
    return json.dumps(body)


def make_status(location, job_id, state):
    running = state == JobState.RUNNING
    exit_code = "EXECUTING" if running else state.value
    return JobStatus(uri=location, job_execution_id=job_id, start_time=utcnow(),
                     exit_code=exit_code, running=running)


@pytest.fixture
def credentials():
    return Credentials(username="admin", password="s3cret")


@pytest.fixture
def hosts(credentials):
    return [
        HostInfo(node_type=NodeType.PUBLISHER, base_uri="http://pub1:4503", credentials=credentials),
        HostInfo(node_type=NodeType.PUBLISHER, base_uri="http://pub2:4503", credentials=credentials),
    ]


@pytest.fixture
def environment(hosts):
    return Environment(hosts)
