import base64
import json
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional, Tuple

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .errors import ParseError
from .utils import format_timestamp, parse_timestamp, utcnow


class JobState(str, Enum):
    RUNNING = "RUNNING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    UNKNOWN = "UNKNOWN"


class HostJobState(BaseModel):
    """Last known state of one job on one host, keyed by (location, job_id)."""
    model_config = ConfigDict(frozen=True)

    location: str
    job_id: int
    state: JobState

    @property
    def key(self) -> Tuple[str, int]:
        return self.location, self.job_id


class NodeType(str, Enum):
    AUTHOR = "AUTHOR"
    PUBLISHER = "PUBLISHER"


class Credentials(BaseModel):
    model_config = ConfigDict(frozen=True)

    username: str
    password: str = Field(repr=False)

    def basic_auth_encode(self) -> str:
        """Base-64 encode the username and password for HTTP Basic authentication."""
        raw = f"{self.username}:{self.password}".encode("utf-8")
        return base64.b64encode(raw).decode("ascii")


class HostInfo(BaseModel):
    model_config = ConfigDict(frozen=True)

    node_type: NodeType
    base_uri: str
    credentials: Credentials


MISSING_PATH = "/MISSING_PATH"


class JobStatus(BaseModel):
    """Snapshot of a job as reported by the status endpoint of a host."""
    model_config = ConfigDict(frozen=True)

    uri: str
    transaction_id: int = -1
    job_execution_id: int = -1
    start_time: datetime
    end_time: Optional[datetime] = None
    path: str = MISSING_PATH
    time_taken: int = -1
    jcr_nodes_written: int = -1
    exit_description: str = ""
    exit_code: str = "UNKNOWN"
    running: bool = False

    @classmethod
    def from_json(cls, uri: str, text: Optional[str]) -> "JobStatus":
        """
        Parse a status body. Missing fields fall back to defaults so a partial
        body still yields a snapshot; a body that isn't an object does not.
        """
        body = text if text and text.strip() else "{}"
        try:
            data = json.loads(body)
        except ValueError:
            try:
                # YAML tolerates the sloppier, not-quite-JSON bodies some hosts return
                data = yaml.safe_load(body)
            except yaml.YAMLError as e:
                raise ParseError(f"Could not parse job status from {uri}: {e}", text) from e
        if not isinstance(data, dict):
            raise ParseError(f"Job status from {uri} is not an object: {body}", text)

        exit_status = data.get("exitStatus") or {}
        if not isinstance(exit_status, dict):
            raise ParseError(f"exitStatus from {uri} is not an object: {body}", text)

        try:
            start_raw = data.get("startTime")
            end_raw = data.get("endTime")
            return cls(
                uri=uri,
                transaction_id=_or_default(data.get("transactionID"), -1),
                job_execution_id=_or_default(data.get("jobExecutionId"), -1),
                start_time=_timestamp(start_raw) if start_raw is not None else utcnow(),
                end_time=_timestamp(end_raw) if end_raw is not None else None,
                path=_or_default(data.get("path"), MISSING_PATH),
                time_taken=_or_default(data.get("timeTaken"), -1),
                jcr_nodes_written=_or_default(data.get("jcrNodesWritten"), -1),
                exit_description=_or_default(exit_status.get("exitDescription"), ""),
                exit_code=_or_default(exit_status.get("exitCode"), "UNKNOWN"),
                running=_or_default(exit_status.get("running"), False),
            )
        except (ValueError, ValidationError) as e:
            raise ParseError(f"Invalid job status from {uri}: {e}", text) from e

    def state(self) -> JobState:
        if self.running:
            return JobState.RUNNING
        code = str(self.exit_code).upper()
        if code == "COMPLETED":
            return JobState.COMPLETED
        if code == "FAILED":
            return JobState.FAILED
        return JobState.UNKNOWN

    def as_json(self) -> str:
        body: Dict[str, Any] = {
            "transactionID": self.transaction_id,
            "jobExecutionId": self.job_execution_id,
            "jcrNodesWritten": self.jcr_nodes_written,
            "exitStatus": {
                "exitDescription": self.exit_description,
                "exitCode": self.exit_code,
                "running": self.running,
            },
            "timeTaken": self.time_taken,
            "path": self.path,
            "startTime": format_timestamp(self.start_time),
        }
        if self.end_time is not None:
            body["endTime"] = format_timestamp(self.end_time)
        return json.dumps(body)


def _or_default(value: Any, default: Any) -> Any:
    # a null field counts as missing
    return default if value is None else value


def _timestamp(value: Any) -> datetime:
    # yaml.safe_load turns unquoted ISO timestamps into datetimes already
    if isinstance(value, datetime):
        return value
    return parse_timestamp(str(value))


DEFAULTS = {
    "poll_interval_ms": 15000,
    "cache_file": "grabbitIds.out",
    "host_start_timeout_s": 5 * 60,
    "monitor_timeout_s": 30 * 24 * 60 * 60,
}
