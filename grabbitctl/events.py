"""
Events published while monitoring jobs, in the order the monitor emits them:

    Start
    (Polling* CompletedJobs FailedJobs Sleep?)+
    End

Events are immutable; `str(event)` is what the CLI prints.
"""
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import ClassVar, Tuple, Union

from .models import JobStatus
from .utils import utcnow


@dataclass(frozen=True)
class StartMonitoringEvent:
    kind: ClassVar[str] = "start"
    started_at: datetime = field(default_factory=utcnow)

    def __str__(self) -> str:
        return f"Started monitoring at {self.started_at.isoformat()}"


@dataclass(frozen=True)
class PollingMonitoringEvent:
    kind: ClassVar[str] = "polling"
    location: str
    job_id: int

    def __str__(self) -> str:
        return f"Polling Grabbit job {self.job_id} on {self.location}"


@dataclass(frozen=True)
class JobStatusMonitoringEvent:
    """One job's status, rendered inside the completed/failed reports."""
    kind: ClassVar[str] = "job_status"
    status: JobStatus

    def __str__(self) -> str:
        s = self.status
        return "\n".join([
            f"job: {s.job_execution_id}",
            f"startTime: {s.start_time.isoformat()}",
            f"path: {s.path}",
            f"status: {s.exit_code}",
            f"running: {str(s.running).lower()}",
            f"timeTaken: {s.time_taken}",
            f"jcrNodesWritten: {s.jcr_nodes_written}",
            "---",
        ])


def _report(title: str, jobs: Tuple[JobStatus, ...]) -> str:
    lines = ["", f" {title} ".center(54, "=")]
    lines.extend(str(JobStatusMonitoringEvent(job)) for job in jobs)
    return "\n".join(lines)


@dataclass(frozen=True)
class CompletedJobsMonitoringEvent:
    """Jobs seen COMPLETED in the last sweep. May be empty."""
    kind: ClassVar[str] = "completed_jobs"
    jobs: Tuple[JobStatus, ...] = ()

    def __str__(self) -> str:
        return _report("COMPLETED", self.jobs)


@dataclass(frozen=True)
class FailedJobsMonitoringEvent:
    """Jobs seen FAILED in the last sweep. May be empty."""
    kind: ClassVar[str] = "failed_jobs"
    jobs: Tuple[JobStatus, ...] = ()

    def __str__(self) -> str:
        return _report("FAILED", self.jobs)


@dataclass(frozen=True)
class SleepMonitoringEvent:
    kind: ClassVar[str] = "sleep"
    sleep_ms: int

    def __str__(self) -> str:
        return "\n" + f" Sleeping for {self.sleep_ms} ms ".center(54, "=")


@dataclass(frozen=True)
class EndMonitoringEvent:
    kind: ClassVar[str] = "end"
    started_at: datetime
    finished_at: datetime

    @property
    def elapsed(self) -> timedelta:
        return self.finished_at - self.started_at

    def __str__(self) -> str:
        return (f"Finished monitoring at {self.finished_at.isoformat()} "
                f"(started {self.started_at.isoformat()}, took {self.elapsed})")


MonitoringEvent = Union[
    StartMonitoringEvent,
    PollingMonitoringEvent,
    CompletedJobsMonitoringEvent,
    FailedJobsMonitoringEvent,
    SleepMonitoringEvent,
    EndMonitoringEvent,
]
