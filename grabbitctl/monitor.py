# grabbitctl/monitor.py
import logging
import queue
import time
from concurrent.futures import Executor, ThreadPoolExecutor
from typing import Callable, Iterator, List, Optional

import requests

from .environment import Environment
from .events import (
    CompletedJobsMonitoringEvent,
    EndMonitoringEvent,
    FailedJobsMonitoringEvent,
    MonitoringEvent,
    PollingMonitoringEvent,
    SleepMonitoringEvent,
    StartMonitoringEvent,
)
from .models import DEFAULTS, JobState, JobStatus
from .poller import JobStatusPoller, RemoteJobStatusPoller
from .storage import JobStatusCache
from .utils import utcnow

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL_MS = int(DEFAULTS["poll_interval_ms"])

_DONE = object()


class _Failure:
    def __init__(self, error: Exception):
        self.error = error


class MonitoringEvents:
    """
    The events of one monitoring run, fed by the monitor's worker thread.

    Iterating blocks until the next event arrives; the iteration ends after the
    End event, or re-raises the error that aborted the run.
    """

    def __init__(self, events: "queue.Queue", timeout: Optional[float] = None):
        self._queue = events
        self.timeout = timeout if timeout is not None else float(DEFAULTS["monitor_timeout_s"])

    def __iter__(self) -> Iterator[MonitoringEvent]:
        deadline = time.monotonic() + self.timeout
        while True:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                raise TimeoutError(f"Monitoring did not finish within {self.timeout}s")
            try:
                item = self._queue.get(timeout=remaining)
            except queue.Empty:
                raise TimeoutError(f"Monitoring did not finish within {self.timeout}s")
            if item is _DONE:
                return
            if isinstance(item, _Failure):
                raise item.error
            yield item

    def drain(self, on_event: Optional[Callable[[MonitoringEvent], None]] = None) -> List[MonitoringEvent]:
        """Consume the whole stream, handing each event to `on_event`."""
        seen = []
        for event in self:
            if on_event is not None:
                on_event(event)
            seen.append(event)
        return seen


class PollingJobMonitor:
    """
    As long as the cache has RUNNING jobs, poll them at a regular interval and
    publish what happened as MonitoringEvents.
    """

    def __init__(self, cache: JobStatusCache, poller: JobStatusPoller,
                 poll_interval_ms: Optional[int] = None,
                 executor: Optional[Executor] = None,
                 sleep: Callable[[float], None] = time.sleep):
        self.cache = cache
        self.poller = poller
        self.poll_interval_ms = poll_interval_ms if poll_interval_ms and poll_interval_ms > 0 \
            else DEFAULT_POLL_INTERVAL_MS
        self._executor = executor
        self._sleep = sleep

    @classmethod
    def for_environment(cls, cache: JobStatusCache, environment: Environment,
                        session: Optional[requests.Session] = None, **kwargs) -> "PollingJobMonitor":
        return cls(cache, RemoteJobStatusPoller(environment, session=session), **kwargs)

    def monitor(self, timeout: Optional[float] = None) -> MonitoringEvents:
        """Start the run on the background worker and return its event stream."""
        events: "queue.Queue" = queue.Queue()
        owned = self._executor is None
        executor = self._executor or ThreadPoolExecutor(max_workers=1, thread_name_prefix="job-monitor")
        executor.submit(self._run_to_queue, events, executor if owned else None)
        return MonitoringEvents(events, timeout)

    def _run_to_queue(self, events: "queue.Queue", owned_executor: Optional[Executor]) -> None:
        try:
            self.run(events.put)
        except Exception as e:
            logger.error("Monitoring aborted: %s", e)
            events.put(_Failure(e))
        else:
            events.put(_DONE)
        finally:
            if owned_executor is not None:
                owned_executor.shutdown(wait=False)

    def run(self, emit: Callable[[MonitoringEvent], None]) -> None:
        """Run the whole polling loop on the calling thread."""
        started_at = utcnow()
        emit(StartMonitoringEvent(started_at))
        sweeps = 0
        while True:
            sweeps += 1
            results = self._sweep(emit)
            emit(CompletedJobsMonitoringEvent(_of_state(results, JobState.COMPLETED)))
            emit(FailedJobsMonitoringEvent(_of_state(results, JobState.FAILED)))
            if not any(s.state() == JobState.RUNNING for s in results):
                break
            emit(SleepMonitoringEvent(self.poll_interval_ms))
            self._sleep(self.poll_interval_ms / 1000.0)
        finished_at = utcnow()
        logger.info("No running jobs left after %d sweep(s)", sweeps)
        emit(EndMonitoringEvent(started_at, finished_at))

    def _sweep(self, emit: Callable[[MonitoringEvent], None]) -> List[JobStatus]:
        results = []
        # entries added while sweeping wait for the next sweep
        for entry in self.cache.running():
            emit(PollingMonitoringEvent(entry.location, entry.job_id))
            status = self.poller.poll_job_status(entry.location, entry.job_id)
            self.cache.put_state(entry.location, entry.job_id, status.state())
            results.append(status)
        return results


def _of_state(results: List[JobStatus], state: JobState) -> tuple:
    return tuple(s for s in results if s.state() == state)


def build_monitor(cache: JobStatusCache, poller: Optional[JobStatusPoller] = None,
                  environment: Optional[Environment] = None, **kwargs) -> PollingJobMonitor:
    """
    Either `poller` or `environment` is required; with only an environment the
    monitor polls the hosts over HTTP.
    """
    if poller is not None:
        return PollingJobMonitor(cache, poller, **kwargs)
    if environment is not None:
        return PollingJobMonitor.for_environment(cache, environment, **kwargs)
    raise ValueError("Need to provide either a job status poller or an environment")
