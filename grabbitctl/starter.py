"""
Starts jobs on every host and collects the job ids each host hands back.

Each host gets its own future, so a host that can't be reached, or that
answers with something other than a list of ids, fails on its own without
affecting the others.
"""
import logging
import re
from concurrent.futures import Executor, Future, ThreadPoolExecutor
from typing import Iterable, Iterator, List, Optional

import requests

from .client import job_url, put_payload
from .errors import GrabbitError, ParseError
from .models import Credentials, HostInfo, JobState
from .storage import JobStatusCache

logger = logging.getLogger(__name__)

# the body returned from starting jobs looks like "[123, 125]"
JOB_IDS_PATTERN = re.compile(r"^\s*\[(?P<ids>[\d,\s]*)\]\s*$", re.MULTILINE | re.ASCII)

MAX_JOB_ID = 2 ** 63 - 1


def parse_job_ids(text: str) -> List[int]:
    m = JOB_IDS_PATTERN.fullmatch(text)
    if not m:
        raise ParseError(f"Could not parse job ids from: {text}", text)
    ids_str = m.group("ids").strip()
    if not ids_str:
        return []
    try:
        ids = [int(piece.strip()) for piece in ids_str.split(",")]
    except ValueError:
        raise ParseError(f"Could not parse job ids from: {text}", text)
    if any(job_id > MAX_JOB_ID for job_id in ids):
        raise ParseError(f"Job id out of range in: {text}", text)
    return ids


class StartedJobs:
    """The job ids of one host, available once its start request finishes."""

    def __init__(self, uri: str, future: "Future[List[int]]"):
        self.uri = uri
        self._future = future

    def job_ids(self, timeout: Optional[float] = None) -> List[int]:
        """Blocks until the host answered; raises that host's failure if it has one."""
        return self._future.result(timeout=timeout)

    def failure(self, timeout: Optional[float] = None) -> Optional[BaseException]:
        return self._future.exception(timeout=timeout)

    def __repr__(self) -> str:
        return f"StartedJobs(uri={self.uri!r})"


class JobStarter:
    def __init__(self, payload: bytes, hosts: Iterable[HostInfo],
                 content_type: str = "application/json",
                 session: Optional[requests.Session] = None,
                 executor: Optional[Executor] = None):
        self.payload = payload
        self.hosts = hosts
        self.content_type = content_type
        self.session = session
        self._executor = executor or ThreadPoolExecutor(max_workers=1, thread_name_prefix="job-starter")

    def start_jobs(self) -> Iterator[StartedJobs]:
        """
        Yields one StartedJobs per host, in host order. The request for a host is
        only submitted when the iterator reaches it.
        """
        for host in self.hosts:
            future = self._executor.submit(self._start_on_host, host.base_uri, host.credentials)
            yield StartedJobs(host.base_uri, future)

    def _start_on_host(self, base_uri: str, credentials: Credentials) -> List[int]:
        url = job_url(base_uri)
        try:
            body = put_payload(url, self.payload, self.content_type, credentials, session=self.session)
            ids = parse_job_ids(body)
        except GrabbitError as e:
            logger.warning("Could not start jobs on %s: %s", base_uri, e)
            raise
        logger.info("Started %d job(s) on %s: %s", len(ids), base_uri, ids)
        return ids


def start_jobs(payload: bytes, hosts: Iterable[HostInfo], **kwargs) -> Iterator[StartedJobs]:
    return JobStarter(payload, hosts, **kwargs).start_jobs()


def seed_cache(cache: JobStatusCache, started: Iterable[StartedJobs],
               timeout: Optional[float] = None) -> List[StartedJobs]:
    """
    Records every started job as RUNNING. Returns the hosts whose start failed;
    their jobs are simply not in the cache.
    """
    failed = []
    for host_jobs in started:
        if host_jobs.failure(timeout=timeout) is not None:
            failed.append(host_jobs)
            continue
        for job_id in host_jobs.job_ids():
            cache.put_state(host_jobs.uri, job_id, JobState.RUNNING)
    return failed
