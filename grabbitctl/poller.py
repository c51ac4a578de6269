import logging
from typing import Optional, Protocol

import requests

from .client import get_text, job_status_url
from .environment import Environment
from .models import JobStatus

logger = logging.getLogger(__name__)


class JobStatusPoller(Protocol):
    def poll_job_status(self, location: str, job_id: int) -> JobStatus:
        ...


class RemoteJobStatusPoller:
    """Asks the host at `location` for the status of a job over HTTP."""

    def __init__(self, environment: Environment, session: Optional[requests.Session] = None):
        self.environment = environment
        self.session = session

    def poll_job_status(self, location: str, job_id: int) -> JobStatus:
        credentials = self.environment.credentials_for(location)
        body = get_text(job_status_url(location, job_id), credentials, session=self.session)
        status = JobStatus.from_json(location, body)
        logger.debug("Job %s on %s is %s", job_id, location, status.state().value)
        return status
