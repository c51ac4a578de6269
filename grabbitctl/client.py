import logging
from typing import Optional
from urllib.parse import urljoin

import requests
from requests.auth import HTTPBasicAuth

from .errors import HostConnectionError
from .models import Credentials

logger = logging.getLogger(__name__)

JOB_PATH = "/grabbit/job"

# (connect, read) seconds; a slow host blocks only the worker talking to it
DEFAULT_TIMEOUT = (10, 300)


def job_url(base_uri: str) -> str:
    return urljoin(base_uri, JOB_PATH)


def job_status_url(base_uri: str, job_id: int) -> str:
    return urljoin(base_uri, f"{JOB_PATH}/{job_id}.json")


def _auth(credentials: Credentials) -> HTTPBasicAuth:
    return HTTPBasicAuth(credentials.username, credentials.password)


def _send(session, method: str, url: str, **kwargs) -> str:
    # session is a requests.Session, or the requests module itself for one-off calls
    try:
        r = session.request(method, url, timeout=DEFAULT_TIMEOUT, **kwargs)
    except (requests.ConnectionError, requests.Timeout) as e:
        raise HostConnectionError(f"{e} when trying to connect to {url}", url) from e
    if not r.ok:
        raise HostConnectionError(f"{method} {url} returned HTTP {r.status_code}: {r.reason}", url)
    return r.text


def put_payload(url: str, payload: bytes, content_type: str, credentials: Credentials,
                session: Optional[requests.Session] = None) -> str:
    """PUT the payload to `url`, returning the response body."""
    logger.debug("PUT %s (%d bytes)", url, len(payload))
    return _send(session or requests, "PUT", url,
                 data=payload, headers={"Content-Type": content_type}, auth=_auth(credentials))


def get_text(url: str, credentials: Credentials, session: Optional[requests.Session] = None) -> str:
    logger.debug("GET %s", url)
    return _send(session or requests, "GET", url, auth=_auth(credentials))
