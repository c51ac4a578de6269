# grabbitctl/storage.py
import logging
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Tuple, Union

from .errors import CacheFormatError, ConfigError
from .models import HostJobState, JobState

logger = logging.getLogger(__name__)


class JobStatusCache:
    """
    In-memory map of (location, job id) to the last known job state.

    Only one writer at a time: the caller seeds it before monitoring starts,
    then the monitor's worker is the sole writer for the rest of the run.
    """

    def __init__(self, entries: Iterable[HostJobState] = ()):
        self._entries: Dict[Tuple[str, int], HostJobState] = {}
        for entry in entries:
            self._entries[entry.key] = entry

    def entries(self) -> List[HostJobState]:
        return list(self._entries.values())

    def running(self) -> List[HostJobState]:
        return [e for e in self._entries.values() if e.state == JobState.RUNNING]

    def __len__(self) -> int:
        return len(self._entries)

    def put(self, entry: HostJobState) -> Optional[HostJobState]:
        """
        Puts the entry in the cache, returning the entry it replaces (None if the
        location/job id combination is new). An entry with an unchanged state is
        left alone.
        """
        existing = self._entries.get(entry.key)
        if existing is None or existing.state != entry.state:
            self._entries[entry.key] = entry
            self._changed(entry, existing)
        return existing

    def put_state(self, location: str, job_id: int, state: JobState) -> Optional[HostJobState]:
        return self.put(HostJobState(location=location, job_id=job_id, state=state))

    def _changed(self, entry: HostJobState, previous: Optional[HostJobState]) -> None:
        pass


class FileJobStatusCache(JobStatusCache):
    """
    Cache persisted as one "<uri>,<jobId>,<STATE>" line per entry.

    The whole file is rewritten whenever an entry is added or changes state, so
    monitoring can be resumed from it after a restart.
    """

    def __init__(self, path: Union[str, Path], entries: Iterable[HostJobState] = ()):
        super().__init__(entries)
        self.path = Path(path)

    @classmethod
    def open(cls, path: Union[str, Path]) -> "FileJobStatusCache":
        p = Path(path)
        if not p.is_file():
            raise ConfigError(f'"{p.resolve()}" does not exist')
        return cls(p, read_entries(p))

    @classmethod
    def create_empty(cls, path: Union[str, Path]) -> "FileJobStatusCache":
        p = Path(path)
        p.unlink(missing_ok=True)
        p.touch()
        return cls(p)

    def _changed(self, entry: HostJobState, previous: Optional[HostJobState]) -> None:
        self._write_file()

    def _write_file(self) -> None:
        write_entries(self.path, self._entries.values())
        logger.debug("Wrote %d entries to %s", len(self._entries), self.path)


def format_entry(entry: HostJobState) -> str:
    return f"{entry.location},{entry.job_id},{entry.state.value}"


def parse_entry(line: str, path: str = "<string>", line_no: int = 1) -> HostJobState:
    parts = [p.strip() for p in line.split(",")]
    if len(parts) != 3:
        raise CacheFormatError("expected <uri>,<jobId>,<STATE>", path, line_no, line)
    location, job_id, state = parts
    if not location:
        raise CacheFormatError("empty location", path, line_no, line)
    try:
        job_id_no = int(job_id)
    except ValueError:
        raise CacheFormatError(f"invalid job id {job_id!r}", path, line_no, line)
    if state not in JobState.__members__:
        raise CacheFormatError(f"unknown state {state!r}", path, line_no, line)
    return HostJobState(location=location, job_id=job_id_no, state=JobState[state])


def read_entries(path: Union[str, Path]) -> List[HostJobState]:
    """Any malformed line fails the whole read."""
    p = Path(path)
    try:
        text = p.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f'Could not read "{p.resolve()}": {e}') from e
    entries = []
    for line_no, line in enumerate(text.splitlines(), start=1):
        if not line.strip():
            continue
        entries.append(parse_entry(line, str(p), line_no))
    return entries


def write_entries(path: Union[str, Path], entries: Iterable[HostJobState]) -> None:
    with open(path, "w", encoding="utf-8", newline="\n") as f:
        for entry in entries:
            f.write(format_entry(entry) + "\n")
