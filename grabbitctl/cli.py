import concurrent.futures
from pathlib import Path
from typing import List, Optional

import typer
from rich.console import Console

from .config import JobsConfigFile, resolve_poll_interval
from .environment import Environment, load_environment
from .errors import GrabbitError
from .events import (
    CompletedJobsMonitoringEvent,
    EndMonitoringEvent,
    FailedJobsMonitoringEvent,
    MonitoringEvent,
    SleepMonitoringEvent,
)
from .logging_config import configure_logging
from .models import DEFAULTS
from .monitor import build_monitor
from .starter import StartedJobs, seed_cache, start_jobs
from .storage import FileJobStatusCache, JobStatusCache

app = typer.Typer(help="grabbitctl - start Grabbit content sync jobs and monitor them to completion.")

console = Console()
err_console = Console(stderr=True)

# before 3.11 futures time out with their own TimeoutError
HANDLED_ERRORS = (GrabbitError, OSError, TimeoutError, concurrent.futures.TimeoutError)

EVENT_STYLES = {
    CompletedJobsMonitoringEvent: "green",
    FailedJobsMonitoringEvent: "red",
    SleepMonitoringEvent: "dim",
    EndMonitoringEvent: "bold",
}


def _print_event(event: MonitoringEvent) -> None:
    console.print(str(event), style=EVENT_STYLES.get(type(event)), markup=False, highlight=False, soft_wrap=True)


def _report_failed_hosts(failed: List[StartedJobs]) -> None:
    for host_jobs in failed:
        err_console.print(f"Could not start jobs on {host_jobs.uri}: {host_jobs.failure()}",
                          style="red", markup=False, highlight=False, soft_wrap=True)


def _started(jobs_conf: Path, environment: Environment) -> List[StartedJobs]:
    jobs_config = JobsConfigFile(jobs_conf)
    hosts = environment.hosts_of_type(jobs_config.node_type())
    if not hosts:
        raise GrabbitError(f"No {jobs_config.node_type().value.lower()} hosts in the environment")
    return list(start_jobs(jobs_config.payload(), hosts, content_type=jobs_config.content_type))


def _monitor(cache: JobStatusCache, environment: Environment, poll_interval_ms: Optional[int]) -> None:
    monitor = build_monitor(cache, environment=environment,
                            poll_interval_ms=resolve_poll_interval(poll_interval_ms))
    monitor.monitor(timeout=float(DEFAULTS["monitor_timeout_s"])).drain(_print_event)


def _fail(e: Exception) -> typer.Exit:
    err_console.print(f"{type(e).__name__}: {e}", style="red", markup=False, highlight=False, soft_wrap=True)
    return typer.Exit(1)


@app.command()
def start(
    jobs_conf: Path = typer.Argument(..., help="Grabbit job configuration file sent to every host"),
    env_conf: Path = typer.Argument(..., help="Environments file (YAML or JSON)"),
    env: str = typer.Argument(..., help="Name of the environment to use"),
    monitor: bool = typer.Option(False, "--monitor", "-m", help="Monitor the jobs until none is running"),
    cache_file: Path = typer.Option(Path(DEFAULTS["cache_file"]), "--cache-file",
                                    help="Where the job ids are recorded when monitoring"),
    poll_interval_ms: Optional[int] = typer.Option(None, "--poll-interval-ms",
                                                   help="Time between polls (default 15000)"),
    verbose: bool = typer.Option(False, "--verbose", "-v"),
):
    """Start jobs on every host of the node type named in the job configuration."""
    configure_logging(verbose)
    try:
        environment = load_environment(env_conf, env)
        started = _started(jobs_conf, environment)
        host_timeout = float(DEFAULTS["host_start_timeout_s"])
        if monitor:
            cache = FileJobStatusCache.create_empty(cache_file)
            failed = seed_cache(cache, started, timeout=host_timeout)
            _report_failed_hosts(failed)
            _monitor(cache, environment, poll_interval_ms)
        else:
            failed = []
            for host_jobs in started:
                if host_jobs.failure(timeout=host_timeout) is not None:
                    failed.append(host_jobs)
                    continue
                for job_id in host_jobs.job_ids():
                    console.print(f"{host_jobs.uri}, {job_id}", markup=False, highlight=False, soft_wrap=True)
            _report_failed_hosts(failed)
    except HANDLED_ERRORS as e:
        raise _fail(e)
    if failed:
        raise typer.Exit(1)


@app.command("monitor")
def monitor_cmd(
    env_conf: Path = typer.Argument(..., help="Environments file (YAML or JSON)"),
    env: str = typer.Argument(..., help="Name of the environment to use"),
    cache_file: Path = typer.Argument(..., help="Job ids file written by `start --monitor`"),
    poll_interval_ms: Optional[int] = typer.Option(None, "--poll-interval-ms",
                                                   help="Time between polls (default 15000)"),
    verbose: bool = typer.Option(False, "--verbose", "-v"),
):
    """Resume monitoring the jobs recorded in a job ids file."""
    configure_logging(verbose)
    try:
        cache = FileJobStatusCache.open(cache_file)
        environment = load_environment(env_conf, env)
        _monitor(cache, environment, poll_interval_ms)
    except HANDLED_ERRORS as e:
        raise _fail(e)


def main() -> None:
    app()


if __name__ == "__main__":
    main()
