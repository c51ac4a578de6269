import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml

from .errors import ConfigError
from .models import DEFAULTS, NodeType

logger = logging.getLogger(__name__)

POLL_INTERVAL_ENV = "GRABBITCTL_POLL_INTERVAL_MS"


def load_config_map(path: Union[str, Path]) -> Dict[str, Any]:
    """Read a YAML (or JSON) file whose top level is a mapping."""
    p = Path(path)
    if not p.is_file():
        raise ConfigError(f'"{p.resolve()}" can not be found')
    try:
        data = yaml.safe_load(p.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError) as e:
        raise ConfigError(f'Could not read "{p.resolve()}": {e}') from e
    except yaml.YAMLError as e:
        raise ConfigError(f'Could not parse "{p.resolve()}": {e}') from e
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f'Top level of "{p.resolve()}" is not a mapping')
    return data


class JobsConfigFile:
    """The job configuration that gets sent, as is, to every host."""

    content_type = "application/json"

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)
        if not self.path.is_file():
            raise ConfigError(f'"{self.path.resolve()}" could not be found')

    def node_type(self) -> NodeType:
        """Maps the top-level "clientNodeType" key to the kind of host the jobs run on."""
        value = load_config_map(self.path).get("clientNodeType")
        if value is None:
            raise ConfigError(
                f'Could not find key "clientNodeType" at the top level of "{self.path.resolve()}"')
        name = str(value).lower()
        if name == "author":
            return NodeType.AUTHOR
        if name in ("publish", "publisher"):
            return NodeType.PUBLISHER
        raise ConfigError(f'Could not map "{value}" to a node type')

    def payload(self) -> bytes:
        try:
            return self.path.read_bytes()
        except OSError as e:
            raise ConfigError(f'Could not read "{self.path.resolve()}": {e}') from e


def resolve_poll_interval(value: Optional[int] = None) -> int:
    """
    Poll interval in milliseconds: the explicit value, then GRABBITCTL_POLL_INTERVAL_MS,
    then the built-in default. Only the CLI calls this.
    """
    if value is not None and value > 0:
        return value
    raw = os.environ.get(POLL_INTERVAL_ENV)
    if raw:
        try:
            from_env = int(raw)
        except ValueError:
            raise ConfigError(f"{POLL_INTERVAL_ENV} must be an integer, got {raw!r}")
        if from_env > 0:
            return from_env
        logger.warning("Ignoring non-positive %s=%s", POLL_INTERVAL_ENV, raw)
    return int(DEFAULTS["poll_interval_ms"])
