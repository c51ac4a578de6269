"""
Hosts of one named environment (authors and publishers) and their credentials.
"""
import logging
from pathlib import Path
from typing import Any, Iterable, Iterator, List, Mapping, Optional, Union

from .config import load_config_map
from .errors import ConfigError, CredentialsNotFoundError
from .models import Credentials, HostInfo, NodeType

logger = logging.getLogger(__name__)


class Environment:
    def __init__(self, hosts: Iterable[HostInfo]):
        self._hosts: List[HostInfo] = list(hosts)

    def __iter__(self) -> Iterator[HostInfo]:
        return iter(self._hosts)

    def __len__(self) -> int:
        return len(self._hosts)

    def all_hosts(self) -> List[HostInfo]:
        return list(self._hosts)

    def authors(self) -> List[HostInfo]:
        return [h for h in self._hosts if h.node_type == NodeType.AUTHOR]

    def publishers(self) -> List[HostInfo]:
        return [h for h in self._hosts if h.node_type == NodeType.PUBLISHER]

    def hosts_of_type(self, node_type: NodeType) -> List[HostInfo]:
        if node_type == NodeType.AUTHOR:
            return self.authors()
        if node_type == NodeType.PUBLISHER:
            return self.publishers()
        raise ConfigError(f"Don't know what to do with {node_type}")

    def credentials_for(self, base_uri: str) -> Credentials:
        for host in self._hosts:
            if host.base_uri == base_uri:
                return host.credentials
        raise CredentialsNotFoundError(base_uri)


class MapSourcedEnvironment(Environment):
    """
    Environment built from one entry of the environments file:

        username: admin
        password: admin
        protocol: http
        domainName: example.com      # optional
        authors: {author1: 4502}
        publishers: {pub1: 4503, pub2: 4503}
    """

    def authors(self) -> List[HostInfo]:
        # authors are clustered, so one of them is enough to start jobs on
        return super().authors()[:1]

    @classmethod
    def from_map(cls, env: Mapping[str, Any]) -> "MapSourcedEnvironment":
        for key in ("username", "password", "protocol"):
            if env.get(key) is None:
                raise ConfigError(f'Missing required key "{key}" in environment')
        credentials = Credentials(username=str(env["username"]), password=str(env["password"]))
        protocol = str(env["protocol"])
        domain = env.get("domainName")
        domain = str(domain).strip() if domain is not None and str(domain).strip() else None

        hosts: List[HostInfo] = []
        for node_type, key in ((NodeType.AUTHOR, "authors"), (NodeType.PUBLISHER, "publishers")):
            for hostname, port in (env.get(key) or {}).items():
                hosts.append(HostInfo(
                    node_type=node_type,
                    base_uri=base_uri(protocol, hostname, port, domain),
                    credentials=credentials,
                ))
        return cls(hosts)


def base_uri(protocol: str, hostname: str, port: Any, domain: Optional[str] = None) -> str:
    host = f"{hostname}.{domain}" if domain else str(hostname)
    try:
        port_no = int(port)
    except (TypeError, ValueError):
        raise ConfigError(f"Invalid port {port!r} for host {host}")
    return f"{protocol}://{host}:{port_no}"


def load_environment(path: Union[str, Path], name: str) -> MapSourcedEnvironment:
    """Creates the environment called `name` from the environments file at `path`."""
    envs = load_config_map(path)
    env = envs.get(name)
    if env is None:
        raise ConfigError(f'Can not find "{name}" in "{Path(path).resolve()}"')
    if not isinstance(env, Mapping):
        raise ConfigError(f'"{name}" in "{Path(path).resolve()}" is not a mapping')
    environment = MapSourcedEnvironment.from_map(env)
    logger.debug("Loaded environment %s with %d host(s)", name, len(environment))
    return environment
