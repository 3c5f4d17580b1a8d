from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


class ContainerConfig(BaseModel):
    """
    Caller-owned options for the container the runner creates.

    The runner copies this model before adding its own settings (hostname,
    capabilities), so one config can be reused across several runners.
    Any other ``create_container`` option (``tty``, ``stop_signal``,
    ``healthcheck`` ...) goes in ``extra_args``; unknown top-level fields are
    rejected rather than dropped.
    """

    model_config = ConfigDict(extra="forbid")

    image: str
    command: Optional[Union[str, List[str]]] = None
    entrypoint: Optional[Union[str, List[str]]] = None
    environment: Dict[str, str] = Field(default_factory=dict)
    working_dir: Optional[str] = None
    user: Optional[str] = None
    labels: Dict[str, str] = Field(default_factory=dict)
    # Container ports to expose, e.g. ["8200/tcp"]
    ports: List[str] = Field(default_factory=list)
    volumes: List[str] = Field(default_factory=list)

    # Passed through to create_container as-is
    extra_args: Dict[str, Any] = Field(default_factory=dict)

    def to_create_kwargs(self) -> Dict[str, Any]:
        """Keyword arguments for ``APIClient.create_container``."""
        kwargs: Dict[str, Any] = {"image": self.image}
        if self.command is not None:
            kwargs["command"] = self.command
        if self.entrypoint is not None:
            kwargs["entrypoint"] = self.entrypoint
        if self.environment:
            kwargs["environment"] = dict(self.environment)
        if self.working_dir:
            kwargs["working_dir"] = self.working_dir
        if self.user:
            kwargs["user"] = self.user
        if self.labels:
            kwargs["labels"] = dict(self.labels)
        if self.ports:
            kwargs["ports"] = [_parse_port(p) for p in self.ports]
        if self.volumes:
            kwargs["volumes"] = list(self.volumes)
        kwargs.update(self.extra_args)
        return kwargs


def _parse_port(spec: str) -> Union[int, tuple]:
    number, _, proto = spec.partition("/")
    if proto and proto != "tcp":
        return (int(number), proto)
    return int(number)


class RunnerConfig(BaseModel):
    """
    Everything a ``Runner`` needs to bring one container up.

    Attributes
    ----------
    container_config : ContainerConfig
        Image and process options for the container.
    container_name : str
        Name given to the container; also used as its hostname and, on a
        named network, as its network alias.
    net_name : str
        ``""`` for the default bridge, ``"host"`` for host networking, or the
        name of an existing network to attach to.
    ip : str
        Optional static IPv4 address on ``net_name``.
    copy_from_to : Dict[str, str]
        Host paths to copy into the container before it starts, mapped to
        their destination paths inside the container.
    """

    container_config: ContainerConfig
    container_name: str
    net_name: str = ""
    ip: str = ""
    copy_from_to: Dict[str, str] = Field(default_factory=dict)


@dataclass
class ContainerHandle:
    """Runtime state of a started container, as reported by inspect."""

    id: str
    name: str
    attrs: Dict[str, Any] = field(default_factory=dict)

    @property
    def networks(self) -> Dict[str, Any]:
        return (self.attrs.get("NetworkSettings") or {}).get("Networks") or {}

    def ip_address(self, network: Optional[str] = None) -> Optional[str]:
        """
        Address assigned to the container, on ``network`` if given, otherwise
        on the first network that reports one.
        """
        networks = self.networks
        if network is not None:
            address = (networks.get(network) or {}).get("IPAddress")
            return address or None
        for settings in networks.values():
            address = (settings or {}).get("IPAddress")
            if address:
                return address
        return (self.attrs.get("NetworkSettings") or {}).get("IPAddress") or None

    def host_port(self, container_port: Union[int, str]) -> Optional[int]:
        """Host port published for ``container_port`` (``"8200"`` or ``"8200/tcp"``)."""
        key = str(container_port)
        if "/" not in key:
            key = f"{key}/tcp"
        ports = (self.attrs.get("NetworkSettings") or {}).get("Ports") or {}
        bindings = ports.get(key) or []
        for binding in bindings:
            host_port = binding.get("HostPort")
            if host_port:
                return int(host_port)
        return None
