"""
Stepwise Docker Runner Module

Brings up a single disposable container for an acceptance test: the image is
pulled (or resolved locally), the container is created, plugin binaries are
copied into it, and it is started and inspected. If any step after creation
fails, the container is removed again before the error is raised, so callers
only ever receive a running container or an exception.
"""

import ipaddress
import logging
import threading
from typing import Any, Dict, Optional, Tuple

import docker
from docker.errors import APIError
from docker.utils import parse_repository_tag

from stepwise.core.cleanup import CleanupChain
from stepwise.core.settings import StepwiseSettings
from stepwise.environments.docker.archive import ContainerCopyError, prepare_copy
from stepwise.environments.docker.models import ContainerHandle, RunnerConfig

logger = logging.getLogger(__name__)

# Needed for memory locking and for the network setup the workload performs.
REQUIRED_CAPABILITIES = ["IPC_LOCK", "NET_ADMIN"]


class Runner:
    """
    Manages the start of one container described by a ``RunnerConfig``.

    Attributes
    ----------
    config : RunnerConfig
        What to run and how to attach it to the network.
    api : docker.APIClient
        Low-level Docker API client used for every runtime call.
    """

    def __init__(
        self,
        config: RunnerConfig,
        client: Optional[Any] = None,
        settings: Optional[StepwiseSettings] = None,
    ) -> None:
        """
        Parameters
        ----------
        config : RunnerConfig
            Runner configuration; consumed by ``start``.
        client : Optional[Any], optional
            A ``docker.DockerClient`` or ``docker.APIClient``. If None, a client
            is created with ``docker.from_env()``.
        settings : Optional[StepwiseSettings], optional
            Defaults to ``StepwiseSettings.from_env()``.
        """
        self.config = config
        if client is None:
            client = docker.from_env()
        # DockerClient wraps an APIClient; accept either.
        self.api = client.api if isinstance(client, docker.DockerClient) else client
        self.settings = settings or StepwiseSettings.from_env()

    def _network_configs(self) -> Tuple[Dict[str, Any], Optional[Dict[str, Any]]]:
        """
        Build host and networking configuration for the container.

        Returns
        -------
        Tuple[Dict[str, Any], Optional[Dict[str, Any]]]
            The host config and the networking config (None when the container
            stays on the default network or uses host networking).

        Raises
        ------
        ValueError
            If a static IP is configured but is not a valid IPv4 address.
        """
        host_kwargs: Dict[str, Any] = {
            "auto_remove": True,
            "publish_all_ports": True,
            "cap_add": list(REQUIRED_CAPABILITIES),
        }
        networking_config = None

        net_name = self.config.net_name
        if net_name == "host":
            host_kwargs["network_mode"] = "host"
        elif net_name:
            endpoint_kwargs: Dict[str, Any] = {"aliases": [self.config.container_name]}
            if self.config.ip:
                try:
                    runner_ip = ipaddress.IPv4Address(self.config.ip)
                except ValueError as exc:
                    raise ValueError(
                        f"runner has invalid IP {self.config.ip}: {exc}"
                    ) from exc
                endpoint_kwargs["ipv4_address"] = str(runner_ip)
            networking_config = self.api.create_networking_config(
                {net_name: self.api.create_endpoint_config(**endpoint_kwargs)}
            )

        return self.api.create_host_config(**host_kwargs), networking_config

    def _pull(self, image: str) -> None:
        """
        Best-effort pull. A matching local image is used if present; otherwise
        the image is fetched from its registry. The progress stream has to be
        read to the end before the image can be used.
        """
        repository, tag = parse_repository_tag(image)
        logger.info("[stepwise] pulling image %s", image)
        stream = self.api.pull(
            repository, tag=tag or "latest", stream=True, decode=True
        )
        for chunk in stream:
            if isinstance(chunk, dict) and chunk.get("error"):
                raise APIError(chunk["error"])

    def _copy_into(self, container_id: str, source: str, destination: str) -> None:
        dst_dir, payload = prepare_copy(source, destination)
        with payload:
            try:
                accepted = self.api.put_archive(container_id, dst_dir, payload)
            except Exception as exc:
                raise ContainerCopyError(
                    f"error copying from {source!r} -> {destination!r}: {exc}"
                ) from exc
        if accepted is False:
            raise ContainerCopyError(
                f"error copying from {source!r} -> {destination!r}: archive rejected"
            )
        logger.debug(
            "[stepwise] copied %s -> %s:%s", source, container_id[:12], destination
        )

    def _remove(self, container_id: str) -> None:
        self.api.remove_container(container_id, force=self.settings.remove_force)

    def start(self, cancel: Optional[threading.Event] = None) -> ContainerHandle:
        """
        Pull, create, populate, start and inspect the container.

        Parameters
        ----------
        cancel : Optional[threading.Event], optional
            Checked before each runtime call; once set, the start is abandoned
            and any created container is removed.

        Returns
        -------
        ContainerHandle
            The started container and its inspect document. The caller owns the
            container from here on (auto-remove is requested on exit).

        Raises
        ------
        ValueError
            If the configured static IP is invalid. Raised before any runtime call.
        RuntimeError
            ``container create failed`` / ``container start failed`` wrapping the
            runtime error, or ``container start cancelled``.
        ContainerCopyError
            If a file could not be copied into the container.
        """
        host_config, networking_config = self._network_configs()
        cfg = self.config.container_config.model_copy(deep=True)
        name = self.config.container_name

        _check_cancel(cancel)
        self._pull(cfg.image)

        _check_cancel(cancel)
        create_kwargs = cfg.to_create_kwargs()
        create_kwargs.update(
            hostname=name,
            name=name,
            host_config=host_config,
            networking_config=networking_config,
        )
        try:
            created = self.api.create_container(**create_kwargs)
        except Exception as exc:
            raise RuntimeError(f"container create failed: {exc}") from exc
        container_id = created["Id"]
        logger.info("[stepwise] created container %s (%s)", name, container_id[:12])

        cleanup = CleanupChain()
        cleanup.push(
            f"remove container {container_id[:12]}",
            lambda: self._remove(container_id),
        )
        try:
            # Copying is only allowed before the container is started.
            for source, destination in self.config.copy_from_to.items():
                _check_cancel(cancel)
                self._copy_into(container_id, source, destination)

            _check_cancel(cancel)
            try:
                self.api.start(container_id)
            except Exception as exc:
                raise RuntimeError(f"container start failed: {exc}") from exc
            logger.info("[stepwise] started container %s", name)

            attrs = self.api.inspect_container(container_id)
        except BaseException:
            cleanup.unwind()
            raise
        cleanup.discard()

        return ContainerHandle(id=container_id, name=name, attrs=attrs)


def _check_cancel(cancel: Optional[threading.Event]) -> None:
    if cancel is not None and cancel.is_set():
        raise RuntimeError("container start cancelled")
