from stepwise.environments.docker.archive import ContainerCopyError
from stepwise.environments.docker.models import (
    ContainerConfig,
    ContainerHandle,
    RunnerConfig,
)
from stepwise.environments.docker.runner import Runner

__all__ = [
    "ContainerConfig",
    "ContainerCopyError",
    "ContainerHandle",
    "Runner",
    "RunnerConfig",
]
