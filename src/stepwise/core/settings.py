from __future__ import annotations

import os
from dataclasses import dataclass


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name, "")
    if raw == "":
        return default
    return raw.strip().lower() in {"1", "true", "yes", "y", "on"}


def _env_str(name: str, default: str) -> str:
    raw = os.getenv(name, "")
    if raw.strip() == "":
        return default
    return raw.strip()


@dataclass(frozen=True)
class StepwiseSettings:
    # Must be Alpine linux for compatibility with the server image
    build_image: str = "golang:1.20-alpine"
    build_workdir: str = "/usr/src/myapp"
    target_os: str = "linux"
    target_arch: str = "amd64"
    docker_binary: str = "docker"
    remove_force: bool = True

    @classmethod
    def from_env(cls) -> "StepwiseSettings":
        return cls(
            build_image=_env_str("STEPWISE_BUILD_IMAGE", cls.build_image),
            build_workdir=_env_str("STEPWISE_BUILD_WORKDIR", cls.build_workdir),
            target_os=_env_str("STEPWISE_TARGET_OS", cls.target_os),
            target_arch=_env_str("STEPWISE_TARGET_ARCH", cls.target_arch),
            docker_binary=_env_str("STEPWISE_DOCKER_BINARY", cls.docker_binary),
            remove_force=_env_bool("STEPWISE_REMOVE_FORCE", cls.remove_force),
        )
