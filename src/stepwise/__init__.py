"""
Stepwise: helpers for acceptance-testing server plugins.

This package provides the pieces a plugin acceptance test needs around the
server under test: a Docker runner that starts the server container with the
plugin copied in, a compiler that builds the plugin binary, and a reloadable
TLS certificate for test listeners.
"""

from stepwise.core.settings import StepwiseSettings
from stepwise.environments.docker import (
    ContainerConfig,
    ContainerHandle,
    Runner,
    RunnerConfig,
)
from stepwise.plugins import CompiledPlugin, CompileError, compile_plugin
from stepwise.tls import CertificateGetter, ReloadRegistry

__all__ = [
    "StepwiseSettings",
    # Containers
    "ContainerConfig",
    "ContainerHandle",
    "Runner",
    "RunnerConfig",
    # Plugins
    "CompiledPlugin",
    "CompileError",
    "compile_plugin",
    # TLS
    "CertificateGetter",
    "ReloadRegistry",
]
