"""
Building plugin binaries for acceptance tests.
"""

from stepwise.plugins.compiler import (
    BuildToolchain,
    CompileError,
    CompiledPlugin,
    DockerGoToolchain,
    compile_plugin,
    plugin_binary_name,
)

__all__ = [
    "BuildToolchain",
    "CompileError",
    "CompiledPlugin",
    "DockerGoToolchain",
    "compile_plugin",
    "plugin_binary_name",
]
