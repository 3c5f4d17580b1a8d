"""
Stepwise Plugin Compiler Module

Compiles a plugin binary from source for use in acceptance tests and reports
its sha256, which the server needs to register the plugin. The build itself
is delegated to a ``BuildToolchain`` so callers (and tests) are not tied to
how the compiler is invoked; the default toolchain runs ``go build`` inside a
Docker container so the binary matches the platform of the server container.
"""

import abc
import hashlib
import logging
import os
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator, List, Optional, Union

from stepwise.core.settings import StepwiseSettings

logger = logging.getLogger(__name__)

PLUGIN_PREFIX = "vault-plugin-"
_CHUNK_SIZE = 65536


class CompileError(RuntimeError):
    """
    The build command exited non-zero or could not be run. The message is
    its stderr; ``returncode`` is None when the command never started.
    """

    def __init__(self, stderr: str, returncode: Optional[int] = None) -> None:
        super().__init__(stderr)
        self.stderr = stderr
        self.returncode = returncode


@dataclass(frozen=True)
class CompiledPlugin:
    name: str
    path: str
    sha256: str

    def __iter__(self) -> Iterator[str]:
        # Allows `name, path, sha = compile_plugin(...)`
        return iter((self.name, self.path, self.sha256))


def plugin_binary_name(name: str) -> str:
    """Return ``name`` with the plugin prefix, adding it only if missing."""
    if name.startswith(PLUGIN_PREFIX):
        return name
    return f"{PLUGIN_PREFIX}{name}"


class BuildToolchain(abc.ABC):
    @abc.abstractmethod
    def build(self, plugin_name: str, src_dir: str, output_path: str) -> None:
        """
        Build ``plugin_name`` from ``src_dir`` and write the binary to ``output_path``.

        Raises
        ------
        CompileError
            If the build fails.
        """
        pass


class DockerGoToolchain(BuildToolchain):
    """
    Runs ``go build`` in a throwaway Go container.

    The output directory is mounted at the same path inside the build
    container, and the parent of the plugin source directory is mounted as
    the working directory, so ``<workdir>/<plugin>/cmd/<plugin>/main.go`` is
    the build target.
    """

    def __init__(self, settings: Optional[StepwiseSettings] = None) -> None:
        self.settings = settings or StepwiseSettings.from_env()

    def command(self, plugin_name: str, src_dir: str, output_path: str) -> List[str]:
        s = self.settings
        out_dir = os.path.dirname(output_path)
        target = f"{s.build_workdir}/{plugin_name}/cmd/{plugin_name}/main.go"
        return [
            s.docker_binary,
            "run",
            "--rm",
            "-v",
            f"{out_dir}:{out_dir}",
            "-v",
            f"{src_dir}/..:{s.build_workdir}",
            "-w",
            s.build_workdir,
            "-e",
            f"GOOS={s.target_os}",
            "-e",
            f"GOARCH={s.target_arch}",
            s.build_image,
            "go",
            "build",
            "-v",
            "-o",
            output_path,
            target,
        ]

    def build(self, plugin_name: str, src_dir: str, output_path: str) -> None:
        cmd = self.command(plugin_name, src_dir, output_path)
        logger.info("[stepwise] compiling plugin %s: %s", plugin_name, " ".join(cmd))

        # Match the target platform of the server container regardless of host.
        env = os.environ.copy()
        env["GOOS"] = self.settings.target_os
        env["GOARCH"] = self.settings.target_arch

        try:
            res = subprocess.run(
                cmd, capture_output=True, text=True, env=env, check=False
            )
        except FileNotFoundError as exc:
            raise CompileError(
                f"build tool {cmd[0]!r} not found: {exc}\n"
            ) from exc
        if res.returncode != 0:
            # The exit status alone is just "exit status 1"; stderr has the detail.
            raise CompileError(res.stderr, returncode=res.returncode)
        logger.debug("[stepwise] build output for %s: %s", plugin_name, res.stdout)


def sha256_file(path: Union[str, Path]) -> str:
    sha256 = hashlib.sha256()
    with open(path, "rb") as f:
        while True:
            chunk = f.read(_CHUNK_SIZE)
            if not chunk:
                break
            sha256.update(chunk)
    return sha256.hexdigest()


def compile_plugin(
    name: str,
    plugin_name: str,
    src_dir: Union[str, Path],
    out_dir: Union[str, Path],
    toolchain: Optional[BuildToolchain] = None,
) -> CompiledPlugin:
    """
    Compile a plugin and hash the resulting binary.

    Parameters
    ----------
    name : str
        Plugin name; the binary is named ``vault-plugin-<name>`` unless
        ``name`` already carries that prefix.
    plugin_name : str
        Directory of the plugin under ``src_dir``'s parent; also names the
        ``cmd/<plugin_name>/main.go`` entry point.
    src_dir : Union[str, Path]
        Plugin source directory on the host.
    out_dir : Union[str, Path]
        Host directory the binary is written to.
    toolchain : Optional[BuildToolchain], optional
        Defaults to ``DockerGoToolchain()``.

    Returns
    -------
    CompiledPlugin
        Binary name, path and hex sha256 digest.

    Raises
    ------
    CompileError
        If the build fails or the build tool is not installed; the message
        is the build's stderr.
    OSError
        If the produced binary cannot be read.
    """
    bin_name = plugin_binary_name(name)
    bin_path = os.path.join(str(out_dir), bin_name)

    toolchain = toolchain or DockerGoToolchain()
    toolchain.build(plugin_name, str(src_dir), bin_path)

    digest = sha256_file(bin_path)
    logger.info("[stepwise] compiled %s sha256=%s", bin_path, digest)
    return CompiledPlugin(name=bin_name, path=bin_path, sha256=digest)
