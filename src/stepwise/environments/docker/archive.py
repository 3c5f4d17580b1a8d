"""
Tar packaging for copying host files into a container that has not started.

The container's filesystem cannot be inspected before start, so a destination
path is always treated as "does not exist yet": the copied entry is renamed to
the destination's base name and extracted into the destination's parent
directory.
"""

import logging
import os
import tarfile
import tempfile
from pathlib import Path, PurePosixPath
from typing import IO, Tuple

logger = logging.getLogger(__name__)

# Archives larger than this spill from memory to a temporary file.
_SPOOL_MAX_SIZE = 8 * 1024 * 1024


class ContainerCopyError(RuntimeError):
    """Copying a host path into a container failed."""


def prepare_copy(source: str, destination: str) -> Tuple[str, IO[bytes]]:
    """
    Build the archive for copying ``source`` to ``destination``.

    Parameters
    ----------
    source : str
        Host file or directory to copy.
    destination : str
        Absolute path inside the container the source should end up at.

    Returns
    -------
    Tuple[str, IO[bytes]]
        The container directory to extract into, and the tar payload as a
        file positioned at its start. The caller closes it.

    Raises
    ------
    ContainerCopyError
        If the source cannot be read, the tar cannot be built, or the
        destination cannot receive the source.
    """
    src = Path(source)
    try:
        os.lstat(src)
    except OSError as exc:
        raise ContainerCopyError(
            f"error copying from source {source!r}: {exc}"
        ) from exc

    dst = PurePosixPath(destination)
    if destination.endswith("/") and not src.is_dir():
        raise ContainerCopyError(
            f"error preparing copy from {source!r} -> {destination!r}: "
            "destination directory does not exist"
        )
    if not dst.name:
        raise ContainerCopyError(
            f"error preparing copy from {source!r} -> {destination!r}: "
            "destination has no base name"
        )

    buf = tempfile.SpooledTemporaryFile(max_size=_SPOOL_MAX_SIZE)
    try:
        with tarfile.open(fileobj=buf, mode="w") as tar:
            tar.add(str(src), arcname=dst.name)
    except (OSError, tarfile.TarError) as exc:
        buf.close()
        raise ContainerCopyError(
            f"error creating tar from source {source!r}: {exc}"
        ) from exc

    logger.debug(
        "[stepwise] prepared %d byte archive %s -> %s", buf.tell(), source, destination
    )
    buf.seek(0)
    return str(dst.parent), buf
