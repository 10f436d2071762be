"""
Dataset isolation: give every environment its own copy of the SQLite dataset.

A dataset is a primary SQLite file plus its WAL-mode sidecars, all sharing one
base name. Isolation copies the three files into a fresh temporary location so
a test can mutate its copy without touching the checked-in fixture.
"""

import os
import shutil
import tempfile
from pathlib import Path

import structlog

from .exceptions import DatasetIsolationError

logger = structlog.get_logger(__name__)

# Shared-memory index and write-ahead log, in that order
SIDECAR_SUFFIXES = ("-shm", "-wal")

DEFAULT_TEMP_PREFIX = "mm-testing-"
COPY_CHUNK_SIZE = 64 * 1024


def copy_file(src: str | os.PathLike, dst: str | os.PathLike) -> None:
    """
    Stream every byte of ``src`` into ``dst``.

    The destination is opened for read-write creation, so a placeholder
    reserved by ``isolate_dataset`` is reused rather than replaced.

    Raises:
        DatasetIsolationError: On any open, read or write failure
    """
    try:
        dst_fd = os.open(dst, os.O_RDWR | os.O_CREAT | os.O_TRUNC, 0o644)
    except OSError as e:
        raise DatasetIsolationError(f"Unable to open destination {dst}: {e}", str(dst)) from e

    with os.fdopen(dst_fd, "wb") as dst_file:
        try:
            with open(src, "rb") as src_file:
                shutil.copyfileobj(src_file, dst_file, COPY_CHUNK_SIZE)
        except OSError as e:
            raise DatasetIsolationError(f"Unable to copy {src} to {dst}: {e}", str(src)) from e


def isolate_dataset(
    path: str | os.PathLike,
    temp_dir: str | os.PathLike | None = None,
    prefix: str = DEFAULT_TEMP_PREFIX,
) -> str:
    """
    Copy a dataset and its sidecars into a new private temporary path.

    Every call reserves a new unique file name, so earlier isolated copies are
    never overwritten. A missing sidecar is skipped: freshly created and
    cleanly checkpointed datasets legitimately have none.

    Args:
        path: Primary dataset file
        temp_dir: Directory for the copy (system temp dir when None)
        prefix: File name prefix for the copy

    Returns:
        Path of the isolated primary file

    Raises:
        DatasetIsolationError: If the primary file is missing or any copy fails
    """
    source = Path(path)
    if not source.is_file():
        raise DatasetIsolationError(f"Dataset not found: {source}", str(source))

    try:
        fd, target = tempfile.mkstemp(prefix=prefix, dir=temp_dir)
    except OSError as e:
        raise DatasetIsolationError(f"Unable to reserve temporary dataset: {e}") from e
    os.close(fd)

    logger.info("isolating dataset", source=str(source), target=target)
    copy_file(source, target)

    for suffix in SIDECAR_SUFFIXES:
        sidecar = Path(f"{source}{suffix}")
        if not sidecar.exists():
            logger.debug("sidecar absent, skipping", sidecar=str(sidecar))
            continue
        copy_file(sidecar, f"{target}{suffix}")

    return target


def remove_dataset(path: str | os.PathLike) -> None:
    """Delete an isolated dataset and any sidecars next to it."""
    for candidate in (str(path), *(f"{path}{suffix}" for suffix in SIDECAR_SUFFIXES)):
        try:
            os.remove(candidate)
        except FileNotFoundError:
            continue


def get_dataset_path(name: str, data_dir: str | os.PathLike | None = None) -> str:
    """Resolve a named dataset under ``data_dir`` (``<cwd>/data`` by default)."""
    base = Path(data_dir) if data_dir is not None else Path.cwd() / "data"
    return str(base / name)
