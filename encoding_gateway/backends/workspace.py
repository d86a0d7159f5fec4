"""Per-request scratch directories for file-based schema compilers."""

import shutil
import tempfile
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

import structlog

logger = structlog.get_logger("workspace")

WORKSPACE_PREFIX = "encoding-gateway-"


@contextmanager
def scratch_workspace(base_dir: str | None = None) -> Iterator[Path]:
    """Create a uniquely named directory and remove it on exit.

    Removal runs on every exit path, including exceptions and cancellation,
    so schema files and compiler output never outlive the request.

    Args:
        base_dir: Parent directory; the system temp dir when empty.

    Yields:
        Path of the new directory.
    """
    path = Path(tempfile.mkdtemp(prefix=WORKSPACE_PREFIX, dir=base_dir or None))
    logger.debug("workspace_created", path=str(path))
    try:
        yield path
    finally:
        shutil.rmtree(path)
        logger.debug("workspace_removed", path=str(path))
