"""Filesystem artifact storage."""

from pathlib import Path
from typing import Optional, Union

import anyio

from ..config import get_settings
from ..logging import get_logger

logger = get_logger(__name__)


class LocalArtifactStorage:
    """Stores artifacts under ``<root>/<job_id>/<file_name>``."""

    def __init__(self, root: Optional[Union[str, Path]] = None):
        self.root = Path(root) if root is not None else get_settings().storage_dir

    def _path(self, job_id: str, file_name: str) -> anyio.Path:
        # Keep callers inside the job directory
        name = Path(file_name).name
        if not job_id or not name or Path(job_id).name != job_id:
            raise ValueError(f"Invalid artifact reference: {job_id!r}/{file_name!r}")
        return anyio.Path(self.root) / job_id / name

    async def get_artifact(self, job_id: str, file_name: str) -> bytes:
        """Read an artifact.

        Raises:
            FileNotFoundError: If the artifact does not exist.
        """
        path = self._path(job_id, file_name)
        return await path.read_bytes()

    async def save_artifact(self, job_id: str, file_name: str, data: bytes) -> str:
        """Write an artifact and return its locator (the file path)."""
        path = self._path(job_id, file_name)
        await path.parent.mkdir(parents=True, exist_ok=True)
        await path.write_bytes(data)
        logger.debug("Artifact saved", job_id=job_id, file_name=file_name, size=len(data))
        return str(path)
