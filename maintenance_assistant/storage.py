"""Local bucket storage: the object store that holds uploaded documents.

Objects live at ``<root>/<bucket>/<name>``, mirroring a cloud bucket layout.
"""
from pathlib import Path
import structlog

from maintenance_assistant import config

logger = structlog.get_logger()


class LocalBucketStorage:
    """Read access to uploaded objects on the local filesystem."""

    def __init__(self, root: Path = None):
        self.root = Path(root or config.UPLOADS_DIR).resolve()

    def object_path(self, bucket: str, name: str) -> Path:
        """Resolve an object path, refusing anything outside the bucket."""
        bucket_dir = (self.root / bucket).resolve()
        path = (bucket_dir / name).resolve()
        if bucket_dir != self.root / bucket or not path.is_relative_to(bucket_dir):
            raise ValueError(f"Object path escapes bucket: {bucket}/{name}")
        return path

    async def download(self, bucket: str, name: str) -> bytes:
        """Read an object's bytes.

        Raises:
            FileNotFoundError: If the object doesn't exist
        """
        path = self.object_path(bucket, name)
        if not path.is_file():
            raise FileNotFoundError(f"Object not found: {bucket}/{name}")

        content = path.read_bytes()
        logger.debug("object_downloaded", bucket=bucket, name=name, size=len(content))
        return content
