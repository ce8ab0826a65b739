"""
Featured-image blob store.

Posts reference images by filename only; the files live under ``UPLOAD_DIR``
and are served statically at ``/uploads/<filename>``.
"""

import time
import uuid
from pathlib import Path
from typing import Optional

from fastapi import UploadFile
from starlette.datastructures import FormData, UploadFile as StarletteUploadFile

from inkwell.core.errors import UnexpectedUploadField, UploadTooLarge, ValidationError
from inkwell.core.logging_config import get_logger

logger = get_logger(__name__)

FEATURED_IMAGE_FIELD = "featuredImage"
CHUNK_SIZE = 64 * 1024
ALLOWED_EXTENSIONS = {".jpg", ".jpeg", ".png", ".gif", ".webp", ".svg"}


def check_upload_fields(form: FormData) -> Optional[StarletteUploadFile]:
    """
    Return the single featured image in a multipart form, if any.

    Raises:
        UnexpectedUploadField: a file arrived under another field name, or more than one image
    """
    image = None
    for key, value in form.multi_items():
        if not isinstance(value, StarletteUploadFile):
            continue
        if key != FEATURED_IMAGE_FIELD or image is not None:
            raise UnexpectedUploadField(key)
        image = value
    return image


class LocalBlobStore:
    def __init__(self, root: str, max_bytes: int):
        self.root = Path(root)
        self.max_bytes = max_bytes

    def ensure_root(self) -> Path:
        self.root.mkdir(parents=True, exist_ok=True)
        return self.root

    def _filename(self, original: Optional[str]) -> str:
        ext = Path(original or "").suffix.lower()
        if ext not in ALLOWED_EXTENSIONS:
            ext = ""
        return f"{int(time.time() * 1000)}-{uuid.uuid4().hex[:8]}{ext}"

    def save(self, upload: UploadFile) -> str:
        """Stream an upload to disk and return the generated filename."""
        content_type = upload.content_type or ""
        if not content_type.startswith("image/"):
            raise ValidationError("Only image files are allowed", field_name=FEATURED_IMAGE_FIELD)

        filename = self._filename(upload.filename)
        target = self.ensure_root() / filename
        written = 0
        upload.file.seek(0)
        try:
            with target.open("wb") as out:
                while True:
                    chunk = upload.file.read(CHUNK_SIZE)
                    if not chunk:
                        break
                    written += len(chunk)
                    if written > self.max_bytes:
                        raise UploadTooLarge()
                    out.write(chunk)
        except UploadTooLarge:
            target.unlink(missing_ok=True)
            logger.warning("Upload rejected: too large", limit_bytes=self.max_bytes)
            raise

        logger.info("Featured image stored", filename=filename, size_bytes=written)
        return filename

    def path_for(self, filename: str) -> Path:
        return self.root / Path(filename).name

    def discard(self, filename: str) -> None:
        """Remove a stored file that ended up unreferenced."""
        self.path_for(filename).unlink(missing_ok=True)
        logger.info("Featured image discarded", filename=filename)
