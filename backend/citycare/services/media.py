"""Storage for photos and videos attached to issue submissions."""

import logging
import secrets
import time
from pathlib import Path

from fastapi import UploadFile
from starlette.concurrency import run_in_threadpool

from citycare.config import get_settings
from citycare.exceptions import ValidationError
from citycare.models.base import utcnow

logger = logging.getLogger(__name__)

CHUNK_SIZE = 1024 * 1024
ALLOWED_PREFIXES = ("image/", "video/")


class MediaStorage:
    """
    Validate and store uploaded media under a local directory.

    Files are named ``<field>-<epoch ms>-<random><ext>`` and referenced by
    the relative URL ``/uploads/<filename>``.
    """

    def __init__(
        self,
        upload_dir: str | Path | None = None,
        max_bytes: int | None = None,
        url_prefix: str = "/uploads",
    ):
        settings = get_settings()
        self.upload_dir = Path(upload_dir or settings.upload_dir)
        self.max_bytes = max_bytes or settings.max_upload_bytes
        self.url_prefix = url_prefix.rstrip("/")

    @staticmethod
    def build_filename(field: str, original_name: str | None) -> str:
        suffix = Path(original_name or "").suffix.lower()
        unique = f"{int(time.time() * 1000)}-{secrets.randbelow(10**9):09d}"
        return f"{field}-{unique}{suffix}"

    @staticmethod
    def validate_type(upload: UploadFile) -> None:
        content_type = upload.content_type or ""
        if not content_type.startswith(ALLOWED_PREFIXES):
            raise ValidationError(
                "Invalid file type. Only images and videos are allowed.",
                errors=[f"{upload.filename}: {content_type or 'unknown type'}"],
            )

    async def save(self, upload: UploadFile, field: str) -> dict:
        """Write one upload to disk and return its media entry."""
        self.validate_type(upload)
        self.upload_dir.mkdir(parents=True, exist_ok=True)

        filename = self.build_filename(field, upload.filename)
        path = self.upload_dir / filename
        written = 0
        try:
            with path.open("wb") as fh:
                while chunk := await upload.read(CHUNK_SIZE):
                    written += len(chunk)
                    if written > self.max_bytes:
                        raise ValidationError(
                            "File too large",
                            errors=[f"{upload.filename} exceeds {self.max_bytes} bytes"],
                        )
                    await run_in_threadpool(fh.write, chunk)
        except Exception as e:
            # Never leave a partial file behind
            path.unlink(missing_ok=True)
            logger.warning(f"Discarded upload {upload.filename} after {written} bytes: {e}")
            raise

        logger.info(f"Stored {field} upload {upload.filename} as {filename} ({written} bytes)")
        return {
            "url": f"{self.url_prefix}/{filename}",
            "filename": filename,
            "uploadedAt": utcnow().isoformat(),
        }

    async def save_all(
        self,
        images: list[UploadFile],
        videos: list[UploadFile],
        max_images: int | None = None,
        max_videos: int | None = None,
    ) -> tuple[list[dict], list[dict]]:
        """Validate counts and types up front, then store every file."""
        settings = get_settings()
        max_images = max_images or settings.max_images
        max_videos = max_videos or settings.max_videos

        if len(images) > max_images:
            raise ValidationError(f"At most {max_images} images may be uploaded")
        if len(videos) > max_videos:
            raise ValidationError(f"At most {max_videos} videos may be uploaded")
        for upload in (*images, *videos):
            self.validate_type(upload)

        stored_images: list[dict] = []
        stored_videos: list[dict] = []
        try:
            for upload in images:
                stored_images.append(await self.save(upload, "images"))
            for upload in videos:
                stored_videos.append(await self.save(upload, "videos"))
        except Exception:
            self.discard([*stored_images, *stored_videos])
            raise
        return stored_images, stored_videos

    def discard(self, entries: list[dict]) -> None:
        """Remove stored files, e.g. when the issue could not be created."""
        for entry in entries:
            (self.upload_dir / entry["filename"]).unlink(missing_ok=True)
