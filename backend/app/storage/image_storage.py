"""Local filesystem storage for product images."""

from __future__ import annotations

import shutil
import uuid
from pathlib import Path
from typing import BinaryIO

from app.core.config import get_settings

ALLOWED_IMAGE_TYPES = {
    "image/jpeg": ".jpg",
    "image/png": ".png",
}
MAX_IMAGE_BYTES = 2 * 1024 * 1024
IMAGE_SUBDIR = "products"


class ImageStorage:
    def __init__(self, root: str | Path, public_base_url: str) -> None:
        self.root = Path(root).resolve()
        self.public_base_url = public_base_url.rstrip("/")

    def save(self, file_obj: BinaryIO, content_type: str) -> tuple[Path, str]:
        """Persist an image under a UUID name; returns (path, public URL)."""
        suffix = ALLOWED_IMAGE_TYPES[content_type]
        target_dir = self.root / IMAGE_SUBDIR
        target_dir.mkdir(parents=True, exist_ok=True)
        target_name = f"{uuid.uuid4()}{suffix}"
        target_path = target_dir / target_name
        file_obj.seek(0)
        with target_path.open("wb") as destination:
            shutil.copyfileobj(file_obj, destination)
        return target_path, f"{self.public_base_url}/uploads/{IMAGE_SUBDIR}/{target_name}"

    def delete(self, path: str | Path) -> None:
        Path(path).unlink(missing_ok=True)


def get_image_storage() -> ImageStorage:
    settings = get_settings()
    return ImageStorage(settings.uploads_dir, settings.public_base_url)
