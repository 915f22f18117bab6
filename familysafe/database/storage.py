import logging
import uuid
from typing import Optional

from supabase import AsyncClient
from familysafe.config.settings import settings
from familysafe.core.errors import service_error, require

logger = logging.getLogger(__name__)

MAX_IMAGE_SIZE = 5 * 1024 * 1024
IMAGE_EXTENSIONS = {"jpg", "jpeg", "png", "gif", "webp", "heic"}


def _extension(filename: str) -> str:
    if "." not in filename:
        return "jpg"
    return filename.rsplit(".", 1)[1].lower()


class AvatarStorage:
    """Public-URL image bucket for user avatars and group images."""

    def __init__(self, supabase: AsyncClient, bucket: Optional[str] = None):
        self.supabase = supabase
        self.bucket = bucket or settings.avatar_bucket

    def _validate(self, filename: str, contents: bytes) -> str:
        require(bool(contents), "Select an image to upload")
        require(len(contents) <= MAX_IMAGE_SIZE, "Image too large (max 5MB)")
        ext = _extension(filename)
        require(ext in IMAGE_EXTENSIONS, f"Unsupported image type: .{ext}")
        return ext

    def key_from_url(self, url: str) -> str:
        """Public URL -> object key inside the bucket."""
        marker = f"/storage/v1/object/public/{self.bucket}/"
        if marker in url:
            return url.split(marker, 1)[1]
        return url.rsplit("/", 1)[-1]

    async def upload(self, key: str, contents: bytes, content_type: str) -> str:
        try:
            await self.supabase.storage.from_(self.bucket).upload(
                key,
                contents,
                {"content-type": content_type or "application/octet-stream"},
            )
            return await self.supabase.storage.from_(self.bucket).get_public_url(key)
        except Exception as e:
            raise service_error(e, "Image upload failed", key=key) from e

    async def remove(self, url: str) -> None:
        key = self.key_from_url(url)
        try:
            await self.supabase.storage.from_(self.bucket).remove([key])
        except Exception as e:
            logger.warning(f"Failed to remove old image {key}: {e}")

    async def save_user_avatar(
        self, user_id: str, filename: str, contents: bytes,
        content_type: str, previous_url: Optional[str] = None
    ) -> str:
        ext = self._validate(filename, contents)
        if previous_url:
            await self.remove(previous_url)
        key = f"{user_id}-{uuid.uuid4().hex}.{ext}"
        return await self.upload(key, contents, content_type)

    async def save_group_image(self, group_id: str, filename: str, contents: bytes, content_type: str) -> str:
        ext = self._validate(filename, contents)
        key = f"group-images/{group_id}-{uuid.uuid4().hex}.{ext}"
        return await self.upload(key, contents, content_type)
