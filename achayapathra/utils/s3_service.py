import os
import io
import uuid
from datetime import datetime, timezone
from typing import Optional

from PIL import Image, UnidentifiedImageError
import boto3
from botocore.exceptions import BotoCoreError, ClientError
from fastapi import Request
from loguru import logger

from achayapathra.errors import InvalidInput


BUCKET = os.getenv("R2_BUCKET")
FOLDER = "donations"
URL = f"https://{os.getenv('CLOUDFLARE_ACCOUNT_ID')}.r2.cloudflarestorage.com"

ALLOWED_FORMATS = {"JPEG", "PNG", "GIF", "WEBP"}


def compress_image(data: bytes, max_width=1400, quality=80):
    try:
        img = Image.open(io.BytesIO(data))
        source_format = img.format
        img = img.convert("RGB")
    except (UnidentifiedImageError, OSError):
        raise InvalidInput("Only image files are allowed (jpeg, png, gif, webp)")

    if source_format not in ALLOWED_FORMATS:
        raise InvalidInput(f"Unsupported image format {source_format}")

    # Resize while keeping aspect ratio
    w, h = img.size
    if w > max_width:
        new_height = int(h * (max_width / w))
        img = img.resize((max_width, new_height), Image.LANCZOS)

    # Try WebP first
    buffer = io.BytesIO()

    try:
        img.save(buffer, format="WEBP", quality=quality, method=6)
        ext = "webp"
    except (OSError, KeyError) as e:
        logger.warning("WebP encoding failed, falling back to JPEG: {}", e)

        buffer = io.BytesIO()
        img.save(buffer, format="JPEG", quality=quality, optimize=True)
        ext = "jpg"

    buffer.seek(0)
    return buffer, ext


class ImageStorage:
    """S3-compatible bucket holding donation photos."""

    def __init__(self, client=None, bucket: Optional[str] = BUCKET, folder: str = FOLDER):
        self.client = client or boto3.client(
            service_name="s3",
            endpoint_url=URL,
            aws_access_key_id=os.getenv("AWS_ACCESS_KEY_ID"),
            aws_secret_access_key=os.getenv("AWS_SECRET_ACCESS_KEY"),
            region_name="auto",
        )
        self.bucket = bucket
        self.folder = folder

    def upload(self, buffer: io.BytesIO, ext: str, original_name: Optional[str]) -> str:
        base = os.path.splitext(os.path.basename(original_name or "food"))[0]

        ts = int(datetime.now(timezone.utc).timestamp())
        key = f"{self.folder}/{uuid.uuid4().hex}_{ts}_{base}.{ext}"

        self.client.upload_fileobj(buffer, self.bucket, key)

        return key

    def store(self, data: bytes, original_name: Optional[str]) -> str:
        buffer, ext = compress_image(data)
        return self.upload(buffer, ext, original_name)

    def signed_url(self, key: Optional[str], expires_in=3600) -> Optional[str]:
        if not key:
            return None

        try:
            return self.client.generate_presigned_url(
                    "get_object",
                    Params={"Bucket": self.bucket, "Key": key},
                    ExpiresIn=expires_in
                )
        except (BotoCoreError, ClientError) as e:
            logger.error("Error generating signed URL for {}: {}", key, e)
            return None


def get_image_storage(request: Request) -> ImageStorage:
    # one client per app, created on first upload
    storage = getattr(request.app.state, "image_storage", None)
    if storage is None:
        storage = ImageStorage()
        request.app.state.image_storage = storage
    return storage


def with_image_urls(storage: ImageStorage, donations: list):
    response = []

    for donation in donations:
        data = donation.model_dump()
        data["image"] = storage.signed_url(donation.image)
        response.append(data)

    return response
