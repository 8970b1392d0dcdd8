import logging
import os
import re
import unicodedata
import uuid
from functools import lru_cache
from supabase import create_client, Client
from app.core.config import settings
from app.core.exceptions import DependencyFailure

logger = logging.getLogger(__name__)


@lru_cache
def get_supabase() -> Client:
    if not settings.supabase_url or not settings.supabase_key:
        raise DependencyFailure("File store is not configured", "file_store_not_configured")
    return create_client(settings.supabase_url, settings.supabase_key)


def sanitize_filename(filename: str) -> str:
    name, ext = os.path.splitext(filename)

    name = unicodedata.normalize("NFD", name).encode("ascii", "ignore").decode("utf-8")

    name = re.sub(r"\s+", "_", name)

    name = re.sub(r"[^a-zA-Z0-9._-]", "", name)

    return f"{name}{ext}"


def upload_file(task_id: int, filename: str, data: bytes, content_type: str) -> str:
    """Upload bytes to the attachment bucket and return the opaque storage path."""
    path = f"tasks/{task_id}/{uuid.uuid4().hex}_{sanitize_filename(filename)}"
    try:
        res = get_supabase().storage.from_(settings.supabase_bucket).upload(
            path, data, {"content-type": content_type or "application/octet-stream"}
        )
    except DependencyFailure:
        raise
    except Exception as e:
        logger.exception(f"Upload failed for {filename}")
        raise DependencyFailure(f"File upload failed: {e}", "file_store_unreachable") from e

    logger.info(f"Uploaded {filename} to storage → {res.path}")
    return res.path


def download_file(path: str) -> bytes:
    try:
        return get_supabase().storage.from_(settings.supabase_bucket).download(path)
    except DependencyFailure:
        raise
    except Exception as e:
        logger.exception(f"Error when getting file '{path}'")
        raise DependencyFailure(f"File download failed: {e}", "file_store_unreachable") from e


def delete_file(path: str) -> None:
    try:
        get_supabase().storage.from_(settings.supabase_bucket).remove([path])
    except DependencyFailure:
        raise
    except Exception as e:
        logger.exception(f"Error when deleting file '{path}'")
        raise DependencyFailure(f"File delete failed: {e}", "file_store_unreachable") from e
