"""
File storage for step attachments.

Content is written under ``UPLOAD_FOLDER`` using a storage key built from a
random prefix plus ``werkzeug.utils.secure_filename`` of the display name, so
the key is always filesystem-safe and unique while the original name is kept
separately for display.

Deletion is best-effort: a missing file counts as already cleaned up and an
OS error is logged, never raised.
"""

import logging
import os
import uuid

from flask import current_app
from werkzeug.utils import secure_filename

logger = logging.getLogger(__name__)

_MAX_NAME_LEN = 200


def upload_folder() -> str:
    folder = current_app.config["UPLOAD_FOLDER"]
    os.makedirs(folder, exist_ok=True)
    return folder


def make_storage_key(display_name: str | None) -> str:
    """Return ``<hex>_<sanitized name>``; falls back to ``file`` for unusable names."""
    safe = secure_filename(display_name or "") or "file"
    if len(safe) > _MAX_NAME_LEN:
        root, ext = os.path.splitext(safe)
        safe = root[: _MAX_NAME_LEN - len(ext)] + ext
    return f"{uuid.uuid4().hex}_{safe}"


def path_for(storage_key: str) -> str:
    # basename() keeps any stored key inside UPLOAD_FOLDER
    return os.path.join(upload_folder(), os.path.basename(storage_key))


def save(stream, display_name: str | None) -> tuple[str, int]:
    """Write *stream* to a new storage key. Returns ``(storage_key, size_bytes)``."""
    storage_key = make_storage_key(display_name)
    target = path_for(storage_key)
    size = 0
    with open(target, "wb") as fh:
        while True:
            chunk = stream.read(64 * 1024)
            if not chunk:
                break
            fh.write(chunk)
            size += len(chunk)
    logger.debug("Stored upload %s (%d bytes)", storage_key, size)
    return storage_key, size


def delete_quietly(storage_key: str | None) -> bool:
    """Remove stored content. Returns True if a file was removed."""
    if not storage_key:
        return False
    target = path_for(storage_key)
    try:
        os.remove(target)
        return True
    except FileNotFoundError:
        logger.info("Stored file %s already absent", storage_key)
        return False
    except OSError:
        logger.warning("Could not delete stored file %s", storage_key, exc_info=True)
        return False


def delete_many_quietly(storage_keys) -> int:
    return sum(1 for key in storage_keys if delete_quietly(key))
