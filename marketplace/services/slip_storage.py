# marketplace/services/slip_storage.py
"""
Media storage for payment slips: takes an uploaded file, returns a stable
URL. The payment workflow stores only that URL.
"""
import logging
import os
import shutil
import time
from typing import BinaryIO, Optional

from slugify import slugify

from marketplace.config import settings
from marketplace.errors import InvalidArgumentError

logger = logging.getLogger(__name__)

ALLOWED_CONTENT_TYPES = {"image/jpeg", "image/png", "image/webp", "application/pdf"}
SLIP_FOLDER = "payment-slips"


def slip_filename(payment_id: int, original_name: Optional[str]) -> str:
    base, ext = os.path.splitext(original_name or "")
    ext = ext.lower().lstrip(".") or "jpg"
    stem = slugify(base) or "slip"
    return f"payment_{payment_id}_{stem}_{int(time.time() * 1000)}.{ext}"


def _check_size(fileobj: BinaryIO) -> None:
    fileobj.seek(0, os.SEEK_END)
    size = fileobj.tell()
    fileobj.seek(0)

    if size == 0:
        raise InvalidArgumentError("Slip file is empty")
    if size > settings.max_slip_bytes:
        raise InvalidArgumentError(
            f"Slip file is larger than {settings.max_slip_bytes} bytes"
        )


def _save_local(fileobj: BinaryIO, filename: str) -> str:
    folder = os.path.join(settings.upload_dir, SLIP_FOLDER)
    os.makedirs(folder, exist_ok=True)

    with open(os.path.join(folder, filename), "wb") as out:
        shutil.copyfileobj(fileobj, out)

    return f"{settings.server_url.rstrip('/')}/uploads/{SLIP_FOLDER}/{filename}"


def _save_r2(fileobj: BinaryIO, filename: str, content_type: str) -> str:
    from marketplace.services.r2_client import public_url, upload_to_r2

    key = upload_to_r2(fileobj, f"{SLIP_FOLDER}/{filename}", content_type)
    return public_url(key)


def save_slip(
    payment_id: int,
    fileobj: BinaryIO,
    original_name: Optional[str],
    content_type: Optional[str],
) -> str:
    if content_type not in ALLOWED_CONTENT_TYPES:
        raise InvalidArgumentError(f"Unsupported slip file type: {content_type}")

    _check_size(fileobj)
    filename = slip_filename(payment_id, original_name)

    if settings.slip_storage_backend == "r2":
        url = _save_r2(fileobj, filename, content_type)
    else:
        url = _save_local(fileobj, filename)

    logger.info(f"Stored slip for payment {payment_id} at {url}")
    return url


def discard_slip(url: str) -> None:
    """Remove a stored slip that never got attached to a payment."""
    local_prefix = f"{settings.server_url.rstrip('/')}/uploads/{SLIP_FOLDER}/"
    r2_prefix = f"{settings.r2_public_base.rstrip('/')}/" if settings.r2_public_base else None

    if url.startswith(local_prefix):
        path = os.path.join(settings.upload_dir, SLIP_FOLDER, os.path.basename(url))
        try:
            os.remove(path)
        except FileNotFoundError:
            return
        except OSError:
            logger.exception(f"Could not remove slip file {path}")
            return
    elif r2_prefix and url.startswith(r2_prefix):
        from marketplace.services.r2_client import delete_from_r2

        delete_from_r2(url[len(r2_prefix):])
    else:
        logger.warning(f"Slip at {url} is not in a known store, left in place")
        return

    logger.info(f"Discarded slip {url}")
