# Overview: Write-once object storage for payment proofs and catalog images.

"""
Uploads are written to UPLOAD_ROOT/<bucket>/<name> and exposed as
PUBLIC_UPLOAD_URL/<bucket>/<name>. Files are validated before anything
touches the disk: size must not exceed MAX_UPLOAD_BYTES and the declared
MIME type must be one of the bucket's allowed types. Payment and premium
proof buckets take any raster image/* type plus PDF.
"""

from __future__ import annotations

import logging
import os
import secrets

from flask import current_app
from werkzeug.utils import secure_filename

from ..errors import UploadError, ValidationError
from ..time_utils import utcnow

logger = logging.getLogger(__name__)

BUCKET_PAYMENT_SCREENSHOTS = "payment-screenshots"
BUCKET_PREMIUM_PROOFS = "premium-proofs"
BUCKET_PRODUCT_IMAGES = "product-images"
BUCKET_QR_CODES = "qr-codes"

IMAGE_TYPES = {"image/jpeg", "image/png", "image/gif", "image/webp"}
PROOF_TYPES = IMAGE_TYPES | {"application/pdf"}

BUCKET_ALLOWED_TYPES = {
    BUCKET_PAYMENT_SCREENSHOTS: PROOF_TYPES,
    BUCKET_PREMIUM_PROOFS: PROOF_TYPES,
    BUCKET_PRODUCT_IMAGES: IMAGE_TYPES,
    BUCKET_QR_CODES: IMAGE_TYPES,
}

ANY_IMAGE_BUCKETS = {BUCKET_PAYMENT_SCREENSHOTS, BUCKET_PREMIUM_PROOFS}

EXTENSION_BY_TYPE = {
    "image/jpeg": "jpg",
    "image/png": "png",
    "image/gif": "gif",
    "image/webp": "webp",
    "application/pdf": "pdf",
}


def _max_bytes() -> int:
    return int(current_app.config.get("MAX_UPLOAD_BYTES", 10 * 1024 * 1024))


def is_allowed_type(mimetype: str, bucket: str) -> bool:
    if mimetype in BUCKET_ALLOWED_TYPES.get(bucket, ()):
        return True
    if bucket not in ANY_IMAGE_BUCKETS or mimetype == "image/svg+xml":
        return False
    return mimetype.startswith("image/") and len(mimetype) > len("image/")


def validate_upload(file, bucket: str) -> bytes:
    """
    Read and validate an uploaded file (werkzeug FileStorage or similar).

    Returns the file bytes. Raises ValidationError for a missing, empty,
    oversized or wrongly typed file.
    """
    if file is None or not getattr(file, "filename", None):
        raise ValidationError("A file is required")

    allowed = BUCKET_ALLOWED_TYPES.get(bucket)
    if allowed is None:
        raise ValidationError(f"Unknown upload bucket: {bucket}")

    mimetype = (getattr(file, "mimetype", None) or "").lower()
    if not is_allowed_type(mimetype, bucket):
        raise ValidationError(
            "Invalid file type. Please upload an image"
            + (" or PDF" if "application/pdf" in allowed else " (JPEG, PNG, GIF, WebP)"),
            details={"mimetype": mimetype, "allowed": sorted(allowed)},
        )

    max_bytes = _max_bytes()
    data = file.stream.read(max_bytes + 1)
    if len(data) > max_bytes:
        raise ValidationError(
            f"File size must be less than {max_bytes // (1024 * 1024)}MB",
            details={"max_bytes": max_bytes},
        )
    if not data:
        raise ValidationError("Uploaded file is empty")
    return data


def _subtype_extension(mimetype: str) -> str:
    subtype = mimetype.partition("/")[2].split("+", 1)[0]
    return subtype if subtype.isalnum() and len(subtype) <= 5 else "bin"


def _build_name(prefix: str, original_name: str, mimetype: str) -> str:
    ext = original_name.rsplit(".", 1)[-1].lower() if "." in original_name else ""
    if not ext or len(ext) > 5:
        ext = EXTENSION_BY_TYPE.get(mimetype) or _subtype_extension(mimetype)
    stamp = utcnow().strftime("%Y%m%d%H%M%S")
    return secure_filename(f"{prefix}-{stamp}-{secrets.token_hex(4)}.{ext}")


def public_url(bucket: str, name: str) -> str:
    base = current_app.config.get("PUBLIC_UPLOAD_URL", "/uploads").rstrip("/")
    return f"{base}/{bucket}/{name}"


def bucket_path(bucket: str) -> str:
    return os.path.join(current_app.config["UPLOAD_ROOT"], bucket)


def store_upload(file, bucket: str, prefix: str) -> str:
    """
    Validate and persist an upload; returns its public URL.

    Raises ValidationError for bad input and UploadError if the file cannot
    be written.
    """
    data = validate_upload(file, bucket)
    name = _build_name(prefix, file.filename, (file.mimetype or "").lower())
    directory = bucket_path(bucket)
    try:
        os.makedirs(directory, exist_ok=True)
        # "xb" keeps uploads write-once
        with open(os.path.join(directory, name), "xb") as fh:
            fh.write(data)
    except OSError as exc:
        logger.error("Failed to store upload in %s: %s", bucket, exc)
        raise UploadError("Upload failed", details={"bucket": bucket}) from exc

    logger.info("Stored upload %s/%s (%d bytes)", bucket, name, len(data))
    return public_url(bucket, name)
