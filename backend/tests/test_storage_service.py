import pytest

from conftest import PNG_BYTES, png_upload
from subshop.errors import ValidationError
from subshop.services import storage_service


@pytest.mark.parametrize("mimetype", ["image/png", "image/heic", "image/avif", "application/pdf"])
def test_proof_buckets_take_any_raster_image_or_pdf(app, mimetype):
    for bucket in (storage_service.BUCKET_PAYMENT_SCREENSHOTS, storage_service.BUCKET_PREMIUM_PROOFS):
        data = storage_service.validate_upload(png_upload(filename="proof", content_type=mimetype), bucket)
        assert data == PNG_BYTES


@pytest.mark.parametrize("mimetype", ["image/svg+xml", "image/", "text/plain", "application/zip"])
def test_proof_buckets_reject_other_types(app, mimetype):
    with pytest.raises(ValidationError):
        storage_service.validate_upload(
            png_upload(filename="proof", content_type=mimetype),
            storage_service.BUCKET_PAYMENT_SCREENSHOTS,
        )


def test_catalog_buckets_keep_common_web_images(app):
    storage_service.validate_upload(png_upload(), storage_service.BUCKET_PRODUCT_IMAGES)

    for mimetype in ("image/heic", "application/pdf"):
        with pytest.raises(ValidationError):
            storage_service.validate_upload(
                png_upload(filename="logo", content_type=mimetype),
                storage_service.BUCKET_PRODUCT_IMAGES,
            )


def test_stored_name_takes_extension_from_mimetype(app):
    url = storage_service.store_upload(
        png_upload(filename="IMG_0042", content_type="image/heic"),
        storage_service.BUCKET_PAYMENT_SCREENSHOTS,
        prefix="order-7",
    )

    name = url.rsplit("/", 1)[-1]
    assert name.startswith("order-7-")
    assert name.endswith(".heic")


def test_size_limit_is_inclusive(app, monkeypatch):
    monkeypatch.setitem(app.config, "MAX_UPLOAD_BYTES", len(PNG_BYTES))

    assert storage_service.validate_upload(png_upload(), storage_service.BUCKET_QR_CODES) == PNG_BYTES
    with pytest.raises(ValidationError):
        storage_service.validate_upload(png_upload(data=PNG_BYTES + b"\x00"), storage_service.BUCKET_QR_CODES)
