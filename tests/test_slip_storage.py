import io
import os

import pytest

from marketplace.config import settings
from marketplace.errors import InvalidArgumentError
from marketplace.services import r2_client, slip_storage


class TestSaveSlip:
    def test_local_backend_writes_file(self):
        url = slip_storage.save_slip(12, io.BytesIO(b"png-bytes"), "Bank Slip.PNG", "image/png")

        filename = url.rsplit("/", 1)[1]
        assert url.startswith("http://testserver/uploads/payment-slips/payment_12_bank-slip_")
        assert filename.endswith(".png")
        with open(os.path.join(settings.upload_dir, "payment-slips", filename), "rb") as f:
            assert f.read() == b"png-bytes"

    def test_rejects_unknown_type(self):
        with pytest.raises(InvalidArgumentError):
            slip_storage.save_slip(1, io.BytesIO(b"x"), "slip.gif", "image/gif")

    def test_rejects_empty_file(self):
        with pytest.raises(InvalidArgumentError):
            slip_storage.save_slip(1, io.BytesIO(b""), "slip.png", "image/png")

    def test_rejects_oversized_file(self, monkeypatch):
        monkeypatch.setattr(settings, "max_slip_bytes", 4)
        with pytest.raises(InvalidArgumentError):
            slip_storage.save_slip(1, io.BytesIO(b"12345"), "slip.png", "image/png")

    def test_r2_backend(self, monkeypatch):
        uploaded = {}

        def fake_upload(fileobj, key, content_type):
            uploaded[key] = (fileobj.read(), content_type)
            return key

        monkeypatch.setattr(settings, "slip_storage_backend", "r2")
        monkeypatch.setattr(settings, "r2_public_base", "https://cdn.example.com/")
        monkeypatch.setattr(r2_client, "upload_to_r2", fake_upload)

        url = slip_storage.save_slip(5, io.BytesIO(b"pdf"), "slip.pdf", "application/pdf")

        [key] = uploaded
        assert key.startswith("payment-slips/payment_5_slip_")
        assert uploaded[key] == (b"pdf", "application/pdf")
        assert url == f"https://cdn.example.com/{key}"


def test_filename_without_name():
    assert slip_storage.slip_filename(3, None).startswith("payment_3_slip_")
    assert slip_storage.slip_filename(3, None).endswith(".jpg")


class TestDiscardSlip:
    def test_removes_local_file(self):
        url = slip_storage.save_slip(8, io.BytesIO(b"png-bytes"), "slip.png", "image/png")
        path = os.path.join(settings.upload_dir, "payment-slips", url.rsplit("/", 1)[1])
        assert os.path.exists(path)

        slip_storage.discard_slip(url)

        assert not os.path.exists(path)

    def test_missing_local_file_is_ignored(self):
        slip_storage.discard_slip("http://testserver/uploads/payment-slips/payment_1_gone_1.png")

    def test_removes_r2_object(self, monkeypatch):
        deleted = []
        monkeypatch.setattr(settings, "r2_public_base", "https://cdn.example.com")
        monkeypatch.setattr(r2_client, "delete_from_r2", deleted.append)

        slip_storage.discard_slip("https://cdn.example.com/payment-slips/payment_5_slip_1.pdf")

        assert deleted == ["payment-slips/payment_5_slip_1.pdf"]

    def test_unknown_location_is_left_alone(self, monkeypatch):
        deleted = []
        monkeypatch.setattr(r2_client, "delete_from_r2", deleted.append)

        slip_storage.discard_slip("https://elsewhere.example.com/slip.png")

        assert deleted == []
