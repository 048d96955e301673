import gzip

import pytest

from app.services.pipeline.errors import UploadNotFoundError
from app.services.storage.upload_store import UnsupportedUploadError, upload_suffix

VCF_TEXT = "##fileformat=VCFv4.2\n#CHROM\tPOS\tID\tREF\tALT\tQUAL\tFILTER\tINFO\n"


class TestLocalUploadStore:
    def test_save_and_stream(self, upload_store):
        handle = upload_store.save("patient.vcf", VCF_TEXT.encode())
        assert len(handle) == 32
        assert upload_store.exists(handle)
        with upload_store.open_stream(handle) as stream:
            assert stream.read() == VCF_TEXT

    def test_gzip_is_decompressed(self, upload_store):
        handle = upload_store.save("patient.VCF.GZ", gzip.compress(VCF_TEXT.encode()))
        with upload_store.open_stream(handle) as stream:
            assert list(stream)[0] == "##fileformat=VCFv4.2\n"

    def test_gz_suffix_requires_gzip_content(self, upload_store):
        with pytest.raises(UnsupportedUploadError):
            upload_store.save("patient.vcf.gz", VCF_TEXT.encode())

    def test_delete(self, upload_store):
        handle = upload_store.save("patient.vcf", VCF_TEXT.encode())
        assert upload_store.delete(handle) is True
        assert not upload_store.exists(handle)
        assert upload_store.delete(handle) is False

    @pytest.mark.parametrize("handle", ["0" * 32, "../../etc/passwd", ""])
    def test_unknown_handle(self, upload_store, handle):
        with pytest.raises(UploadNotFoundError):
            with upload_store.open_stream(handle):
                pass


@pytest.mark.parametrize("filename,suffix", [
    ("a.vcf", ".vcf"),
    ("A.VCF", ".vcf"),
    ("a.vcf.gz", ".vcf.gz"),
])
def test_upload_suffix(filename, suffix):
    assert upload_suffix(filename) == suffix


@pytest.mark.parametrize("filename", ["a.txt", "a.gz", None, "vcf"])
def test_upload_suffix_rejects(filename):
    with pytest.raises(UnsupportedUploadError):
        upload_suffix(filename)
