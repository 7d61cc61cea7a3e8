import pytest

from pdfchat.db.migrations import _split_statements
from pdfchat.errors import DownloadError
from pdfchat.storage import LocalBlobStore


class TestLocalBlobStore:
    def test_upload_then_download(self, tmp_path):
        store = LocalBlobStore(str(tmp_path))
        store.upload("pdfs", "abc/report.pdf", b"%PDF-1.4")
        assert store.download("pdfs", "abc/report.pdf") == b"%PDF-1.4"
        assert (tmp_path / "pdfs" / "abc" / "report.pdf").exists()

    def test_missing_object(self, tmp_path):
        with pytest.raises(DownloadError):
            LocalBlobStore(str(tmp_path)).download("pdfs", "missing.pdf")

    def test_path_cannot_escape_root(self, tmp_path):
        store = LocalBlobStore(str(tmp_path / "store"))
        with pytest.raises(DownloadError):
            store.download("pdfs", "../../outside.pdf")


class TestSplitStatements:
    def test_comments_and_blank_statements_dropped(self):
        sql = """
        -- create things
        CREATE TABLE a (id int);

        -- and more
        CREATE INDEX a_idx ON a (id);
        ;
        """
        assert _split_statements(sql) == ["CREATE TABLE a (id int)", "CREATE INDEX a_idx ON a (id)"]
