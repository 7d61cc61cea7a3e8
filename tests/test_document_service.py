import pytest

from pdfchat.errors import (
    DocumentNotFoundError, DownloadError, DuplicateDocumentError, EmbeddingProviderError, ExtractionError,
    InvalidStatusTransition, PersistenceError,
)
from pdfchat.models import DocumentStatus
from pdfchat.services.document_service import DocumentLifecycle
from pdfchat.text_extraction import render_pages

from conftest import FakeEmbeddingProvider, FakeExtractor


class TestProcessDocument:
    @pytest.mark.asyncio
    async def test_success(self, make_document_service, document_repo):
        service = make_document_service()

        result = await service.process_document("pdfs", "manuals/warranty.pdf", "Warranty")

        doc = document_repo.get_document(result.document_id)
        assert doc.status is DocumentStatus.COMPLETE
        assert doc.file_name == "warranty.pdf"
        assert result.page_count == 2
        assert doc.page_count == 2
        assert result.chunk_count == document_repo.count_chunks(doc.id) == document_repo.count_embeddings(doc.id)
        pages = [row["chunk"].page_number for row in document_repo.chunks[doc.id]]
        assert pages == [1, 2]

    @pytest.mark.asyncio
    async def test_download_failure_creates_nothing(self, make_document_service, document_repo):
        with pytest.raises(DownloadError):
            await make_document_service().process_document("pdfs", "missing.pdf", "Missing")
        assert document_repo.documents == {}

    @pytest.mark.asyncio
    async def test_extraction_failure_marks_failed(self, make_document_service, document_repo):
        service = make_document_service(extractor=FakeExtractor(error=ExtractionError("parse job failed")))

        with pytest.raises(ExtractionError):
            await service.process_document("pdfs", "manuals/warranty.pdf", "Warranty")

        [doc] = document_repo.documents.values()
        assert doc.status is DocumentStatus.FAILED

    @pytest.mark.asyncio
    async def test_empty_text_marks_failed(self, make_document_service, document_repo):
        service = make_document_service(extractor=FakeExtractor("   "))
        with pytest.raises(ExtractionError):
            await service.process_document("pdfs", "manuals/warranty.pdf", "Warranty")
        [doc] = document_repo.documents.values()
        assert doc.status is DocumentStatus.FAILED

    @pytest.mark.asyncio
    async def test_embedding_failure_leaves_no_chunks_or_embeddings(self, make_document_service, document_repo):
        service = make_document_service(provider=FakeEmbeddingProvider(fail_on_call=1))

        with pytest.raises(EmbeddingProviderError):
            await service.process_document("pdfs", "manuals/warranty.pdf", "Warranty")

        [doc] = document_repo.documents.values()
        assert doc.status is DocumentStatus.FAILED
        assert document_repo.count_chunks(doc.id) == 0
        assert document_repo.count_embeddings(doc.id) == 0

    @pytest.mark.asyncio
    async def test_embedding_persistence_failure(self, make_document_service, document_repo):
        document_repo.fail_on.add("insert_embeddings")

        with pytest.raises(PersistenceError):
            await make_document_service().process_document("pdfs", "manuals/warranty.pdf", "Warranty")

        [doc] = document_repo.documents.values()
        assert doc.status is DocumentStatus.FAILED
        assert document_repo.count_chunks(doc.id) == 0

    @pytest.mark.asyncio
    async def test_duplicate_live_path_rejected(self, make_document_service, document_repo):
        service = make_document_service()
        await service.process_document("pdfs", "manuals/warranty.pdf", "Warranty")

        with pytest.raises(DuplicateDocumentError):
            await service.process_document("pdfs", "manuals/warranty.pdf", "Warranty again")
        assert len(document_repo.documents) == 1

    @pytest.mark.asyncio
    async def test_failed_path_can_be_retried(self, make_document_service, document_repo):
        failing = make_document_service(extractor=FakeExtractor(error=ExtractionError("boom")))
        with pytest.raises(ExtractionError):
            await failing.process_document("pdfs", "manuals/warranty.pdf", "Warranty")

        result = await make_document_service().process_document("pdfs", "manuals/warranty.pdf", "Warranty")
        assert document_repo.get_document(result.document_id).status is DocumentStatus.COMPLETE
        assert len(document_repo.documents) == 2

    @pytest.mark.asyncio
    async def test_many_chunks_embedded_in_batches(self, make_document_service, document_repo):
        text = " ".join(f"Sentence {i} carries some filler words for length." for i in range(600))
        provider = FakeEmbeddingProvider()
        service = make_document_service(extractor=FakeExtractor(text), provider=provider, batch_size=10)

        result = await service.process_document("pdfs", "manuals/warranty.pdf", "Warranty")

        assert result.chunk_count > 10
        assert sum(len(call) for call in provider.calls) == result.chunk_count
        assert all(len(call) <= 10 for call in provider.calls)


class TestUploadAndProcess:
    @pytest.mark.asyncio
    async def test_stores_under_unique_path(self, make_document_service, document_repo, blob_store):
        service = make_document_service()

        first = await service.upload_and_process("report.pdf", b"%PDF-1", None)
        second = await service.upload_and_process("report.pdf", b"%PDF-2", "Report v2")

        paths = [document_repo.get_document(r.document_id).storage_path for r in (first, second)]
        assert paths[0] != paths[1]
        assert all(p.endswith("/report.pdf") for p in paths)
        assert document_repo.get_document(first.document_id).title == "report.pdf"
        assert document_repo.get_document(second.document_id).title == "Report v2"
        assert ("pdfs", paths[1]) in blob_store.objects

    @pytest.mark.asyncio
    async def test_directory_parts_are_dropped(self, make_document_service, document_repo):
        result = await make_document_service().upload_and_process("../../etc/passwd.pdf", b"%PDF", None)
        doc = document_repo.get_document(result.document_id)
        assert doc.file_name == "passwd.pdf"
        assert ".." not in doc.storage_path


class TestDocumentQueries:
    @pytest.mark.asyncio
    async def test_list_get_delete(self, make_document_service, document_repo):
        service = make_document_service()
        result = await service.process_document("pdfs", "manuals/warranty.pdf", "Warranty")

        [summary] = service.list_documents()
        assert summary.document.id == result.document_id
        assert summary.num_chunks == result.chunk_count
        assert service.get_document(result.document_id).title == "Warranty"

        service.delete_document(result.document_id)
        with pytest.raises(DocumentNotFoundError):
            service.get_document(result.document_id)
        with pytest.raises(DocumentNotFoundError):
            service.delete_document(result.document_id)


class TestDocumentLifecycle:
    def _new(self, document_repo):
        doc = document_repo.create_document(
            title="t", file_name="t.pdf", file_size=1, bucket="b", storage_path="p", page_count=None,
        )
        return DocumentLifecycle(document_repo, doc)

    def test_complete_sets_page_count(self, document_repo):
        lifecycle = self._new(document_repo)
        lifecycle.complete(page_count=7)
        doc = document_repo.get_document(lifecycle.document_id)
        assert doc.status is DocumentStatus.COMPLETE
        assert doc.page_count == 7

    def test_no_transition_out_of_complete(self, document_repo):
        lifecycle = self._new(document_repo)
        lifecycle.complete()

        assert lifecycle.fail() is False
        with pytest.raises(InvalidStatusTransition):
            lifecycle.complete()
        assert document_repo.get_document(lifecycle.document_id).status is DocumentStatus.COMPLETE

    def test_no_transition_out_of_failed(self, document_repo):
        lifecycle = self._new(document_repo)
        assert lifecycle.fail() is True
        with pytest.raises(InvalidStatusTransition):
            lifecycle.complete()

    def test_stale_status_is_rejected(self, document_repo):
        lifecycle = self._new(document_repo)
        other = DocumentLifecycle(document_repo, document_repo.get_document(lifecycle.document_id))
        other.fail()

        with pytest.raises(InvalidStatusTransition):
            lifecycle.complete()

    def test_fail_swallows_store_errors(self, document_repo):
        lifecycle = self._new(document_repo)
        document_repo.fail_on.add("update_status")
        assert lifecycle.fail() is False


class TestTextlessDocuments:
    @pytest.mark.asyncio
    async def test_pages_without_text_mark_failed(self, make_document_service, document_repo):
        service = make_document_service(extractor=FakeExtractor(render_pages(["", ""])))

        with pytest.raises(ExtractionError, match="No extractable text"):
            await service.process_document("pdfs", "manuals/warranty.pdf", "Warranty")

        [doc] = document_repo.documents.values()
        assert doc.status is DocumentStatus.FAILED
        assert document_repo.count_chunks(doc.id) == 0
