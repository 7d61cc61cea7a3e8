import pytest
from sqlalchemy.exc import OperationalError

from pdfchat.errors import RetrievalError
from pdfchat.retrieval import RetrievalEngine, RetrievedChunk
from pdfchat.utils.helpers import assemble, build_citations, build_context

from conftest import FakeSearch


def match(chunk_id, page, similarity, content=None):
    return RetrievedChunk(chunk_id, page, content or f"content of {chunk_id}", similarity)


class TestRetrievalEngine:
    def test_fixed_parameters_passed_to_search(self):
        search = FakeSearch()
        RetrievalEngine(search).retrieve("doc-1", [0.1, 0.2])
        assert search.calls == [{"document_id": "doc-1", "threshold": 0.7, "limit": 5}]

    def test_orders_by_similarity_and_truncates(self):
        rows = [match(f"c{i}", i, 0.7 + i / 100) for i in range(8)]
        results = RetrievalEngine(FakeSearch(rows)).retrieve("doc-1", [0.0])

        assert [r.chunk_id for r in results] == ["c7", "c6", "c5", "c4", "c3"]

    def test_drops_rows_below_threshold(self):
        rows = [match("low", 1, 0.69), match("edge", 2, 0.7), match("high", 3, 0.95)]
        results = RetrievalEngine(FakeSearch(rows)).retrieve("doc-1", [0.0])
        assert [r.chunk_id for r in results] == ["high", "edge"]

    def test_empty_result_is_not_an_error(self):
        assert RetrievalEngine(FakeSearch([])).retrieve("doc-1", [0.0]) == []

    def test_store_error_becomes_retrieval_error(self):
        error = OperationalError("SELECT", {}, Exception("connection refused"))
        with pytest.raises(RetrievalError):
            RetrievalEngine(FakeSearch(error=error)).retrieve("doc-1", [0.0])

    def test_custom_threshold_and_top_k(self):
        rows = [match("a", 1, 0.5), match("b", 2, 0.4)]
        results = RetrievalEngine(FakeSearch(rows), threshold=0.45, top_k=1).retrieve("doc-1", [0.0])
        assert [r.chunk_id for r in results] == ["a"]


class TestAssembler:
    def test_context_blocks_in_retrieval_order(self):
        matches = [match("a", 4, 0.9, "Fourth page text."), match("b", 1, 0.8, "First page text.")]
        assert build_context(matches) == "[Page 4] Fourth page text.\n\n[Page 1] First page text."

    def test_citation_snippet_truncated_with_ellipsis(self):
        content = "x" * 250
        [citation] = build_citations([match("a", 2, 0.83, content)])
        assert citation.page == 2
        assert citation.content == "x" * 100 + "..."
        assert citation.similarity == pytest.approx(0.83)

    def test_short_content_still_gets_ellipsis(self):
        [citation] = build_citations([match("a", 1, 0.75, "Short.")])
        assert citation.content == "Short...."

    def test_assemble(self):
        matches = [match("a", 3, 0.91, "Revenue grew."), match("b", 5, 0.72, "Costs fell.")]
        assembled = assemble(matches)

        assert assembled.context_text.startswith("[Page 3] Revenue grew.")
        assert [c.page for c in assembled.citations] == [3, 5]

    def test_assemble_requires_matches(self):
        with pytest.raises(ValueError):
            assemble([])
