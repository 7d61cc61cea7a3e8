"""
Context and citation assembly for retrieved chunks.
"""
from dataclasses import dataclass
from typing import List, Sequence

from ..retrieval import RetrievedChunk
from ..schemas import Citation

CITATION_SNIPPET_CHARS = 100


@dataclass(frozen=True)
class AssembledContext:
    context_text: str
    citations: List[Citation]


def build_context(matches: Sequence[RetrievedChunk]) -> str:
    """
    Render matches, in retrieval order, as page-tagged paragraphs.

    Example:
        >>> build_context([RetrievedChunk("c1", 3, "Revenue grew.", 0.91)])
        '[Page 3] Revenue grew.'
    """
    return "\n\n".join(f"[Page {m.page_number}] {m.content}" for m in matches)


def build_citations(matches: Sequence[RetrievedChunk]) -> List[Citation]:
    """One citation per match: page, first 100 characters plus '...', score."""
    return [
        Citation(
            page=m.page_number,
            content=m.content[:CITATION_SNIPPET_CHARS] + "...",
            similarity=m.similarity,
        )
        for m in matches
    ]


def assemble(matches: Sequence[RetrievedChunk]) -> AssembledContext:
    """
    Turn ranked matches into prompt context and user-facing citations.
    Callers short-circuit on an empty match list instead of calling this.
    """
    if not matches:
        raise ValueError("assemble() needs at least one match")
    return AssembledContext(context_text=build_context(matches), citations=build_citations(matches))
