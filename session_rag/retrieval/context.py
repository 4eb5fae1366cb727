"""
Context Assembly

Builds the length-bounded context string handed to a chat model, with the
list of files it came from.
"""

from dataclasses import dataclass, field
from typing import List, Sequence

from ..indexing.models import SearchHit


@dataclass
class AssembledContext:
    context: str = ""
    sources: List[str] = field(default_factory=list)


def assemble_context(
    hits: Sequence[SearchHit],
    max_chars: int = 2000,
    min_partial: int = 100
) -> AssembledContext:
    """
    Concatenate hit contents in rank order within max_chars.

    When the next hit no longer fits but more than min_partial characters
    remain, a truncated slice of it ending in "..." is added instead.
    Sources lists the distinct filenames of the hits that made it in.
    """
    context = ""
    sources: List[str] = []

    for hit in hits:
        addition = f"{hit.content}\n\n"

        if len(context) + len(addition) > max_chars:
            # Try to fit partial content if there's space
            remaining = max_chars - len(context)
            if remaining > min_partial:
                context += hit.content[:remaining - 10] + "...\n\n"
                if hit.filename not in sources:
                    sources.append(hit.filename)
            break

        context += addition
        if hit.filename not in sources:
            sources.append(hit.filename)

    return AssembledContext(context=context.strip(), sources=sources)


def build_prompt_context(context: str, sources: Sequence[str]) -> str:
    """Wrap assembled context in the instruction block sent to a chat model."""
    if not context.strip():
        return ""

    source_list = f"\n\nSources: {', '.join(sources)}" if sources else ""

    return (
        "Based on the following information from uploaded documents:\n\n"
        f"{context}{source_list}\n\n"
        "Please provide a detailed answer based on this context. If the context "
        "doesn't contain enough information to fully answer the question, please "
        "indicate what additional information might be needed."
    )
