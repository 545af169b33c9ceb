"""Citation and prompt payload assembly for the answer-generation step."""

from __future__ import annotations

from src.models.chunk import DocumentLanguage
from src.models.retrieval import (
    Citation,
    KnowledgeChunk,
    PromptPayload,
    RetrievedContext,
    SourceKind,
)
from src.models.workspace import Workspace

SNIPPET_MAX_CHARS = 220

LANGUAGE_LABEL: dict[DocumentLanguage, str] = {
    DocumentLanguage.EN: "English",
    DocumentLanguage.NL: "Dutch",
}

_CONTEXT_INSTRUCTION = (
    "Reference the following context snippets when forming your answer. "
    "Prioritise factual accuracy and cite the most relevant snippet IDs."
)
_NO_CONTEXT_INSTRUCTION = (
    "No knowledge snippets are available. Rely on general guidance and "
    "transparently disclose the lack of context."
)


def citation_id(chunk_id: str) -> str:
    """``"C"`` followed by the first five characters of the chunk id, upper-cased."""
    return f"C{chunk_id[:5].upper()}"


def create_citation(chunk: KnowledgeChunk) -> Citation:
    content = chunk.content
    snippet = content[:SNIPPET_MAX_CHARS] + "…" if len(content) > SNIPPET_MAX_CHARS else content
    if chunk.source.kind == SourceKind.URL:
        return Citation(
            id=citation_id(chunk.id),
            title=chunk.source.title,
            snippet=snippet,
            url=chunk.source.url,
        )
    return Citation(
        id=citation_id(chunk.id),
        title=chunk.source.title,
        snippet=snippet,
        filename=chunk.source.filename,
    )


def _format_context(context: RetrievedContext) -> str:
    lines = [f"[{context.citation.id}] {context.summary}"]
    if context.keywords:
        lines.append(f"Keywords: {', '.join(context.keywords)}")
    lines.append(context.content)
    return "\n".join(line for line in lines if line)


def build_prompt_payload(
    workspace: Workspace,
    language: DocumentLanguage,
    query: str,
    contexts: list[RetrievedContext],
) -> PromptPayload:
    """Build the system text, instructions and citation list for one query.

    The instructions are, separated by blank lines: the user query, the
    brand palette, a context instruction (or a no-context disclaimer) and
    the formatted context blocks.
    """
    label = LANGUAGE_LABEL.get(language, "the user's language")
    tone = workspace.tone_of_voice
    system = " ".join(
        [
            f"You are the knowledge assistant for {workspace.name}.",
            f"Respond in {label} using a {tone.value} tone.",
            "Respect the workspace brand voice and do not fabricate sources.",
            "Cite supporting snippets using bracketed identifiers like [C1].",
        ]
    )

    brand = workspace.branding
    brand_details = (
        f"Brand palette: primary {brand.primary}, accent {brand.accent}, "
        f"background {brand.background}."
    )

    sections = [
        f"User query: {query}",
        brand_details,
        _CONTEXT_INSTRUCTION if contexts else _NO_CONTEXT_INSTRUCTION,
        "\n\n".join(_format_context(c) for c in contexts),
    ]

    return PromptPayload(
        system=system,
        tone=tone,
        language=language,
        brand=brand,
        instructions="\n\n".join(s for s in sections if s),
        citations=[c.citation for c in contexts],
    )
