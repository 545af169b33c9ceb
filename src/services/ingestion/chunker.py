"""Token-bounded text chunking with overlapping windows.

Splits a document into :class:`~src.models.chunk.ChunkRecord` objects
sized for the embedding model: between ``min_tokens`` (500) and
``max_tokens`` (1000) tokens each, consecutive chunks sharing
``overlap_tokens`` (150) tokens.

Tokens come from a fixed tiktoken encoding (``cl100k_base``, the encoding
of ``text-embedding-3-large``) so chunk boundaries are reproducible: the
same text always yields the same chunk ids, ranges and checksums.

Window walk over the token array of length ``total``::

    end = min(start + max, total)
    if end < total and total - end < min:
        # the tail would be too short -- pull ``end`` back so the final
        # window still holds at least ``min`` tokens
        end = min(total, max(start + min, end - (min - (total - end))))
    emit [start, end)
    stop when end == total, otherwise start = end - overlap

Only a document shorter than ``min_tokens`` produces a chunk below the
minimum (its single chunk).
"""

from __future__ import annotations

import hashlib
from typing import Protocol

import structlog
import tiktoken

from src.models.chunk import (
    ChunkingResult,
    ChunkMetadata,
    ChunkRecord,
    ChunkStatus,
    DocumentSource,
    TokenRange,
    build_chunk_id,
)
from src.services.language_detector import detect_language
from src.utils.errors import ConfigurationError

logger = structlog.get_logger(logger_name=__name__)

MIN_TOKENS_PER_CHUNK = 500
MAX_TOKENS_PER_CHUNK = 1000
TOKEN_OVERLAP = 150
DEFAULT_ENCODING = "cl100k_base"


class TokenEncoding(Protocol):
    """The subset of :class:`tiktoken.Encoding` the chunker relies on."""

    def encode_ordinary(self, text: str) -> list[int]: ...

    def decode(self, tokens: list[int]) -> str: ...


def compute_checksum(text: str) -> str:
    """SHA-256 hex digest of *text* (UTF-8)."""
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def compute_windows(
    total: int,
    min_tokens: int = MIN_TOKENS_PER_CHUNK,
    max_tokens: int = MAX_TOKENS_PER_CHUNK,
    overlap: int = TOKEN_OVERLAP,
) -> list[tuple[int, int]]:
    """Return the ``[start, end)`` token windows for a document of *total* tokens."""
    windows: list[tuple[int, int]] = []
    start = 0
    while start < total:
        end = min(start + max_tokens, total)
        if end < total:
            remaining = total - end
            if remaining < min_tokens:
                shortfall = min_tokens - remaining
                end = min(total, max(start + min_tokens, end - shortfall))

        windows.append((start, end))
        if end == total:
            break
        start = max(0, end - overlap)
    return windows


class TextChunker:
    """Splits documents into overlapping, token-bounded chunks.

    Parameters
    ----------
    encoding:
        Tokenizer to use.  Defaults to tiktoken's ``cl100k_base``, loaded
        lazily on first use.
    min_tokens, max_tokens, overlap:
        Window bounds.  Must satisfy ``0 <= overlap < min_tokens <= max_tokens``.
    """

    def __init__(
        self,
        encoding: TokenEncoding | None = None,
        min_tokens: int = MIN_TOKENS_PER_CHUNK,
        max_tokens: int = MAX_TOKENS_PER_CHUNK,
        overlap: int = TOKEN_OVERLAP,
        encoding_name: str = DEFAULT_ENCODING,
    ) -> None:
        if not 0 <= overlap < min_tokens <= max_tokens:
            raise ConfigurationError(
                f"Invalid chunk bounds: overlap={overlap}, min={min_tokens}, max={max_tokens}"
            )
        self._encoding = encoding
        self._encoding_name = encoding_name
        self._min_tokens = min_tokens
        self._max_tokens = max_tokens
        self._overlap = overlap

    @property
    def encoding(self) -> TokenEncoding:
        if self._encoding is None:
            self._encoding = tiktoken.get_encoding(self._encoding_name)
        return self._encoding

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def count_tokens(self, text: str) -> int:
        return len(self.encoding.encode_ordinary(text))

    def chunk_document(
        self,
        document_id: str,
        text: str,
        job_id: str,
        source: DocumentSource,
    ) -> ChunkingResult:
        """Split *text* into :class:`ChunkRecord` objects with status ``queued``.

        Parameters
        ----------
        document_id:
            Identifier of the document; prefix of every chunk id.
        text:
            The full document text.  Empty text yields no chunks.
        job_id:
            Id of the chunking job, copied into every chunk's metadata.
        source:
            Provenance copied into every chunk's metadata.

        Returns
        -------
        ChunkingResult
            The detected document language and the chunks in index order.
        """
        language = detect_language(text)
        tokens = self.encoding.encode_ordinary(text)
        if not tokens:
            return ChunkingResult(language=language, chunks=[])

        windows = compute_windows(
            len(tokens), self._min_tokens, self._max_tokens, self._overlap
        )

        chunks: list[ChunkRecord] = []
        for index, (start, end) in enumerate(windows):
            chunk_text = self.encoding.decode(tokens[start:end])
            metadata = ChunkMetadata.from_source(
                source,
                language=language,
                checksum=compute_checksum(chunk_text),
                job_id=job_id,
            )
            chunks.append(
                ChunkRecord(
                    chunk_id=build_chunk_id(document_id, index),
                    document_id=document_id,
                    chunk_index=index,
                    text=chunk_text,
                    token_count=end - start,
                    token_range=TokenRange(start=start, end=end),
                    metadata=metadata,
                    status=ChunkStatus.QUEUED,
                )
            )

        logger.debug(
            "chunking_complete",
            document_id=document_id,
            language=language.value,
            total_tokens=len(tokens),
            num_chunks=len(chunks),
        )
        return ChunkingResult(language=language, chunks=chunks)
