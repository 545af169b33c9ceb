"""Document ingestion pipeline for the workspace knowledge base.

Turns raw document text into persisted, vectorized chunks:

1. **Enqueue** (training_pipeline.py / TrainingPipeline) -- validates the
   source metadata and drops a chunking job on the document-chunk queue.

2. **Chunk** (chunk_worker.py / ChunkWorker + chunker.py / TextChunker) --
   splits the document into 500-1000 token windows with 150 tokens of
   overlap, persists every chunk as ``queued`` and enqueues one embedding
   job per chunk.

3. **Embed** (embedding_worker.py / EmbeddingWorker) -- calls the
   embedding provider, stores the vector, and drives the chunk status
   machine with retry classification from retry_policy.py.

direct_ingestion.py / DirectIngestionService performs stages 2-3 inline
for small documents without going through the queues.
"""

from src.services.ingestion.chunk_worker import ChunkWorker
from src.services.ingestion.chunker import TextChunker
from src.services.ingestion.direct_ingestion import DirectIngestionService
from src.services.ingestion.embedding_worker import EmbeddingWorker
from src.services.ingestion.training_pipeline import TrainingPipeline

__all__ = [
    "ChunkWorker",
    "DirectIngestionService",
    "EmbeddingWorker",
    "TextChunker",
    "TrainingPipeline",
]
