"""
Context Embeddings - turns user context items into vectors for semantic
retrieval. Long text is chunked; each chunk becomes one row in the user's
FAISS index keyed by the context item id.
"""
import logging
import uuid
from typing import Any, Dict, List, Optional

from pydantic import BaseModel

from app.services.ai_service import AIService
from app.services.faiss_service import FAISSService

logger = logging.getLogger(__name__)

CHUNK_THRESHOLD = 1200
CHUNK_SIZE = 1000
CHUNK_OVERLAP = 200


class EmbeddingResult(BaseModel):
    success: bool
    embedding_count: int = 0
    error: Optional[str] = None


def chunk_text(text: str, size: int = CHUNK_SIZE, overlap: int = CHUNK_OVERLAP) -> List[str]:
    """Fixed-size character windows overlapping by `overlap`."""
    step = max(size - overlap, 1)
    chunks = []
    for start in range(0, len(text), step):
        chunks.append(text[start:start + size])
        if start + size >= len(text):
            break
    return chunks


class ContextEmbeddingService:
    def __init__(self, index: FAISSService, ai: AIService | None = None):
        self._index = index
        self._ai = ai or AIService()

    async def embed_context_item(
        self,
        user_id: uuid.UUID,
        item_id: uuid.UUID,
        item_type: str,
        content: str,
        collection_id: uuid.UUID | None = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> EmbeddingResult:
        if not content or not content.strip():
            return EmbeddingResult(success=True)

        chunks = chunk_text(content) if len(content) > CHUNK_THRESHOLD else [content]
        item_ids: List[str] = []
        vectors: List[List[float]] = []
        for i, chunk in enumerate(chunks):
            vector = await self._ai.generate_embedding(chunk)
            if not vector:
                logger.warning("No embedding for chunk %d/%d of item %s", i + 1, len(chunks), item_id)
                continue
            item_ids.append(str(item_id))
            vectors.append(vector)

        self._index.add_batch(str(user_id), item_ids, vectors)
        logger.info(
            "Embedded %s item %s for user %s (%d chunks, collection=%s, meta=%s)",
            item_type, item_id, user_id, len(vectors), collection_id, metadata or {},
        )
        return EmbeddingResult(success=True, embedding_count=len(vectors))

    async def update_context_embeddings(
        self,
        user_id: uuid.UUID,
        item_id: uuid.UUID,
        item_type: str,
        content: str,
        collection_id: uuid.UUID | None = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> EmbeddingResult:
        """Delete the item's existing vectors, then embed the new content."""
        self.delete_context_embeddings(user_id, item_id)
        return await self.embed_context_item(user_id, item_id, item_type, content, collection_id, metadata)

    def delete_context_embeddings(self, user_id: uuid.UUID, item_id: uuid.UUID) -> int:
        return self._index.remove_items(str(user_id), {str(item_id)})
