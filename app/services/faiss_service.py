"""Per-user FAISS store for context item vectors.

Every user has an index file plus a JSON sidecar under
``{STORAGE_ROOT}/faiss_indexes/``. Row ``i`` of the flat inner-product index
belongs to the context item id at position ``i`` of the sidecar list, so an
item embedded in several chunks owns several rows. Vectors are L2-normalised
before insertion, which makes inner product equal to cosine similarity.

Flat indexes cannot drop rows in place; ``remove_items`` rebuilds the index
from the rows that survive.
"""

import json
from pathlib import Path

from app.services.ai_service import EMBEDDING_DIM


class FAISSService:
    """Owns the per-user index files; callers pass string user and item ids."""

    def __init__(self, storage_root: str, dim: int = EMBEDDING_DIM) -> None:
        self._root = Path(storage_root) / "faiss_indexes"
        self._root.mkdir(parents=True, exist_ok=True)
        self._dim = dim

    # ── private helpers ────────────────────────────────────────────────────

    def _idx_path(self, user_id: str) -> Path:
        return self._root / f"{user_id}.index"

    def _map_path(self, user_id: str) -> Path:
        return self._root / f"{user_id}.json"

    def _load(self, user_id: str):
        """Return (faiss_index, item_id_list).  Creates empty index if none exists."""
        import faiss  # lazy import: the API starts even if FAISS is missing

        idx_path = self._idx_path(user_id)
        map_path = self._map_path(user_id)

        if idx_path.exists() and map_path.exists():
            index = faiss.read_index(str(idx_path))
            mapping: list[str] = json.loads(map_path.read_text())
        else:
            index = faiss.IndexFlatIP(self._dim)
            mapping = []

        return index, mapping

    def _save(self, user_id: str, index, mapping: list[str]) -> None:
        import faiss
        faiss.write_index(index, str(self._idx_path(user_id)))
        self._map_path(user_id).write_text(json.dumps(mapping))

    @staticmethod
    def _to_np(vectors: list[list[float]]):
        """Convert list-of-lists to a float32 numpy matrix."""
        import numpy as np
        return np.array(vectors, dtype=np.float32)

    @staticmethod
    def _normalize(mat) -> None:
        """L2-normalise rows in-place (inner-product becomes cosine similarity)."""
        import faiss
        faiss.normalize_L2(mat)

    # ── public API ─────────────────────────────────────────────────────────

    def add_batch(
        self,
        user_id: str,
        item_ids: list[str],
        embeddings: list[list[float]],
    ) -> None:
        """Append one row per embedding; item_ids[i] owns embeddings[i]."""
        if not item_ids or not embeddings:
            return

        index, mapping = self._load(user_id)
        mat = self._to_np(embeddings)
        self._normalize(mat)
        index.add(mat)
        mapping.extend(item_ids)
        self._save(user_id, index, mapping)

    def remove_items(self, user_id: str, item_ids: set[str]) -> int:
        """Drop every row owned by item_ids; returns the number of rows removed."""
        import faiss
        import numpy as np

        index, mapping = self._load(user_id)

        if not mapping:
            return 0

        keep = [i for i, iid in enumerate(mapping) if iid not in item_ids]
        removed = len(mapping) - len(keep)

        if not removed:
            return 0

        if not keep:
            self._save(user_id, faiss.IndexFlatIP(self._dim), [])
            return removed

        # IndexFlatIP stores vectors internally so reconstruct() always works.
        all_vecs = np.vstack(
            [index.reconstruct(i) for i in range(index.ntotal)]
        ).astype(np.float32)
        new_index = faiss.IndexFlatIP(self._dim)
        new_index.add(all_vecs[keep])
        self._save(user_id, new_index, [mapping[i] for i in keep])
        return removed
