"""ChromaDB vector store for generated book assets (portraits, plates, scenes)."""

import logging
from pathlib import Path
from typing import Any, Optional

import chromadb

logger = logging.getLogger(__name__)


def _where(clauses: list[dict]) -> Optional[dict]:
    """Combine equality clauses; Chroma rejects ``$and`` with fewer than two."""
    if not clauses:
        return None
    if len(clauses) == 1:
        return clauses[0]
    return {"$and": clauses}


class ChromaStore:
    """Manages the ChromaDB collection backing semantic image memory."""

    BOOK_ASSETS = "book_assets"

    def __init__(self, persist_dir: str | Path, embedding_function: Any = None):
        self.persist_dir = Path(persist_dir)
        self.persist_dir.mkdir(parents=True, exist_ok=True)
        self.client = chromadb.PersistentClient(path=str(self.persist_dir))
        self._embedding_function = embedding_function
        self._init_collections()

    def _init_collections(self):
        """Initialize or get all required collections."""
        kwargs = {}
        if self._embedding_function is not None:
            kwargs["embedding_function"] = self._embedding_function
        self.assets = self.client.get_or_create_collection(
            name=self.BOOK_ASSETS,
            metadata={"hnsw:space": "cosine"},
            **kwargs,
        )

    # ---- Book Assets ----

    def add_asset(
        self,
        user_id: str,
        book_id: str,
        kind: str,
        name: str,
        description: str,
        image_url: str = "",
        portrait_url: str = "",
    ) -> str:
        """Store a generated asset with its image URLs as metadata.

        Returns:
            The memory id of the stored asset.
        """
        doc_id = f"{user_id}_{book_id}_{kind}_{name}"
        metadata = {
            "user_id": user_id,
            "book_id": book_id,
            "kind": kind,
            "name": name,
            "image_url": image_url,
            "portrait_url": portrait_url,
        }
        # Name keys read by the asset lookup for each kind
        if kind == "character":
            metadata["character_name"] = name
        elif kind == "environment":
            metadata["environment_name"] = name
        self.assets.upsert(
            ids=[doc_id],
            documents=[description or name],
            metadatas=[metadata],
        )
        return doc_id

    def search_assets(
        self,
        user_id: str,
        query: str,
        book_id: Optional[str] = None,
        kind: Optional[str] = None,
        name: Optional[str] = None,
        top_k: int = 5,
    ) -> list[dict]:
        """Search assets semantically, filtered by exact metadata matches."""
        clauses: list[dict] = [{"user_id": user_id}]
        if book_id:
            clauses.append({"book_id": book_id})
        if kind:
            clauses.append({"kind": kind})
        if name:
            clauses.append({"name": name})

        total = self.assets.count()
        if total == 0:
            return []

        results = self.assets.query(
            query_texts=[query],
            n_results=min(top_k, total),
            where=_where(clauses),
            include=["documents", "metadatas", "distances"],
        )

        if not results["documents"] or not results["documents"][0]:
            return []

        output = []
        for doc_id, doc, meta, dist in zip(
            results["ids"][0],
            results["documents"][0],
            results["metadatas"][0],
            results["distances"][0],
        ):
            output.append({
                "id": doc_id,
                "content": doc,
                "metadata": meta,
                "distance": dist,
            })
        return output
