"""
Vector Store
Vector storage on Qdrant (embedded, in-memory or on-disk)
"""
from abc import ABC, abstractmethod
from typing import Any, Dict, Iterator, List, Optional
from pathlib import Path
from threading import Lock
import logging
import uuid
from dataclasses import dataclass

import numpy as np
from qdrant_client import QdrantClient
from qdrant_client.models import (
    Distance,
    FieldCondition,
    Filter,
    FilterSelector,
    MatchAny,
    MatchValue,
    PointStruct,
    Range,
    VectorParams,
)

from processing.chunker import DocumentChunk
from processing.embedder import BaseEmbedder
from utils.exceptions import VectorStoreError


logger = logging.getLogger(__name__)

_CONTENT_KEY = "_content"
_ID_KEY = "_id"


@dataclass
class SearchResult:
    """A ranked chunk"""
    id: str
    content: str
    metadata: Dict[str, Any]
    score: float  # cosine similarity, higher is closer

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "content": self.content,
            "metadata": self.metadata,
            "score": self.score,
        }


@dataclass
class StoredPoint:
    """A stored chunk with its vector"""
    id: str
    content: str
    metadata: Dict[str, Any]
    vector: List[float]


class BaseVectorStore(ABC):
    """Vector store interface"""

    def __init__(self, embedder: BaseEmbedder):
        self.embedder = embedder

    @abstractmethod
    def add(
        self,
        documents: List[str],
        metadatas: Optional[List[Dict]] = None,
        ids: Optional[List[str]] = None,
    ) -> List[str]:
        """Embed and upsert documents"""

    @abstractmethod
    def search(
        self,
        query: str,
        top_k: int = 5,
        filter: Optional[Dict] = None,
    ) -> List[SearchResult]:
        """Rank stored documents against a query"""

    @abstractmethod
    def delete(self, ids: List[str]) -> None: ...

    @abstractmethod
    def clear(self) -> None: ...

    @abstractmethod
    def count(self) -> int: ...

    def add_chunks(self, chunks: List[DocumentChunk]) -> List[str]:
        documents = [chunk.content for chunk in chunks]
        metadatas = [chunk.metadata for chunk in chunks]
        ids = [chunk.id for chunk in chunks]
        return self.add(documents, metadatas, ids)

    def search_with_score(
        self,
        query: str,
        top_k: int = 5,
        score_threshold: float = 0.0,
        filter: Optional[Dict] = None,
    ) -> List[SearchResult]:
        """Search, keeping only hits at or above score_threshold"""
        results = self.search(query, top_k, filter)
        return [r for r in results if r.score >= score_threshold]


def _point_id(id_: str) -> str:
    # stable across processes, unlike hash()
    return str(uuid.uuid5(uuid.NAMESPACE_URL, str(id_)))


def build_filter(filter: Optional[Dict]) -> Optional[Filter]:
    """
    Translate a metadata filter into a Qdrant filter.

    Supported syntax:
        - exact match: {"keyword": "ai"}
        - membership: {"keyword": ["ai", "chips"]}
        - range: {"score": {"$gte": 60}}
    """
    if not filter:
        return None
    conditions = []
    for key, value in filter.items():
        if isinstance(value, dict):
            range_params = {}
            for op, bound in value.items():
                if op == "$gte": range_params["gte"] = bound
                elif op == "$lte": range_params["lte"] = bound
                elif op == "$gt": range_params["gt"] = bound
                elif op == "$lt": range_params["lt"] = bound
            if range_params:
                conditions.append(FieldCondition(key=key, range=Range(**range_params)))
        elif isinstance(value, (list, tuple, set)):
            conditions.append(FieldCondition(key=key, match=MatchAny(any=list(value))))
        else:
            conditions.append(FieldCondition(key=key, match=MatchValue(value=value)))
    return Filter(must=conditions) if conditions else None


class QdrantVectorStore(BaseVectorStore):
    """
    Qdrant vector store

    - cosine distance, native metadata filtering
    - upsert by chunk id
    - runs embedded: in memory by default, on disk when persist_directory is set

    An on-disk store holds a lock on its directory until close().
    """

    def __init__(
        self,
        embedder: BaseEmbedder,
        collection_name: str = "news_radar",
        persist_directory: Optional[str] = None,
        dimension: Optional[int] = None,
    ):
        super().__init__(embedder)
        self.collection_name = collection_name
        self.persist_directory = persist_directory
        self.dimension = dimension or embedder.dimension
        self._lock = Lock()

        try:
            if persist_directory:
                persist_path = Path(persist_directory)
                persist_path.mkdir(parents=True, exist_ok=True)
                self._client = QdrantClient(path=str(persist_path))
                logger.debug(f"Qdrant opened at: {persist_path}")
            else:
                self._client = QdrantClient(":memory:")
            self._ensure_collection()
        except Exception as exc:
            raise VectorStoreError(
                f"Failed to open vector store: {exc}",
                details={"path": persist_directory, "collection": collection_name},
            )

    def _ensure_collection(self) -> None:
        collections = [c.name for c in self._client.get_collections().collections]
        if self.collection_name not in collections:
            self._client.create_collection(
                collection_name=self.collection_name,
                vectors_config=VectorParams(size=self.dimension, distance=Distance.COSINE),
            )

    def add(
        self,
        documents: List[str],
        metadatas: Optional[List[Dict]] = None,
        ids: Optional[List[str]] = None,
    ) -> List[str]:
        if not documents:
            return []
        if ids is None:
            import hashlib
            ids = [hashlib.md5(doc.encode()).hexdigest()[:16] for doc in documents]
        if metadatas is None:
            metadatas = [{} for _ in documents]
        if not (len(documents) == len(ids) == len(metadatas)):
            raise VectorStoreError(
                "documents, metadatas and ids must have the same length",
                details={"documents": len(documents), "metadatas": len(metadatas), "ids": len(ids)},
            )

        embeddings = np.asarray(self.embedder.embed(documents), dtype=np.float32)
        return self.add_with_embeddings(documents, embeddings.tolist(), metadatas, ids)

    def add_with_embeddings(
        self,
        documents: List[str],
        embeddings: List[List[float]],
        metadatas: List[Dict],
        ids: List[str],
    ) -> List[str]:
        if len(embeddings) != len(documents):
            raise VectorStoreError(
                "embedding batch does not match documents",
                details={"documents": len(documents), "embeddings": len(embeddings)},
            )

        points = []
        for doc, embedding, metadata, id_ in zip(documents, embeddings, metadatas, ids):
            # Qdrant payloads take no None values
            payload = {k: v for k, v in dict(metadata).items() if v is not None}
            payload[_CONTENT_KEY] = doc
            payload[_ID_KEY] = id_
            points.append(PointStruct(id=_point_id(id_), vector=list(embedding), payload=payload))

        try:
            with self._lock:
                self._client.upsert(collection_name=self.collection_name, points=points)
        except Exception as exc:
            raise VectorStoreError(f"Failed to upsert vectors: {exc}", details={"count": len(points)})
        return list(ids)

    def search(
        self,
        query: str,
        top_k: int = 5,
        filter: Optional[Dict] = None,
    ) -> List[SearchResult]:
        query_vector = np.asarray(self.embedder.embed_query(query), dtype=np.float32)
        return self.search_with_embedding(query_vector.tolist(), top_k, filter)

    def search_with_embedding(
        self,
        query_embedding: List[float],
        top_k: int = 5,
        filter: Optional[Dict] = None,
    ) -> List[SearchResult]:
        if top_k <= 0 or not np.any(np.asarray(query_embedding, dtype=np.float32)):
            return []

        with self._lock:
            hits = self._client.query_points(
                collection_name=self.collection_name,
                query=list(query_embedding),
                limit=top_k,
                query_filter=build_filter(filter),
                with_payload=True,
            ).points

        results = []
        for hit in hits:
            payload = dict(hit.payload or {})
            content = payload.pop(_CONTENT_KEY, "")
            original_id = payload.pop(_ID_KEY, str(hit.id))
            results.append(SearchResult(id=original_id, content=content, metadata=payload, score=float(hit.score)))
        return results

    def delete(self, ids: List[str]) -> None:
        if not ids:
            return
        self._delete_matching(FieldCondition(key=_ID_KEY, match=MatchAny(any=list(ids))))

    def delete_where(self, key: str, value: Any) -> int:
        """Remove every entry whose metadata[key] equals value."""
        condition = FieldCondition(key=key, match=MatchValue(value=value))
        try:
            with self._lock:
                doomed = self._client.count(
                    collection_name=self.collection_name,
                    count_filter=Filter(must=[condition]),
                    exact=True,
                ).count
        except Exception as exc:
            raise VectorStoreError(f"Failed to count vectors: {exc}", details={key: value})
        if doomed:
            self._delete_matching(condition)
        return doomed

    def _delete_matching(self, condition: FieldCondition) -> None:
        try:
            with self._lock:
                self._client.delete(
                    collection_name=self.collection_name,
                    points_selector=FilterSelector(filter=Filter(must=[condition])),
                )
        except Exception as exc:
            raise VectorStoreError(f"Failed to delete vectors: {exc}")

    def clear(self) -> None:
        with self._lock:
            self._client.delete_collection(self.collection_name)
            self._ensure_collection()

    def count(self) -> int:
        with self._lock:
            return self._client.count(collection_name=self.collection_name, exact=True).count

    def points(self, batch_size: int = 256) -> Iterator[StoredPoint]:
        """Iterate every stored chunk with its vector."""
        offset = None
        while True:
            with self._lock:
                records, offset = self._client.scroll(
                    collection_name=self.collection_name,
                    limit=batch_size,
                    offset=offset,
                    with_payload=True,
                    with_vectors=True,
                )
            for record in records:
                payload = dict(record.payload or {})
                yield StoredPoint(
                    id=payload.pop(_ID_KEY, str(record.id)),
                    content=payload.pop(_CONTENT_KEY, ""),
                    metadata=payload,
                    vector=list(record.vector),
                )
            if offset is None:
                return

    def copy_to(self, target: "QdrantVectorStore", batch_size: int = 256) -> int:
        """
        Replace the contents of `target` with this store's points.

        Vectors are copied as stored; nothing is re-embedded.

        Returns:
            Number of points copied
        """
        try:
            target.clear()
            copied = 0
            batch: List[StoredPoint] = []
            for point in self.points(batch_size):
                batch.append(point)
                if len(batch) >= batch_size:
                    copied += self._write_batch(target, batch)
                    batch = []
            if batch:
                copied += self._write_batch(target, batch)
        except VectorStoreError:
            raise
        except Exception as exc:
            raise VectorStoreError(
                f"Failed to copy vectors: {exc}",
                details={"source": self.collection_name, "target": target.persist_directory},
            )
        return copied

    @staticmethod
    def _write_batch(target: "QdrantVectorStore", batch: List[StoredPoint]) -> int:
        target.add_with_embeddings(
            documents=[p.content for p in batch],
            embeddings=[p.vector for p in batch],
            metadatas=[p.metadata for p in batch],
            ids=[p.id for p in batch],
        )
        return len(batch)

    def close(self) -> None:
        """Close the underlying client, releasing an on-disk lock."""
        try:
            self._client.close()
        except Exception as exc:
            logger.debug(f"Failed to close Qdrant client: {exc}")
