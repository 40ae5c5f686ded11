"""
SQL Vector Store

Durable vector store on SQLAlchemy's async engine. SQLite (via aiosqlite)
is the default backend; no server is required and all data lives in a
single file.

Similarity is computed in process over the stored vectors of matching
dimensionality, so the behaviour is identical to the in-memory store.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

from pydantic_core import to_jsonable_python
from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from ..core.errors import ConfigurationError, EmptyStoreError
from ..core.models import Document
from .base import AbstractVectorStore, _validate_text
from .models import Base, DocumentRecord, decode_vector, encode_vector


class SQLiteVectorStore(AbstractVectorStore):
    """
    SQLAlchemy-backed vector store.

    Parameters
    ----------
    embedding_fn : EmbeddingFunction
        Async embedding callable.

    database_url : Optional[str]
        SQLAlchemy async URL, e.g. ``sqlite+aiosqlite:///./data/vectors.db``.

    db_path : Optional[str]
        Convenience alternative to database_url for SQLite files.

    echo : bool
        Log emitted SQL.
    """

    store_type = "sqlite"

    def __init__(
        self,
        embedding_fn: Any,
        *,
        database_url: Optional[str] = None,
        db_path: Optional[str] = None,
        echo: bool = False,
        **options: Any,
    ) -> None:
        super().__init__(embedding_fn, **options)

        if database_url is None:
            if not db_path:
                raise ConfigurationError(
                    "SQLite store requires database_url or db_path",
                    {"suggestion": "Pass db_path='./vectors.db'"},
                )
            if db_path != ":memory:":
                Path(db_path).parent.mkdir(parents=True, exist_ok=True)
            database_url = f"sqlite+aiosqlite:///{db_path}"

        self.database_url = database_url
        self._engine = create_async_engine(database_url, echo=echo)
        self._session_factory = async_sessionmaker(
            bind=self._engine,
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False,
        )
        self._schema_ready = False

    async def _ensure_schema(self) -> None:
        if self._schema_ready:
            return
        async with self._engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        self._schema_ready = True

    async def close(self) -> None:
        """
        Dispose of the engine and its connection pool.
        """
        await self._engine.dispose()

    # ------------------------------------------------------------------
    # Storage primitives
    # ------------------------------------------------------------------

    async def _count(self) -> int:
        await self._ensure_schema()
        async with self._session_factory() as session:
            result = await session.execute(
                select(func.count()).select_from(DocumentRecord)
            )
            return result.scalar() or 0

    async def _candidates(self, dim: int) -> List[Document]:
        await self._ensure_schema()
        async with self._session_factory() as session:
            result = await session.execute(
                select(DocumentRecord)
                .where(DocumentRecord.dim == dim)
                .order_by(DocumentRecord.seq)
            )
            return [_to_document(r) for r in result.scalars().all()]

    async def _insert(self, docs: List[Document]) -> None:
        await self._ensure_schema()
        async with self._session_factory() as session:
            async with session.begin():
                ids = [d.id for d in docs]
                result = await session.execute(
                    select(DocumentRecord).where(DocumentRecord.id.in_(ids))
                )
                existing = {r.id: r for r in result.scalars().all()}

                for doc in docs:
                    record = existing.get(doc.id)
                    if record is None:
                        record = DocumentRecord(id=doc.id)
                        session.add(record)
                        existing[doc.id] = record
                    record.text = doc.text
                    record.meta = to_jsonable_python(doc.meta)
                    record.vector = encode_vector(doc.vector)
                    record.dim = len(doc.vector)

    # ------------------------------------------------------------------
    # Lifecycle operations
    # ------------------------------------------------------------------

    async def get_document(self, doc_id: str) -> Optional[Document]:
        await self._ensure_schema()
        async with self._session_factory() as session:
            record = await self._find(session, doc_id)
            return _to_document(record) if record is not None else None

    async def get_all_documents(
        self,
        *,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> List[Document]:
        await self._ensure_schema()
        stmt = select(DocumentRecord).order_by(DocumentRecord.seq).offset(offset)
        if limit is not None:
            stmt = stmt.limit(limit)

        async with self._session_factory() as session:
            result = await session.execute(stmt)
            return [_to_document(r) for r in result.scalars().all()]

    async def update_document(
        self,
        doc_id: str,
        new_text: str,
        new_meta: Optional[Mapping[str, Any]] = None,
    ) -> bool:
        """
        Replace text (and optionally meta) and re-embed at the stored dim.

        Raises
        ------
        EmptyStoreError
            If the store holds no documents.
        """
        if await self._count() == 0:
            raise EmptyStoreError()

        existing = await self.get_document(doc_id)
        if existing is None:
            return False

        _validate_text(new_text, doc_id)
        vector = await self._embed_one(new_text, existing.dim or self.default_dim)

        async with self._session_factory() as session:
            async with session.begin():
                record = await self._find(session, doc_id)
                if record is None:
                    return False
                record.text = new_text
                if new_meta is not None:
                    record.meta = to_jsonable_python(dict(new_meta))
                record.vector = encode_vector(vector)
                record.dim = len(vector)
        return True

    async def delete_document(self, doc_id: str) -> bool:
        await self._ensure_schema()
        async with self._session_factory() as session:
            async with session.begin():
                result = await session.execute(
                    delete(DocumentRecord).where(DocumentRecord.id == doc_id)
                )
                return result.rowcount > 0

    async def clear(self) -> None:
        await self._ensure_schema()
        async with self._session_factory() as session:
            async with session.begin():
                await session.execute(delete(DocumentRecord))

    async def get_stats(self) -> Dict[str, Any]:
        await self._ensure_schema()
        async with self._session_factory() as session:
            count = (
                await session.execute(select(func.count()).select_from(DocumentRecord))
            ).scalar() or 0
            dims = (
                await session.execute(select(DocumentRecord.dim).distinct())
            ).scalars().all()

        return {
            "type": self.store_type,
            "document_count": count,
            "dimensions": sorted(dims),
            "default_dim": self.default_dim,
            "database_url": self.database_url,
        }

    @staticmethod
    async def _find(session: AsyncSession, doc_id: str) -> Optional[DocumentRecord]:
        result = await session.execute(
            select(DocumentRecord).where(DocumentRecord.id == doc_id)
        )
        return result.scalars().first()


def _to_document(record: DocumentRecord) -> Document:
    return Document(
        id=record.id,
        text=record.text,
        meta=dict(record.meta or {}),
        vector=decode_vector(record.vector),
        dim=record.dim,
    )
