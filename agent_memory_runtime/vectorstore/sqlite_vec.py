"""
Vector store on one SQLite file, scored with the sqlite-vec extension.

Each index is a plain table (id, embedding blob, content, metadata JSON)
ranked with vec_distance_cosine, so metadata filters such as thread_id are
applied in the WHERE clause before LIMIT. A vec0 virtual table would return
the global top-k first and lose hits from the filtered thread.

Requires the sqlite-vec extra: pip install agent-memory-runtime[sqlite-vec]
"""

import json
import re
import sqlite3
import struct
from typing import Optional

from agent_memory_runtime.vectorstore.base import (
    VectorRecord,
    VectorSearchResult,
    VectorStore,
    prepare_batch,
)

_INDEX_NAME = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def _serialize_vector(vector: list[float]) -> bytes:
    """Serialize a vector to bytes for sqlite-vec."""
    return struct.pack(f"{len(vector)}f", *vector)


def _deserialize_vector(data: bytes) -> list[float]:
    """Deserialize bytes to a vector."""
    n = len(data) // 4  # 4 bytes per float
    return list(struct.unpack(f"{n}f", data))


def _table(index_name: str) -> str:
    if not _INDEX_NAME.match(index_name):
        raise ValueError(f"Invalid index name: {index_name!r}")
    return f"vec_{index_name}"


class SqliteVecStore(VectorStore):
    """
    Vector store using the sqlite-vec extension.

    Each index is a table `vec_{index_name}` holding the embedding blob, the
    content and JSON metadata. Queries rank rows with sqlite-vec's
    `vec_distance_cosine` so metadata filters are applied before the limit.
    Index dimensions are recorded in `vec_indexes`.
    """

    def __init__(self, path: str = ":memory:"):
        """
        Initialize SQLite-vec store.

        Args:
            path: Database path (":memory:" for in-memory, or file path)
        """
        self._path = path
        self._conn: Optional[sqlite3.Connection] = None

    def _get_connection(self) -> sqlite3.Connection:
        """Get or create the database connection."""
        if self._conn is None:
            import sqlite_vec

            self._conn = sqlite3.connect(self._path, check_same_thread=False)
            self._conn.enable_load_extension(True)
            sqlite_vec.load(self._conn)
            self._conn.enable_load_extension(False)
            self._conn.execute("""
                CREATE TABLE IF NOT EXISTS vec_indexes (
                    name TEXT PRIMARY KEY,
                    dimension INTEGER NOT NULL,
                    metric TEXT NOT NULL
                )
            """)
            self._conn.commit()
        return self._conn

    def _dimension(self, index_name: str) -> Optional[int]:
        cursor = self._get_connection().execute(
            "SELECT dimension FROM vec_indexes WHERE name = ?", (index_name,)
        )
        row = cursor.fetchone()
        return row[0] if row else None

    async def create_index(
        self,
        index_name: str,
        dimension: int,
        metric: str = "cosine",
    ) -> None:
        if metric != "cosine":
            raise ValueError(f"SqliteVecStore only supports cosine, got: {metric}")
        table = _table(index_name)
        if self._dimension(index_name) is not None:
            return

        conn = self._get_connection()
        conn.execute(f"""
            CREATE TABLE IF NOT EXISTS {table} (
                id TEXT PRIMARY KEY,
                embedding BLOB NOT NULL,
                content TEXT NOT NULL DEFAULT '',
                metadata TEXT NOT NULL DEFAULT '{{}}'
            )
        """)
        conn.execute(
            "INSERT INTO vec_indexes (name, dimension, metric) VALUES (?, ?, ?)",
            (index_name, dimension, metric),
        )
        conn.commit()

    async def upsert(
        self,
        index_name: str,
        vectors: list[list[float]],
        metadata: Optional[list[dict]] = None,
        ids: Optional[list[str]] = None,
        contents: Optional[list[str]] = None,
    ) -> list[str]:
        if not vectors:
            return []
        await self.create_index(index_name, len(vectors[0]))
        dimension = self._dimension(index_name)
        table = _table(index_name)

        rows = prepare_batch(index_name, dimension, vectors, metadata, ids, contents)

        conn = self._get_connection()
        conn.executemany(
            f"INSERT OR REPLACE INTO {table} (id, embedding, content, metadata) VALUES (?, ?, ?, ?)",
            [(id, _serialize_vector(vector), content, json.dumps(meta)) for id, vector, meta, content in rows],
        )
        conn.commit()
        return [row[0] for row in rows]

    async def query(
        self,
        index_name: str,
        query_vector: list[float],
        top_k: int = 10,
        filter: Optional[dict] = None,
    ) -> list[VectorSearchResult]:
        if top_k <= 0 or self._dimension(index_name) is None:
            return []
        table = _table(index_name)

        filter_conditions = []
        filter_values = []
        for key, value in (filter or {}).items():
            if not _INDEX_NAME.match(key):
                raise ValueError(f"Invalid filter key: {key!r}")
            filter_conditions.append(f"json_extract(metadata, '$.{key}') = ?")
            filter_values.append(json.dumps(value) if isinstance(value, (dict, list)) else value)
        where = f"WHERE {' AND '.join(filter_conditions)}" if filter_conditions else ""

        cursor = self._get_connection().execute(
            f"""
            SELECT id, vec_distance_cosine(embedding, ?) AS distance, content, metadata
            FROM {table}
            {where}
            ORDER BY distance
            LIMIT ?
            """,
            [_serialize_vector(query_vector), *filter_values, top_k],
        )

        results = []
        for id, distance, content, metadata_json in cursor.fetchall():
            results.append(
                VectorSearchResult(
                    id=id,
                    # Cosine distance -> cosine similarity
                    score=1.0 - distance,
                    content=content,
                    metadata=json.loads(metadata_json),
                )
            )
        return results

    async def delete(self, index_name: str, id: str) -> bool:
        if self._dimension(index_name) is None:
            return False
        conn = self._get_connection()
        cursor = conn.execute(f"DELETE FROM {_table(index_name)} WHERE id = ?", (id,))
        conn.commit()
        return cursor.rowcount > 0

    async def get(self, index_name: str, id: str) -> Optional[VectorRecord]:
        if self._dimension(index_name) is None:
            return None
        cursor = self._get_connection().execute(
            f"SELECT embedding, content, metadata FROM {_table(index_name)} WHERE id = ?",
            (id,),
        )
        row = cursor.fetchone()
        if row is None:
            return None
        embedding, content, metadata_json = row
        return VectorRecord(
            id=id,
            vector=_deserialize_vector(embedding),
            content=content,
            metadata=json.loads(metadata_json),
        )

    async def close(self) -> None:
        """Close the database connection."""
        if self._conn is not None:
            self._conn.close()
            self._conn = None
