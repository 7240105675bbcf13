import json
import logging
import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Dict, Iterator, List, Optional, Tuple

import numpy as np

from fieldnotes.core.domain.note import Note
from fieldnotes.core.domain.tag import Tag, TagType
from fieldnotes.core.errors import ConstraintRace, DependencyUnavailable, NotFound
from fieldnotes.core.interfaces.ports import INoteRepository, ITagRepository

logger = logging.getLogger(__name__)


class SQLiteDatabase:
    """Owns the schema and hands out connections with foreign keys enabled."""

    def __init__(self, db_path: str = "fieldnotes.db"):
        self.db_path = db_path
        self._init_db()

    @contextmanager
    def connect(self) -> Iterator[sqlite3.Connection]:
        """
        Yield a connection that commits on success and rolls back on error.

        Constraint violations are re-raised as-is for the repositories to
        translate; any other sqlite error becomes DependencyUnavailable.
        """
        try:
            conn = sqlite3.connect(self.db_path)
            conn.row_factory = sqlite3.Row
            conn.execute("PRAGMA foreign_keys = ON")
        except sqlite3.Error as e:
            raise DependencyUnavailable(f"Cannot open database {self.db_path}: {e}") from e
        try:
            yield conn
            conn.commit()
        except sqlite3.IntegrityError:
            conn.rollback()
            raise
        except sqlite3.Error as e:
            conn.rollback()
            logger.error("Database error on %s: %s", self.db_path, e)
            raise DependencyUnavailable(f"Database error: {e}") from e
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def _init_db(self):
        with self.connect() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS notes (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    text TEXT NOT NULL,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL,
                    embedding BLOB
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS tags (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    name TEXT NOT NULL,
                    type TEXT NOT NULL,
                    normalized_name TEXT NOT NULL,
                    UNIQUE(normalized_name, type)
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS note_tags (
                    note_id INTEGER NOT NULL,
                    tag_id INTEGER NOT NULL,
                    value TEXT,
                    metadata TEXT,
                    PRIMARY KEY (note_id, tag_id),
                    FOREIGN KEY (note_id) REFERENCES notes(id) ON DELETE CASCADE,
                    FOREIGN KEY (tag_id) REFERENCES tags(id) ON DELETE CASCADE
                )
            """)
            conn.execute("CREATE INDEX IF NOT EXISTS idx_notes_created ON notes(created_at)")
            conn.execute("CREATE INDEX IF NOT EXISTS idx_note_tags_tag ON note_tags(tag_id)")


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _encode_embedding(embedding: Optional[List[float]]) -> Optional[bytes]:
    if embedding is None:
        return None
    # Stored as raw float32 bytes
    return np.array(embedding, dtype=np.float32).tobytes()


def _decode_embedding(blob: Optional[bytes]) -> Optional[List[float]]:
    if blob is None:
        return None
    try:
        return np.frombuffer(blob, dtype=np.float32).tolist()
    except ValueError as e:
        # Treated as missing, so backfill_embeddings can replace it
        logger.warning("Undecodable embedding blob (%d bytes): %s", len(blob), e)
        return None


def _row_to_note(row: sqlite3.Row) -> Note:
    return Note(
        id=row["id"],
        text=row["text"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
        embedding=_decode_embedding(row["embedding"]),
    )


def _row_to_tag(row: sqlite3.Row) -> Tag:
    return Tag(
        id=row["id"],
        name=row["name"],
        type=TagType.parse(row["type"]),
        normalized_name=row["normalized_name"],
    )


RECENCY = "ORDER BY n.created_at DESC, n.id DESC"


class SQLiteNoteRepository(INoteRepository):
    def __init__(self, db: SQLiteDatabase):
        self.db = db

    def create_note(self, text: str, embedding: Optional[List[float]] = None) -> Note:
        now = _now()
        with self.db.connect() as conn:
            cursor = conn.execute(
                "INSERT INTO notes (text, created_at, updated_at, embedding) VALUES (?, ?, ?, ?)",
                (text, now, now, _encode_embedding(embedding)),
            )
            note_id = cursor.lastrowid
        logger.info("Added note %s%s", note_id, " with embedding" if embedding is not None else "")
        return self.get_note(note_id)

    def get_note(self, note_id: int) -> Optional[Note]:
        with self.db.connect() as conn:
            row = conn.execute("SELECT * FROM notes WHERE id = ?", (note_id,)).fetchone()
        return _row_to_note(row) if row else None

    def list_notes(self, limit: int = 50, offset: int = 0) -> List[Note]:
        with self.db.connect() as conn:
            rows = conn.execute(
                f"SELECT * FROM notes n {RECENCY} LIMIT ? OFFSET ?", (limit, offset)
            ).fetchall()
        return [_row_to_note(r) for r in rows]

    def list_embedded(self, limit: int, offset: int = 0) -> List[Note]:
        with self.db.connect() as conn:
            rows = conn.execute(
                f"SELECT * FROM notes n WHERE n.embedding IS NOT NULL {RECENCY} LIMIT ? OFFSET ?",
                (limit, offset),
            ).fetchall()
        return [_row_to_note(r) for r in rows]

    def list_missing_embeddings(self) -> List[Note]:
        with self.db.connect() as conn:
            rows = conn.execute(
                "SELECT * FROM notes WHERE embedding IS NULL OR length(embedding) % 4 != 0 ORDER BY id"
            ).fetchall()
        return [_row_to_note(r) for r in rows]

    def update_text(self, note_id: int, text: str) -> Optional[Note]:
        with self.db.connect() as conn:
            conn.execute(
                "UPDATE notes SET text = ?, updated_at = ? WHERE id = ?",
                (text, _now(), note_id),
            )
        return self.get_note(note_id)

    def update_embedding(self, note_id: int, embedding: Optional[List[float]]) -> None:
        with self.db.connect() as conn:
            cursor = conn.execute(
                "UPDATE notes SET embedding = ? WHERE id = ?",
                (_encode_embedding(embedding), note_id),
            )
            if cursor.rowcount == 0:
                raise NotFound("note", note_id)

    def delete_note(self, note_id: int) -> bool:
        with self.db.connect() as conn:
            cursor = conn.execute("DELETE FROM notes WHERE id = ?", (note_id,))
            return cursor.rowcount > 0


class SQLiteTagRepository(ITagRepository):
    def __init__(self, db: SQLiteDatabase):
        self.db = db

    def get_tag(self, tag_id: int) -> Optional[Tag]:
        with self.db.connect() as conn:
            row = conn.execute("SELECT * FROM tags WHERE id = ?", (tag_id,)).fetchone()
        return _row_to_tag(row) if row else None

    def find_by_key_and_type(self, normalized_name: str, tag_type: TagType) -> Optional[Tag]:
        with self.db.connect() as conn:
            row = conn.execute(
                "SELECT * FROM tags WHERE normalized_name = ? AND type = ?",
                (normalized_name, tag_type.value),
            ).fetchone()
        return _row_to_tag(row) if row else None

    def find_by_key(self, normalized_name: str) -> List[Tag]:
        with self.db.connect() as conn:
            rows = conn.execute(
                "SELECT * FROM tags WHERE normalized_name = ? ORDER BY id", (normalized_name,)
            ).fetchall()
        return [_row_to_tag(r) for r in rows]

    def create_tag(self, name: str, tag_type: TagType, normalized_name: str) -> Tag:
        try:
            with self.db.connect() as conn:
                cursor = conn.execute(
                    "INSERT INTO tags (name, type, normalized_name) VALUES (?, ?, ?)",
                    (name, tag_type.value, normalized_name),
                )
                tag_id = cursor.lastrowid
        except sqlite3.IntegrityError as e:
            raise ConstraintRace(normalized_name, tag_type.value) from e
        return Tag(id=tag_id, name=name, type=tag_type, normalized_name=normalized_name)

    def update_type(self, tag_id: int, tag_type: TagType) -> Tag:
        try:
            with self.db.connect() as conn:
                cursor = conn.execute(
                    "UPDATE tags SET type = ? WHERE id = ?", (tag_type.value, tag_id)
                )
                if cursor.rowcount == 0:
                    raise NotFound("tag", tag_id)
        except sqlite3.IntegrityError as e:
            tag = self.get_tag(tag_id)
            raise ConstraintRace(tag.normalized_name if tag else str(tag_id), tag_type.value) from e
        return self.get_tag(tag_id)

    def delete_tag(self, tag_id: int) -> bool:
        with self.db.connect() as conn:
            cursor = conn.execute("DELETE FROM tags WHERE id = ?", (tag_id,))
            return cursor.rowcount > 0

    def list_tags(self, tag_type: Optional[TagType] = None) -> List[Tag]:
        with self.db.connect() as conn:
            if tag_type is None:
                rows = conn.execute("SELECT * FROM tags ORDER BY name COLLATE NOCASE, id").fetchall()
            else:
                rows = conn.execute(
                    "SELECT * FROM tags WHERE type = ? ORDER BY name COLLATE NOCASE, id",
                    (tag_type.value,),
                ).fetchall()
        return [_row_to_tag(r) for r in rows]

    def search_tags(self, query: str) -> List[Tag]:
        escaped = query.lower().replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
        pattern = f"%{escaped}%"
        with self.db.connect() as conn:
            rows = conn.execute(
                """
                SELECT * FROM tags
                WHERE lower(name) LIKE ? ESCAPE '\\' OR lower(normalized_name) LIKE ? ESCAPE '\\'
                ORDER BY name COLLATE NOCASE, id
                """,
                (pattern, pattern),
            ).fetchall()
        return [_row_to_tag(r) for r in rows]

    def add_note_tag(
        self,
        note_id: int,
        tag_id: int,
        value: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> None:
        meta_json = json.dumps(metadata) if metadata is not None else None
        with self.db.connect() as conn:
            conn.execute(
                """
                INSERT INTO note_tags (note_id, tag_id, value, metadata)
                VALUES (?, ?, ?, ?)
                ON CONFLICT(note_id, tag_id) DO UPDATE SET
                    value=excluded.value,
                    metadata=excluded.metadata
                """,
                (note_id, tag_id, value, meta_json),
            )

    def remove_note_tag(self, note_id: int, tag_id: int) -> None:
        with self.db.connect() as conn:
            conn.execute(
                "DELETE FROM note_tags WHERE note_id = ? AND tag_id = ?", (note_id, tag_id)
            )

    def clear_note_tags(self, note_id: int) -> None:
        with self.db.connect() as conn:
            conn.execute("DELETE FROM note_tags WHERE note_id = ?", (note_id,))

    def tags_for_note(self, note_id: int) -> List[Tag]:
        with self.db.connect() as conn:
            rows = conn.execute(
                """
                SELECT t.* FROM tags t
                JOIN note_tags nt ON t.id = nt.tag_id
                WHERE nt.note_id = ?
                ORDER BY t.id
                """,
                (note_id,),
            ).fetchall()
        return [_row_to_tag(r) for r in rows]

    def note_tag(self, note_id: int, tag_id: int) -> Optional[Tuple[Optional[str], Optional[Dict[str, Any]]]]:
        """Value and metadata stored on a single association."""
        with self.db.connect() as conn:
            row = conn.execute(
                "SELECT value, metadata FROM note_tags WHERE note_id = ? AND tag_id = ?",
                (note_id, tag_id),
            ).fetchone()
        if row is None:
            return None
        return row["value"], json.loads(row["metadata"]) if row["metadata"] else None

    def notes_for_tags(
        self, tag_ids: List[int], match_all: bool = False, limit: Optional[int] = None
    ) -> List[Note]:
        ids = list(dict.fromkeys(tag_ids))
        if not ids:
            return []
        placeholders = ",".join("?" for _ in ids)
        params: List[Any] = list(ids)
        if match_all:
            sql = f"""
                SELECT n.* FROM notes n
                JOIN note_tags nt ON n.id = nt.note_id
                WHERE nt.tag_id IN ({placeholders})
                GROUP BY n.id
                HAVING COUNT(DISTINCT nt.tag_id) = ?
                {RECENCY}
            """
            params.append(len(ids))
        else:
            sql = f"""
                SELECT DISTINCT n.* FROM notes n
                JOIN note_tags nt ON n.id = nt.note_id
                WHERE nt.tag_id IN ({placeholders})
                {RECENCY}
            """
        if limit is not None:
            sql += " LIMIT ?"
            params.append(limit)
        with self.db.connect() as conn:
            rows = conn.execute(sql, params).fetchall()
        return [_row_to_note(r) for r in rows]

    def tag_counts(self, tag_type: Optional[TagType] = None) -> List[Tuple[Tag, int]]:
        sql = """
            SELECT t.*, COUNT(nt.note_id) AS note_count
            FROM tags t
            LEFT JOIN note_tags nt ON t.id = nt.tag_id
        """
        params: List[Any] = []
        if tag_type is not None:
            sql += " WHERE t.type = ?"
            params.append(tag_type.value)
        sql += " GROUP BY t.id ORDER BY t.name COLLATE NOCASE, t.id"
        with self.db.connect() as conn:
            rows = conn.execute(sql, params).fetchall()
        return [(_row_to_tag(r), r["note_count"]) for r in rows]
