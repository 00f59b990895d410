"""SQLite storage for voice notes."""

from __future__ import annotations

import sqlite3
from pathlib import Path
from typing import List, Optional

from ..logging import get_logger
from .models import Note

LOGGER = get_logger(__name__)


class StorageError(RuntimeError):
    """Raised when a note cannot be persisted, updated, or removed."""


class NoteStore:
    """Persistent note storage built on SQLite."""

    def __init__(self, path: Path) -> None:
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)

    def _connect(self) -> sqlite3.Connection:
        return sqlite3.connect(self.path)

    def initialize(self) -> None:
        with self._connect() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS notes (
                    id TEXT PRIMARY KEY,
                    timestamp REAL NOT NULL,
                    audio_path TEXT NOT NULL,
                    transcript TEXT NOT NULL,
                    summary TEXT,
                    language TEXT
                )
                """
            )
            conn.commit()

    def save(self, note: Note) -> str:
        try:
            with self._connect() as conn:
                conn.execute(
                    """
                    INSERT INTO notes (id, timestamp, audio_path, transcript, summary, language)
                    VALUES (?, ?, ?, ?, ?, ?)
                    """,
                    (
                        note.id,
                        note.timestamp,
                        str(note.audio_path),
                        note.transcript,
                        note.summary,
                        note.language,
                    ),
                )
                conn.commit()
        except sqlite3.IntegrityError as exc:
            raise StorageError(f"Note {note.id} already exists") from exc
        except sqlite3.Error as exc:
            raise StorageError(f"Failed to save note {note.id}: {exc}") from exc
        LOGGER.debug("Saved note %s", note.id)
        return note.id

    def attach_summary(self, note_id: str, summary: str) -> None:
        """Store ``summary`` on a note that does not have one yet."""

        try:
            with self._connect() as conn:
                cursor = conn.execute(
                    "UPDATE notes SET summary = ? WHERE id = ? AND summary IS NULL",
                    (summary, note_id),
                )
                conn.commit()
        except sqlite3.Error as exc:
            raise StorageError(f"Failed to attach summary to note {note_id}: {exc}") from exc
        if cursor.rowcount == 0:
            if self.fetch(note_id) is None:
                raise StorageError(f"Note {note_id} does not exist")
            raise StorageError(f"Note {note_id} already has a summary")

    def fetch(self, note_id: str) -> Optional[Note]:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT id, timestamp, audio_path, transcript, summary, language FROM notes WHERE id = ?",
                (note_id,),
            ).fetchone()
        if not row:
            return None
        return _row_to_note(row)

    def list(self) -> List[Note]:
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT id, timestamp, audio_path, transcript, summary, language FROM notes "
                "ORDER BY timestamp DESC, rowid DESC"
            ).fetchall()
        return [_row_to_note(row) for row in rows]

    def delete(self, note_id: str) -> None:
        try:
            with self._connect() as conn:
                cursor = conn.execute("DELETE FROM notes WHERE id = ?", (note_id,))
                conn.commit()
        except sqlite3.Error as exc:
            raise StorageError(f"Failed to delete note {note_id}: {exc}") from exc
        if cursor.rowcount == 0:
            raise StorageError(f"Note {note_id} does not exist")
        LOGGER.info("Deleted note %s", note_id)


def _row_to_note(row) -> Note:
    return Note(
        id=row[0],
        timestamp=row[1],
        audio_path=Path(row[2]),
        transcript=row[3],
        summary=row[4],
        language=row[5],
    )


__all__ = ["NoteStore", "StorageError"]
