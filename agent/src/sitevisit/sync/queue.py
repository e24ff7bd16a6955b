"""SQLite-backed persistent queue for captures that have not reached the server."""

import sqlite3
import threading
import uuid
from collections.abc import Iterator
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any

from sitevisit.logging import log_capture_enqueued, log_durability_degraded, queue_logger

logger = queue_logger()


class CaptureType(str, Enum):
    """Kind of artifact recorded at a visit stop."""

    PHOTO = "photo"
    VOICE_NOTE = "voice_note"
    REACTION = "reaction"
    NOTE = "note"


# Capture types whose file is uploaded and kept as a media asset
FILE_CAPTURE_TYPES = frozenset({CaptureType.PHOTO, CaptureType.VOICE_NOTE})


class CapturedBy(str, Enum):
    """Who recorded the capture."""

    SALES = "sales"
    CLIENT = "client"


class InvalidCaptureError(ValueError):
    """Raised when a capture is missing required fields."""


@dataclass(frozen=True)
class Location:
    """Geographic position of a capture."""

    lat: float
    lng: float


@dataclass(frozen=True)
class PendingCaptureRecord:
    """A capture waiting in the local queue.

    Records are immutable: the queue only ever inserts or deletes them.
    """

    id: str
    visit_stop_id: str
    capture_type: CaptureType
    captured_by: CapturedBy
    enqueued_at: datetime
    local_blob_ref: str | None = None
    caption: str | None = None
    transcript: str | None = None
    sentiment: str | None = None
    location: Location | None = None
    sequence: int = field(default=0, compare=False)

    def to_submission(
        self,
        storage_locator: str | None = None,
        mime_type: str | None = None,
        file_size: int | None = None,
    ) -> dict[str, Any]:
        """Build the JSON body for the capture submission endpoint.

        Args:
            storage_locator: Locator returned by the upload step, if any
            mime_type: MIME type of the uploaded file
            file_size: Size of the uploaded file in bytes

        Returns:
            Submission payload
        """
        payload: dict[str, Any] = {
            "visit_stop_id": self.visit_stop_id,
            "capture_type": self.capture_type.value,
            "captured_by": self.captured_by.value,
            "captured_at": self.enqueued_at.isoformat(),
            "storage_locator": storage_locator,
            "caption": self.caption,
            "transcript": self.transcript,
            "sentiment": self.sentiment,
            "location": (
                {"lat": self.location.lat, "lng": self.location.lng}
                if self.location
                else None
            ),
        }
        if self.local_blob_ref:
            payload["file_name"] = Path(self.local_blob_ref).name
            payload["mime_type"] = mime_type
            payload["file_size"] = file_size
        return payload


class LocalCaptureQueue:
    """SQLite-backed persistent queue for pending capture submissions.

    Captures are written here first and removed only once the server has
    confirmed them, so the queue survives crashes and restarts. Every mutation
    touches a single row inside its own transaction, which keeps concurrent
    foreground and background use safe.

    If the database file cannot be opened the queue falls back to an
    in-memory database for the rest of the session and reports it through
    ``is_durable``.
    """

    def __init__(self, db_path: Path | None) -> None:
        """Initialize the capture queue.

        Args:
            db_path: Path to the SQLite database file, or None for a
                session-only queue
        """
        self.db_path = db_path
        self._lock = threading.Lock()
        self._conn, self.is_durable = self._open(db_path)

    def _open(self, db_path: Path | None) -> tuple[sqlite3.Connection, bool]:
        """Open the durable database, falling back to memory on failure."""
        if db_path is not None:
            conn: sqlite3.Connection | None = None
            try:
                db_path.parent.mkdir(parents=True, exist_ok=True)
                conn = sqlite3.connect(str(db_path), check_same_thread=False)
                conn.row_factory = sqlite3.Row
                conn.execute("PRAGMA journal_mode=WAL")
                conn.execute("PRAGMA synchronous=FULL")
                self._create_table(conn)
                return conn, True
            except (OSError, sqlite3.Error) as e:
                if conn is not None:
                    conn.close()
                log_durability_degraded(logger, str(db_path), str(e))

        conn = sqlite3.connect(":memory:", check_same_thread=False)
        conn.row_factory = sqlite3.Row
        self._create_table(conn)
        return conn, False

    @staticmethod
    def _create_table(conn: sqlite3.Connection) -> None:
        """Create the queue table if it doesn't exist."""
        conn.execute("""
            CREATE TABLE IF NOT EXISTS pending_captures (
                seq INTEGER PRIMARY KEY AUTOINCREMENT,
                id TEXT NOT NULL UNIQUE,
                visit_stop_id TEXT NOT NULL,
                capture_type TEXT NOT NULL,
                captured_by TEXT NOT NULL,
                local_blob_ref TEXT,
                caption TEXT,
                transcript TEXT,
                sentiment TEXT,
                location_lat REAL,
                location_lng REAL,
                enqueued_at TEXT NOT NULL
            )
        """)
        conn.commit()

    def enqueue(
        self,
        visit_stop_id: str,
        capture_type: CaptureType | str,
        *,
        local_blob_ref: str | Path | None = None,
        caption: str | None = None,
        transcript: str | None = None,
        sentiment: str | None = None,
        location: Location | None = None,
        captured_by: CapturedBy | str = CapturedBy.SALES,
    ) -> PendingCaptureRecord:
        """Add a capture to the queue.

        Args:
            visit_stop_id: Visit stop the capture belongs to
            capture_type: photo, voice_note, reaction or note
            local_blob_ref: Path of the captured file on this device
            caption: Optional caption text
            transcript: Optional voice note transcript
            sentiment: Optional reaction sentiment
            location: Optional position of the capture
            captured_by: sales or client

        Returns:
            The stored record, including its generated local id

        Raises:
            InvalidCaptureError: If visit_stop_id or capture_type is missing
                or unknown, or a file is attached to a reaction or note
        """
        if not visit_stop_id:
            raise InvalidCaptureError("visit_stop_id is required")
        if not capture_type:
            raise InvalidCaptureError("capture_type is required")
        try:
            ctype = CaptureType(capture_type)
        except ValueError:
            raise InvalidCaptureError(f"Unknown capture_type: {capture_type}") from None
        try:
            author = CapturedBy(captured_by)
        except ValueError:
            raise InvalidCaptureError(f"Unknown captured_by: {captured_by}") from None
        if local_blob_ref and ctype not in FILE_CAPTURE_TYPES:
            raise InvalidCaptureError(f"{ctype.value} captures cannot carry a file")

        local_id = f"capture-{uuid.uuid4().hex}"
        enqueued_at = datetime.now(timezone.utc)
        blob_ref = str(local_blob_ref) if local_blob_ref else None

        with self._lock, self._conn:
            cursor = self._conn.execute(
                """
                INSERT INTO pending_captures (
                    id, visit_stop_id, capture_type, captured_by, local_blob_ref,
                    caption, transcript, sentiment, location_lat, location_lng,
                    enqueued_at
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    local_id,
                    visit_stop_id,
                    ctype.value,
                    author.value,
                    blob_ref,
                    caption,
                    transcript,
                    sentiment,
                    location.lat if location else None,
                    location.lng if location else None,
                    enqueued_at.isoformat(),
                ),
            )
            sequence = cursor.lastrowid or 0

        log_capture_enqueued(logger, local_id, visit_stop_id, ctype.value, self.is_durable)

        return PendingCaptureRecord(
            id=local_id,
            visit_stop_id=visit_stop_id,
            capture_type=ctype,
            captured_by=author,
            enqueued_at=enqueued_at,
            local_blob_ref=blob_ref,
            caption=caption,
            transcript=transcript,
            sentiment=sentiment,
            location=location,
            sequence=sequence,
        )

    def list_pending(self, batch_size: int = 50) -> Iterator[PendingCaptureRecord]:
        """Iterate pending records in enqueue order.

        Rows are read lazily in batches. Iteration stops at the newest record
        present when it started, so it always terminates; calling again
        starts over from the current head.

        Args:
            batch_size: Number of rows fetched per query

        Yields:
            PendingCaptureRecord objects, oldest first
        """
        with self._lock:
            row = self._conn.execute("SELECT MAX(seq) FROM pending_captures").fetchone()
        upper = row[0]
        if upper is None:
            return

        last_seq = 0
        while True:
            with self._lock:
                rows = self._conn.execute(
                    """
                    SELECT * FROM pending_captures
                    WHERE seq > ? AND seq <= ?
                    ORDER BY seq ASC
                    LIMIT ?
                    """,
                    (last_seq, upper, batch_size),
                ).fetchall()
            if not rows:
                return
            for row in rows:
                yield self._row_to_record(row)
            last_seq = rows[-1]["seq"]

    def get(self, local_id: str) -> PendingCaptureRecord | None:
        """Get a pending record by local id."""
        with self._lock:
            row = self._conn.execute(
                "SELECT * FROM pending_captures WHERE id = ?",
                (local_id,),
            ).fetchone()
        return self._row_to_record(row) if row else None

    def contains(self, local_id: str) -> bool:
        """Check whether a record is still pending."""
        with self._lock:
            row = self._conn.execute(
                "SELECT 1 FROM pending_captures WHERE id = ?",
                (local_id,),
            ).fetchone()
        return row is not None

    def remove(self, local_id: str) -> bool:
        """Remove a record after the server confirmed it.

        Removing an id that is already gone is a no-op.

        Args:
            local_id: Local queue id

        Returns:
            True if a row was deleted
        """
        with self._lock, self._conn:
            cursor = self._conn.execute(
                "DELETE FROM pending_captures WHERE id = ?",
                (local_id,),
            )
        return cursor.rowcount > 0

    def count(self) -> int:
        """Count pending records from storage."""
        with self._lock:
            row = self._conn.execute("SELECT COUNT(*) FROM pending_captures").fetchone()
        return int(row[0])

    def close(self) -> None:
        """Close the database connection."""
        with self._lock:
            self._conn.close()

    def __enter__(self) -> "LocalCaptureQueue":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    @staticmethod
    def _row_to_record(row: sqlite3.Row) -> PendingCaptureRecord:
        location = None
        if row["location_lat"] is not None and row["location_lng"] is not None:
            location = Location(lat=row["location_lat"], lng=row["location_lng"])
        return PendingCaptureRecord(
            id=row["id"],
            visit_stop_id=row["visit_stop_id"],
            capture_type=CaptureType(row["capture_type"]),
            captured_by=CapturedBy(row["captured_by"]),
            enqueued_at=datetime.fromisoformat(row["enqueued_at"]),
            local_blob_ref=row["local_blob_ref"],
            caption=row["caption"],
            transcript=row["transcript"],
            sentiment=row["sentiment"],
            location=location,
            sequence=row["seq"],
        )
