"""DuckDB storage for blocked sites, access windows and categories.

DuckDB is chosen for:
- Single-file database (simple deployment next to the CLI)
- SQL interface with UPDATE ... RETURNING for conditional writes
- No server process to run on a personal machine

DuckDB does not cascade foreign-key deletes, so window cleanup on site
deletion is done explicitly inside the same transaction.
"""

import logging
from datetime import datetime, time, timezone
from pathlib import Path
from typing import Any, Optional

import duckdb

from goodturkey.errors import ConcurrentModification, NotFound, ValidationError
from goodturkey.models import Category, Restriction, TimeWindow, parse_time_of_day

logger = logging.getLogger(__name__)

SCHEMA_VERSION = 1


def _to_db_ts(value: Optional[datetime]) -> Optional[datetime]:
    """Store instants as naive UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        raise ValueError("Refusing to store a naive datetime")
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def _from_db_ts(value: Optional[datetime]) -> Optional[datetime]:
    if value is None:
        return None
    return value.replace(tzinfo=timezone.utc)


def _from_db_time(value: Any) -> time:
    if isinstance(value, time):
        return value.replace(microsecond=0)
    return parse_time_of_day(str(value))


class SiteStore:
    """DuckDB-backed storage for blocked sites."""

    def __init__(self, db_path: Path, read_only: bool = False) -> None:
        """Initialize the site store.

        Args:
            db_path: Path to the DuckDB database file. Use ":memory:" for in-memory.
            read_only: If True, open in read-only mode (allows concurrent readers).
        """
        self.db_path = db_path
        self.read_only = read_only
        self._conn: Optional[duckdb.DuckDBPyConnection] = None

    def connect(self) -> None:
        """Open database connection and ensure schema exists."""
        db_str = str(self.db_path) if self.db_path != Path(":memory:") else ":memory:"
        self._conn = duckdb.connect(db_str, read_only=self.read_only)

        if not self.read_only:
            self._ensure_schema()

    def close(self) -> None:
        """Close database connection."""
        if self._conn:
            self._conn.close()
            self._conn = None

    def __enter__(self) -> "SiteStore":
        self.connect()
        return self

    def __exit__(self, *args: object) -> None:
        self.close()

    @property
    def conn(self) -> duckdb.DuckDBPyConnection:
        """Get the database connection, raising if not connected."""
        if self._conn is None:
            raise RuntimeError("SiteStore not connected. Call connect() first.")
        return self._conn

    def _ensure_schema(self) -> None:
        """Create tables if they don't exist."""
        self.conn.execute("""
            CREATE TABLE IF NOT EXISTS schema_version (
                version INTEGER PRIMARY KEY,
                applied_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        """)

        result = self.conn.execute(
            "SELECT MAX(version) FROM schema_version"
        ).fetchone()
        current_version = result[0] if result and result[0] else 0

        if current_version < SCHEMA_VERSION:
            self._apply_schema()
            self.conn.execute(
                "INSERT INTO schema_version (version) VALUES (?)",
                [SCHEMA_VERSION]
            )

    def _apply_schema(self) -> None:
        """Apply the database schema."""
        self.conn.execute("""
            CREATE TABLE IF NOT EXISTS categories (
                id VARCHAR PRIMARY KEY,
                owner_id VARCHAR NOT NULL,
                name VARCHAR NOT NULL,
                color VARCHAR NOT NULL,
                created_at TIMESTAMP NOT NULL
            )
        """)

        # unlock_requested_at is only ever written together with is_active
        self.conn.execute("""
            CREATE TABLE IF NOT EXISTS restrictions (
                id VARCHAR PRIMARY KEY,
                owner_id VARCHAR NOT NULL,
                category_id VARCHAR,
                url VARCHAR NOT NULL,
                is_active BOOLEAN NOT NULL DEFAULT TRUE,
                unlock_requested_at TIMESTAMP,
                access_attempts BIGINT NOT NULL DEFAULT 0,
                created_at TIMESTAMP NOT NULL
            )
        """)

        self.conn.execute("""
            CREATE TABLE IF NOT EXISTS time_windows (
                id VARCHAR PRIMARY KEY,
                restriction_id VARCHAR NOT NULL,
                day_of_week INTEGER,  -- 0-6 (Sunday-Saturday), NULL for every day
                start_time TIME NOT NULL,
                end_time TIME NOT NULL,
                created_at TIMESTAMP NOT NULL
            )
        """)

        self.conn.execute("""
            CREATE INDEX IF NOT EXISTS idx_restrictions_owner
            ON restrictions (owner_id)
        """)
        self.conn.execute("""
            CREATE INDEX IF NOT EXISTS idx_windows_restriction
            ON time_windows (restriction_id)
        """)

    # ------------------------------------------------------------------
    # Blocked sites
    # ------------------------------------------------------------------

    def _ensure_unique_pattern(self, owner_id: str, pattern: str, exclude_id: Optional[str] = None) -> None:
        """Raise ValidationError if the owner already blocks `pattern`."""
        existing = self.conn.execute("""
            SELECT 1 FROM restrictions
            WHERE owner_id = ? AND lower(url) = lower(?)
              AND id <> ?
            LIMIT 1
        """, [owner_id, pattern, exclude_id or ""]).fetchone()
        if existing is not None:
            raise ValidationError(f"Site already blocked: {pattern}")

    def insert_restriction(self, restriction: Restriction) -> Restriction:
        """Insert a new blocked site (without windows) and return it."""
        self._ensure_unique_pattern(restriction.owner_id, restriction.pattern)

        self.conn.execute("""
            INSERT INTO restrictions (
                id, owner_id, category_id, url, is_active,
                unlock_requested_at, access_attempts, created_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
        """, [
            restriction.id,
            restriction.owner_id,
            restriction.category_id,
            restriction.pattern,
            restriction.active,
            _to_db_ts(restriction.unlock_requested_at),
            restriction.access_attempts,
            _to_db_ts(restriction.created_at),
        ])
        return restriction

    def _row_to_restriction(self, row: tuple, windows: tuple[TimeWindow, ...]) -> Restriction:
        (rid, owner_id, category_id, url, is_active,
         unlock_requested_at, access_attempts, created_at) = row
        return Restriction(
            id=rid,
            owner_id=owner_id,
            pattern=url,
            active=bool(is_active),
            unlock_requested_at=_from_db_ts(unlock_requested_at),
            access_attempts=int(access_attempts or 0),
            category_id=category_id,
            created_at=_from_db_ts(created_at),
            windows=windows,
        )

    def get_restriction(self, owner_id: str, restriction_id: str) -> Restriction:
        """Load a blocked site with its windows.

        Raises:
            NotFound: Missing, or owned by someone else
        """
        row = self.conn.execute("""
            SELECT id, owner_id, category_id, url, is_active,
                   unlock_requested_at, access_attempts, created_at
            FROM restrictions
            WHERE id = ? AND owner_id = ?
        """, [restriction_id, owner_id]).fetchone()

        if row is None:
            raise NotFound("Site", restriction_id)

        return self._row_to_restriction(row, tuple(self.get_windows(restriction_id)))

    def list_restrictions(self, owner_id: str, active_only: bool = False) -> list[Restriction]:
        """All blocked sites of an owner, oldest first, with windows attached."""
        query = """
            SELECT id, owner_id, category_id, url, is_active,
                   unlock_requested_at, access_attempts, created_at
            FROM restrictions
            WHERE owner_id = ?
        """
        if active_only:
            query += " AND is_active = TRUE"
        query += " ORDER BY created_at, url"

        rows = self.conn.execute(query, [owner_id]).fetchall()
        if not rows:
            return []

        windows_by_site: dict[str, list[TimeWindow]] = {}
        for window in self._get_windows_for_owner(owner_id):
            windows_by_site.setdefault(window.restriction_id or "", []).append(window)

        return [
            self._row_to_restriction(row, tuple(windows_by_site.get(row[0], [])))
            for row in rows
        ]

    def update_restriction(self, updated: Restriction, expected: Restriction) -> Restriction:
        """Write `updated` only if the row still matches `expected`.

        The condition covers the lifecycle pair (is_active, unlock_requested_at),
        so a cancel and a deactivate cannot both win against the same read.

        Raises:
            ValidationError: New pattern is already blocked by another site of the owner
            ConcurrentModification: Row changed (or vanished) since `expected` was read
        """
        if updated.pattern.lower() != expected.pattern.lower():
            self._ensure_unique_pattern(expected.owner_id, updated.pattern, exclude_id=expected.id)

        row = self.conn.execute("""
            UPDATE restrictions
            SET url = ?,
                category_id = ?,
                is_active = ?,
                unlock_requested_at = ?
            WHERE id = ?
              AND owner_id = ?
              AND is_active = ?
              AND unlock_requested_at IS NOT DISTINCT FROM ?
            RETURNING id
        """, [
            updated.pattern,
            updated.category_id,
            updated.active,
            _to_db_ts(updated.unlock_requested_at),
            expected.id,
            expected.owner_id,
            expected.active,
            _to_db_ts(expected.unlock_requested_at),
        ]).fetchone()

        if row is None:
            raise ConcurrentModification(expected.id)

        logger.debug(f"Updated blocked site {expected.id}")
        return updated

    def delete_restriction(self, expected: Restriction) -> None:
        """Delete a site and its windows if it still matches `expected`.

        Raises:
            ConcurrentModification: Row changed (or vanished) since `expected` was read
        """
        self.conn.begin()
        try:
            row = self.conn.execute("""
                DELETE FROM restrictions
                WHERE id = ?
                  AND owner_id = ?
                  AND is_active = ?
                  AND unlock_requested_at IS NOT DISTINCT FROM ?
                RETURNING id
            """, [
                expected.id,
                expected.owner_id,
                expected.active,
                _to_db_ts(expected.unlock_requested_at),
            ]).fetchone()

            if row is None:
                raise ConcurrentModification(expected.id)

            self.conn.execute(
                "DELETE FROM time_windows WHERE restriction_id = ?",
                [expected.id],
            )
        except Exception:
            self.conn.rollback()
            raise
        self.conn.commit()
        logger.debug(f"Deleted blocked site {expected.id} and its windows")

    def increment_access_attempts(self, restriction_id: str) -> None:
        self.conn.execute("""
            UPDATE restrictions
            SET access_attempts = access_attempts + 1
            WHERE id = ?
        """, [restriction_id])

    # ------------------------------------------------------------------
    # Access windows
    # ------------------------------------------------------------------

    def insert_window(self, window: TimeWindow, created_at: datetime) -> TimeWindow:
        if window.restriction_id is None:
            raise ValueError("Window must belong to a blocked site")

        self.conn.execute("""
            INSERT INTO time_windows (
                id, restriction_id, day_of_week, start_time, end_time, created_at
            ) VALUES (?, ?, ?, CAST(? AS TIME), CAST(? AS TIME), ?)
        """, [
            window.id,
            window.restriction_id,
            window.day_of_week,
            window.start.isoformat(),
            window.end.isoformat(),
            _to_db_ts(created_at),
        ])
        return window

    def _row_to_window(self, row: tuple) -> TimeWindow:
        wid, restriction_id, day, start, end = row
        return TimeWindow(
            start=_from_db_time(start),
            end=_from_db_time(end),
            day_of_week=day,
            id=wid,
            restriction_id=restriction_id,
        )

    def get_windows(self, restriction_id: str) -> list[TimeWindow]:
        rows = self.conn.execute("""
            SELECT id, restriction_id, day_of_week, start_time, end_time
            FROM time_windows
            WHERE restriction_id = ?
            ORDER BY created_at, id
        """, [restriction_id]).fetchall()
        return [self._row_to_window(row) for row in rows]

    def _get_windows_for_owner(self, owner_id: str) -> list[TimeWindow]:
        rows = self.conn.execute("""
            SELECT w.id, w.restriction_id, w.day_of_week, w.start_time, w.end_time
            FROM time_windows w
            JOIN restrictions r ON r.id = w.restriction_id
            WHERE r.owner_id = ?
            ORDER BY w.created_at, w.id
        """, [owner_id]).fetchall()
        return [self._row_to_window(row) for row in rows]

    def get_window(self, owner_id: str, window_id: str) -> TimeWindow:
        """Load a window, checking the owning site belongs to `owner_id`.

        Raises:
            NotFound: Missing window, or window of another owner's site
        """
        row = self.conn.execute("""
            SELECT w.id, w.restriction_id, w.day_of_week, w.start_time, w.end_time
            FROM time_windows w
            JOIN restrictions r ON r.id = w.restriction_id
            WHERE w.id = ? AND r.owner_id = ?
        """, [window_id, owner_id]).fetchone()

        if row is None:
            raise NotFound("Time window", window_id)
        return self._row_to_window(row)

    def delete_window(self, window_id: str) -> None:
        self.conn.execute("DELETE FROM time_windows WHERE id = ?", [window_id])

    # ------------------------------------------------------------------
    # Categories
    # ------------------------------------------------------------------

    def insert_category(self, category: Category) -> Category:
        self.conn.execute("""
            INSERT INTO categories (id, owner_id, name, color, created_at)
            VALUES (?, ?, ?, ?, ?)
        """, [
            category.id,
            category.owner_id,
            category.name,
            category.color,
            _to_db_ts(category.created_at),
        ])
        return category

    def get_category(self, owner_id: str, category_id: str) -> Category:
        row = self.conn.execute("""
            SELECT id, owner_id, name, color, created_at
            FROM categories
            WHERE id = ? AND owner_id = ?
        """, [category_id, owner_id]).fetchone()

        if row is None:
            raise NotFound("Category", category_id)
        return Category(
            id=row[0], owner_id=row[1], name=row[2], color=row[3],
            created_at=_from_db_ts(row[4]),
        )

    def list_categories(self, owner_id: str) -> list[Category]:
        rows = self.conn.execute("""
            SELECT id, owner_id, name, color, created_at
            FROM categories
            WHERE owner_id = ?
            ORDER BY name
        """, [owner_id]).fetchall()
        return [
            Category(id=r[0], owner_id=r[1], name=r[2], color=r[3], created_at=_from_db_ts(r[4]))
            for r in rows
        ]

    def update_category(self, category: Category) -> Category:
        """Rename or recolor a category.

        Raises:
            NotFound: Missing, or owned by someone else
        """
        row = self.conn.execute("""
            UPDATE categories
            SET name = ?, color = ?
            WHERE id = ? AND owner_id = ?
            RETURNING id
        """, [category.name, category.color, category.id, category.owner_id]).fetchone()

        if row is None:
            raise NotFound("Category", category.id)
        return category

    def delete_category(self, owner_id: str, category_id: str) -> None:
        """Delete a category and detach the sites that referenced it."""
        self.get_category(owner_id, category_id)

        self.conn.begin()
        try:
            self.conn.execute("""
                UPDATE restrictions SET category_id = NULL
                WHERE category_id = ? AND owner_id = ?
            """, [category_id, owner_id])
            self.conn.execute(
                "DELETE FROM categories WHERE id = ? AND owner_id = ?",
                [category_id, owner_id],
            )
        except Exception:
            self.conn.rollback()
            raise
        self.conn.commit()

    # ------------------------------------------------------------------
    # Stats
    # ------------------------------------------------------------------

    def get_table_stats(self, owner_id: str) -> dict:
        """Counts used by the CLI summary."""
        row = self.conn.execute("""
            SELECT
                COUNT(*) AS total,
                COALESCE(SUM(CASE WHEN is_active THEN 1 ELSE 0 END), 0) AS active,
                COALESCE(SUM(CASE WHEN unlock_requested_at IS NOT NULL THEN 1 ELSE 0 END), 0) AS unlocking,
                COALESCE(SUM(access_attempts), 0) AS attempts
            FROM restrictions
            WHERE owner_id = ?
        """, [owner_id]).fetchone()

        columns = ["total", "active", "unlocking", "attempts"]
        return {name: int(value or 0) for name, value in zip(columns, row or ())}

