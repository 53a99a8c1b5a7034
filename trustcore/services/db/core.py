"""
TrustCore - Database Core
=========================

Base database class with connection handling, schema, and migrations.
"""

import os
import sqlite3
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional

from trustcore.core.config import DATABASE_TIMEOUT
from trustcore.core.errors import ConcurrentUpdateError, NotFound
from trustcore.core.logger import logger


def _is_busy_error(error: sqlite3.OperationalError) -> bool:
    message = str(error).lower()
    return "locked" in message or "busy" in message


class DatabaseCore:
    """
    Base database class with connection handling and schema management.

    Uses a persistent connection with WAL mode so several service
    instances can share one database file. Thread-safe via a threading
    lock for all operations; every mutation runs inside BEGIN IMMEDIATE,
    which is SQLite's cross-process write lock.
    """

    # Current schema version - increment when adding migrations
    SCHEMA_VERSION = 1

    VALID_TABLES = frozenset({
        'actors', 'messages', 'content_items', 'raise_hands', 'reactions',
        'reaction_counts', 'votes', 'moderation_queue', 'admin_logs',
        'blacklist_keywords', 'notifications', 'schema_version',
    })

    def __init__(self, db_path: str = "data/trustcore.db") -> None:
        """Initialize database with persistent connection."""
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

        self._lock = threading.Lock()

        self._connection: Optional[sqlite3.Connection] = None
        self._connect()
        self._init_database()

    # =========================================================================
    # Connection Management
    # =========================================================================

    def _connect(self) -> None:
        """Create persistent connection with optimized settings."""
        self._connection = sqlite3.connect(
            self.db_path,
            check_same_thread=False,
            timeout=DATABASE_TIMEOUT,
        )
        self._connection.row_factory = sqlite3.Row

        self._connection.execute("PRAGMA journal_mode=WAL")
        self._connection.execute("PRAGMA foreign_keys=ON")
        self._connection.execute("PRAGMA synchronous=NORMAL")

        logger.tree("Database Connection Established", [
            ("Path", str(self.db_path)),
            ("Mode", "WAL"),
        ], emoji="🗄️")

    def _get_connection(self) -> sqlite3.Connection:
        """Get the persistent database connection."""
        if self._connection is None:
            self._connect()
        return self._connection

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Cursor]:
        """
        Run a read-modify-write unit inside BEGIN IMMEDIATE.

        Commits on success and rolls back on any exception. Busy or locked
        errors from a concurrent writer surface as ConcurrentUpdateError.
        """
        with self._lock:
            conn = self._get_connection()
            cursor = conn.cursor()
            try:
                cursor.execute("BEGIN IMMEDIATE")
            except sqlite3.OperationalError as e:
                if _is_busy_error(e):
                    raise ConcurrentUpdateError() from e
                raise
            try:
                yield cursor
                conn.commit()
            except sqlite3.OperationalError as e:
                conn.rollback()
                if _is_busy_error(e):
                    raise ConcurrentUpdateError() from e
                raise
            except BaseException:
                conn.rollback()
                raise

    @contextmanager
    def _reader(self) -> Iterator[sqlite3.Cursor]:
        """Cursor for read-only queries under the connection lock."""
        with self._lock:
            yield self._get_connection().cursor()

    def close(self) -> None:
        """Close the database connection and checkpoint WAL."""
        with self._lock:
            if self._connection:
                try:
                    self._connection.execute("PRAGMA wal_checkpoint(TRUNCATE)")
                    self._connection.close()
                    logger.tree("Database Connection Closed", [
                        ("WAL", "Checkpointed"),
                        ("Status", "Clean"),
                    ], emoji="🗄️")
                except sqlite3.Error as e:
                    logger.error("Database Checkpoint Failed", [("Error", str(e))])
                    try:
                        self._connection.close()
                    except sqlite3.Error:
                        pass
                finally:
                    self._connection = None

    def health_check(self) -> dict:
        """Verify database connectivity and report basic stats."""
        result = {
            "healthy": False,
            "wal_mode": False,
            "db_size_mb": 0.0,
            "error": None,
        }
        with self._lock:
            try:
                conn = self._get_connection()
                conn.execute("SELECT 1").fetchone()
                mode = conn.execute("PRAGMA journal_mode").fetchone()
                result["wal_mode"] = bool(mode) and mode[0].upper() == "WAL"
                result["healthy"] = True
            except sqlite3.Error as e:
                result["error"] = str(e)

        if os.path.exists(self.db_path):
            result["db_size_mb"] = round(os.path.getsize(self.db_path) / (1024 * 1024), 2)
        return result

    # =========================================================================
    # Schema
    # =========================================================================

    def _init_database(self) -> None:
        """Create database tables and run migrations."""
        with self._lock:
            conn = self._get_connection()
            cursor = conn.cursor()

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS schema_version (
                    id INTEGER PRIMARY KEY CHECK (id = 1),
                    version INTEGER NOT NULL DEFAULT 0,
                    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )
            """)

            cursor.execute("SELECT version FROM schema_version WHERE id = 1")
            row = cursor.fetchone()
            current_version = row[0] if row else 0

            if current_version == 0:
                cursor.execute("INSERT OR IGNORE INTO schema_version (id, version) VALUES (1, 0)")

            self._create_base_tables(cursor)

            migrations_run = self._run_migrations(cursor, current_version)

            conn.commit()

            if migrations_run > 0:
                logger.tree("Database Migrations Complete", [
                    ("From Version", str(current_version)),
                    ("To Version", str(self.SCHEMA_VERSION)),
                ], emoji="🗳️")

    def _create_base_tables(self, cursor: sqlite3.Cursor) -> None:
        """Create all base tables (idempotent)."""
        # Actors - directory of members and their trust flags
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS actors (
                id TEXT PRIMARY KEY,
                display_name TEXT NOT NULL DEFAULT '',
                reputation INTEGER NOT NULL DEFAULT 0 CHECK (reputation >= 0),
                tier INTEGER NOT NULL DEFAULT 1 CHECK (tier BETWEEN 1 AND 7),
                is_expert INTEGER NOT NULL DEFAULT 0,
                is_sme INTEGER NOT NULL DEFAULT 0,
                is_admin INTEGER NOT NULL DEFAULT 0,
                messaging_banned INTEGER NOT NULL DEFAULT 0,
                messaging_suspended_until TEXT,
                allows_guest_messages INTEGER NOT NULL DEFAULT 1,
                is_active INTEGER NOT NULL DEFAULT 1,
                created_at TEXT NOT NULL
            )
        """)

        # Direct messages
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS messages (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                sender_id TEXT NOT NULL REFERENCES actors(id),
                recipient_id TEXT NOT NULL REFERENCES actors(id),
                content TEXT NOT NULL,
                is_read INTEGER NOT NULL DEFAULT 0,
                created_at TEXT NOT NULL
            )
        """)
        cursor.execute("CREATE INDEX IF NOT EXISTS idx_messages_sender_time ON messages(sender_id, created_at)")
        cursor.execute("CREATE INDEX IF NOT EXISTS idx_messages_pair ON messages(sender_id, recipient_id)")
        cursor.execute("CREATE INDEX IF NOT EXISTS idx_messages_recipient ON messages(recipient_id, is_read)")

        # Moderatable content (discussions, comments, reviews)
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS content_items (
                id TEXT PRIMARY KEY,
                kind TEXT NOT NULL CHECK (kind IN ('discussion', 'comment', 'review')),
                author_id TEXT NOT NULL REFERENCES actors(id),
                body TEXT NOT NULL,
                parent_id TEXT,
                is_flagged INTEGER NOT NULL DEFAULT 0,
                flag_count INTEGER NOT NULL DEFAULT 0,
                is_removed INTEGER NOT NULL DEFAULT 0,
                raise_hand_count INTEGER NOT NULL DEFAULT 0 CHECK (raise_hand_count >= 0),
                vote_score INTEGER NOT NULL DEFAULT 0,
                created_at TEXT NOT NULL
            )
        """)
        cursor.execute("CREATE INDEX IF NOT EXISTS idx_content_author ON content_items(author_id, kind, is_removed)")
        cursor.execute("CREATE INDEX IF NOT EXISTS idx_content_parent ON content_items(parent_id)")

        # Signal membership tables - one row per (actor, content[, kind])
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS raise_hands (
                actor_id TEXT NOT NULL REFERENCES actors(id),
                content_id TEXT NOT NULL REFERENCES content_items(id) ON DELETE CASCADE,
                created_at TEXT NOT NULL,
                PRIMARY KEY (actor_id, content_id)
            )
        """)
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS reactions (
                actor_id TEXT NOT NULL REFERENCES actors(id),
                content_id TEXT NOT NULL REFERENCES content_items(id) ON DELETE CASCADE,
                kind TEXT NOT NULL,
                created_at TEXT NOT NULL,
                PRIMARY KEY (actor_id, content_id, kind)
            )
        """)
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS reaction_counts (
                content_id TEXT NOT NULL REFERENCES content_items(id) ON DELETE CASCADE,
                kind TEXT NOT NULL,
                count INTEGER NOT NULL DEFAULT 0 CHECK (count >= 0),
                PRIMARY KEY (content_id, kind)
            )
        """)
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS votes (
                actor_id TEXT NOT NULL REFERENCES actors(id),
                content_id TEXT NOT NULL REFERENCES content_items(id) ON DELETE CASCADE,
                value INTEGER NOT NULL CHECK (value IN (-1, 1)),
                created_at TEXT NOT NULL,
                PRIMARY KEY (actor_id, content_id)
            )
        """)

        # Moderation queue - snapshot of flagged content awaiting review
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS moderation_queue (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                content_id TEXT NOT NULL,
                content_kind TEXT NOT NULL,
                author_id TEXT NOT NULL,
                body TEXT NOT NULL,
                parent_id TEXT,
                original_created_at TEXT,
                flag_count INTEGER NOT NULL DEFAULT 1,
                source TEXT NOT NULL CHECK (source IN ('classifier', 'reactions', 'blacklist', 'manual')),
                reason TEXT,
                status TEXT NOT NULL DEFAULT 'pending' CHECK (status IN ('pending', 'approved', 'rejected')),
                dispute_reason TEXT,
                queued_at TEXT NOT NULL,
                resolved_at TEXT,
                resolved_by TEXT
            )
        """)
        cursor.execute("""
            CREATE UNIQUE INDEX IF NOT EXISTS idx_queue_one_pending
            ON moderation_queue(content_id) WHERE status = 'pending'
        """)
        cursor.execute("CREATE INDEX IF NOT EXISTS idx_queue_status ON moderation_queue(status, queued_at)")
        cursor.execute("CREATE INDEX IF NOT EXISTS idx_queue_author ON moderation_queue(author_id)")

        # Append-only admin audit log
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS admin_logs (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                admin_id TEXT NOT NULL,
                action TEXT NOT NULL,
                target_type TEXT NOT NULL,
                target_id TEXT NOT NULL,
                reason TEXT,
                metadata TEXT,
                created_at TEXT NOT NULL
            )
        """)
        cursor.execute("CREATE INDEX IF NOT EXISTS idx_admin_logs_target ON admin_logs(target_type, target_id)")

        # Keyword blacklist
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS blacklist_keywords (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                keyword TEXT NOT NULL UNIQUE COLLATE NOCASE,
                reason TEXT,
                is_active INTEGER NOT NULL DEFAULT 1,
                created_at TEXT NOT NULL
            )
        """)

        # Notification inbox
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS notifications (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                actor_id TEXT NOT NULL,
                title TEXT NOT NULL,
                message TEXT NOT NULL,
                severity TEXT NOT NULL DEFAULT 'info',
                link TEXT,
                is_read INTEGER NOT NULL DEFAULT 0,
                created_at TEXT NOT NULL
            )
        """)
        cursor.execute("CREATE INDEX IF NOT EXISTS idx_notifications_actor ON notifications(actor_id, is_read)")

    def _run_migrations(self, cursor: sqlite3.Cursor, current_version: int) -> int:
        """Run all pending migrations."""
        migrations_run = 0

        if current_version < self.SCHEMA_VERSION:
            cursor.execute(
                "UPDATE schema_version SET version = ?, updated_at = CURRENT_TIMESTAMP WHERE id = 1",
                (self.SCHEMA_VERSION,)
            )
            migrations_run = self.SCHEMA_VERSION - current_version

        return migrations_run

    def table_count(self, table: str) -> int:
        """Row count for a known table."""
        if table not in self.VALID_TABLES:
            raise ValueError(f"Unknown table: {table}")
        with self._reader() as cursor:
            cursor.execute(f"SELECT COUNT(*) FROM {table}")
            return cursor.fetchone()[0]

    # =========================================================================
    # Shared Row Helpers
    # =========================================================================

    @staticmethod
    def _require(row: Optional[sqlite3.Row], what: str) -> sqlite3.Row:
        if row is None:
            raise NotFound(f"{what} not found.")
        return row
