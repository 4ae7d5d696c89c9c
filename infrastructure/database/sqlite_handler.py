import logging
import shutil
import sqlite3
import threading
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Iterator, Optional

from infrastructure.database.ops.weather import WeatherOperations

logger = logging.getLogger(__name__)

MEMORY_DATABASE = ":memory:"

_CORRUPTION_MARKERS = ("malformed", "file is not a database", "file is encrypted")


def is_corruption_error(exc: sqlite3.Error) -> bool:
    message = str(exc).lower()
    return any(marker in message for marker in _CORRUPTION_MARKERS)


def quarantine_database(db_path: Path) -> Optional[Path]:
    """Move a corrupt database file (and its WAL sidecars) into ``corrupt/``."""
    if not db_path.exists():
        return None

    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    quarantine_dir = db_path.parent / "corrupt"
    quarantine_dir.mkdir(parents=True, exist_ok=True)
    quarantined = quarantine_dir / f"{db_path.stem}_corrupt_{timestamp}{db_path.suffix or '.db'}"
    try:
        shutil.move(str(db_path), str(quarantined))
        for sidecar_suffix in ("-wal", "-shm"):
            sidecar = Path(f"{db_path}{sidecar_suffix}")
            if sidecar.exists():
                shutil.move(str(sidecar), str(quarantine_dir / f"{sidecar.name}_{timestamp}"))
    except OSError as exc:
        logger.error("Failed to quarantine corrupt database %s: %s", db_path, exc)
        return None
    logger.warning("Quarantined corrupt database to %s", quarantined)
    return quarantined


class SQLiteDatabaseHandler(WeatherOperations):
    """Thread-safe SQLite handler decoupled from Flask globals.

    File databases get one connection per thread. An in-memory database only
    exists inside its connection, so ``:memory:`` shares a single connection
    guarded by a lock.
    """

    def __init__(self, database_path: str) -> None:
        self._database_path = database_path
        self._local = threading.local()
        self._shared: Optional[sqlite3.Connection] = None
        self._shared_lock = threading.RLock()

        if database_path != MEMORY_DATABASE:
            # Ensure the directory for the database file exists
            db_path = Path(database_path)
            if not db_path.parent.exists():
                db_path.parent.mkdir(parents=True, exist_ok=True)
                logger.info("Created database directory: %s", db_path.parent)

    @property
    def database_path(self) -> str:
        return self._database_path

    # --- Connections ----------------------------------------------------------
    def get_db(self) -> sqlite3.Connection:
        if self._database_path == MEMORY_DATABASE:
            with self._shared_lock:
                if self._shared is None:
                    self._shared = self._open_connection()
                return self._shared

        connection: Optional[sqlite3.Connection] = getattr(self._local, "connection", None)
        if connection is None:
            try:
                connection = self._open_connection()
            except sqlite3.DatabaseError as exc:
                if is_corruption_error(exc):
                    logger.error("Database appears corrupt (%s). Recreating a fresh database.", exc)
                    quarantine_database(Path(self._database_path))
                    connection = self._open_connection()
                else:
                    raise
            self._local.connection = connection
        return connection

    def _open_connection(self) -> sqlite3.Connection:
        connection = sqlite3.connect(self._database_path, check_same_thread=False)
        try:
            connection.row_factory = sqlite3.Row
            self._configure_connection(connection)
            return connection
        except Exception:
            connection.close()
            raise

    def _configure_connection(self, connection: sqlite3.Connection) -> None:
        """Configure SQLite connection for a write-heavy append workload.

        - WAL mode: readers (API routes) do not block the sink writer
        - NORMAL synchronous: safe with WAL, much faster than FULL
        - Memory temp store: avoids temp file creation
        """
        if self._database_path != MEMORY_DATABASE:
            connection.execute("PRAGMA journal_mode=WAL")
        connection.execute("PRAGMA synchronous=NORMAL")
        connection.execute("PRAGMA cache_size=-16000")  # 16MB cache (negative = KB)
        connection.execute("PRAGMA temp_store=MEMORY")
        connection.commit()

    def close_db(self, _e: Optional[BaseException] = None) -> None:
        connection: Optional[sqlite3.Connection] = getattr(self._local, "connection", None)
        if connection is not None:
            connection.close()
            delattr(self._local, "connection")

    def close(self) -> None:
        """Close this thread's connection and the shared in-memory one."""
        self.close_db()
        with self._shared_lock:
            if self._shared is not None:
                self._shared.close()
                self._shared = None

    @contextmanager
    def connection(self) -> Iterator[sqlite3.Connection]:
        conn = self.get_db()
        lock = self._shared_lock if self._database_path == MEMORY_DATABASE else None
        if lock is not None:
            lock.acquire()
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            if lock is not None:
                lock.release()

    # --- Schema ----------------------------------------------------------------
    def create_tables(self) -> None:
        """Creates the weather tables if they do not already exist."""
        with self.connection() as db:
            db.execute(
                """
                CREATE TABLE IF NOT EXISTS observations (
                    station_id TEXT NOT NULL,
                    epoch INTEGER NOT NULL,
                    timestamp TEXT NOT NULL,
                    source TEXT,
                    station_type TEXT,
                    measurements TEXT NOT NULL,
                    units TEXT NOT NULL,
                    meta TEXT,
                    PRIMARY KEY (station_id, epoch)
                )
                """
            )
            db.execute(
                """
                CREATE TABLE IF NOT EXISTS archive (
                    station_id TEXT NOT NULL,
                    window_start INTEGER NOT NULL,
                    window_end INTEGER NOT NULL,
                    interval_seconds INTEGER NOT NULL,
                    observation_count INTEGER NOT NULL,
                    aggregates TEXT NOT NULL,
                    PRIMARY KEY (station_id, window_start)
                )
                """
            )
            db.execute(
                """
                CREATE TABLE IF NOT EXISTS daily_summary (
                    station_id TEXT NOT NULL,
                    date TEXT NOT NULL,
                    timezone TEXT NOT NULL,
                    archive_count INTEGER NOT NULL,
                    observation_count INTEGER NOT NULL,
                    first_window_start TEXT NOT NULL,
                    last_window_end TEXT NOT NULL,
                    aggregates TEXT NOT NULL,
                    updated_at TEXT NOT NULL,
                    PRIMARY KEY (station_id, date)
                )
                """
            )
            db.execute("CREATE INDEX IF NOT EXISTS idx_observations_epoch ON observations (epoch)")
        logger.info("Weather tables ready in %s", self._database_path)
