"""
Database Infrastructure for Saheli

Provides SQLite database management, connection pooling, migrations,
and transaction management for the contact, location and route stores.
"""

import sqlite3
import logging
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, List, Sequence, Tuple
from dataclasses import dataclass
from datetime import datetime, timezone


MEMORY_DATABASE = ":memory:"


@dataclass
class Migration:
    """Database migration definition"""
    version: int
    name: str
    sql: str


class DatabaseError(Exception):
    """Database-related errors"""
    pass


class DatabaseIntegrityError(DatabaseError):
    """A write violated a uniqueness or foreign key constraint"""
    pass


class ConnectionPool:
    """Simple SQLite connection pool"""

    def __init__(self, database_path: str, max_connections: int = 10):
        self.database_path = database_path
        # Every connection to an in-memory database is a separate database
        self.max_connections = 1 if database_path == MEMORY_DATABASE else max_connections
        self.connections = []
        self.in_use = set()
        self.lock = threading.Lock()
        self.logger = logging.getLogger(__name__)

    def get_connection(self) -> sqlite3.Connection:
        """Get a connection from the pool"""
        with self.lock:
            # Try to reuse an existing connection
            for conn in self.connections:
                if conn not in self.in_use:
                    self.in_use.add(conn)
                    return conn

            # Create new connection if under limit
            if len(self.connections) < self.max_connections:
                conn = sqlite3.connect(
                    self.database_path,
                    check_same_thread=False,
                    timeout=30.0
                )
                conn.row_factory = sqlite3.Row
                conn.execute("PRAGMA foreign_keys = ON")
                conn.execute("PRAGMA journal_mode = WAL")
                self.connections.append(conn)
                self.in_use.add(conn)
                return conn

            raise DatabaseError("Connection pool exhausted")

    def return_connection(self, conn: sqlite3.Connection):
        """Return a connection to the pool"""
        with self.lock:
            if conn in self.in_use:
                self.in_use.remove(conn)

    def close_all(self):
        """Close all connections in the pool"""
        with self.lock:
            for conn in self.connections:
                try:
                    conn.close()
                except Exception as e:
                    self.logger.warning(f"Error closing connection: {e}")
            self.connections.clear()
            self.in_use.clear()


class DatabaseManager:
    """
    Manages SQLite database operations, migrations, and connection pooling
    """

    def __init__(self, database_path: str, max_connections: int = 10):
        self.database_path = database_path
        self.pool = ConnectionPool(database_path, max_connections)
        self.logger = logging.getLogger(__name__)
        self.migrations = self._get_migrations()

        if database_path != MEMORY_DATABASE:
            Path(database_path).parent.mkdir(parents=True, exist_ok=True)

        self._initialize_database()

    @contextmanager
    def get_connection(self):
        """Context manager for database connections"""
        conn = None
        try:
            conn = self.pool.get_connection()
            yield conn
        except Exception:
            if conn:
                conn.rollback()
            raise
        finally:
            if conn:
                self.pool.return_connection(conn)

    @contextmanager
    def transaction(self):
        """Context manager for database transactions"""
        with self.get_connection() as conn:
            try:
                conn.execute("BEGIN")
                yield conn
                conn.commit()
            except Exception:
                conn.rollback()
                raise

    def _initialize_database(self):
        """Initialize database with schema and migrations"""
        self.logger.info(f"Initializing database at {self.database_path}")

        with self.get_connection() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS migrations (
                    version INTEGER PRIMARY KEY,
                    name TEXT NOT NULL,
                    applied_at DATETIME DEFAULT CURRENT_TIMESTAMP
                )
            """)
            conn.commit()

        self._run_migrations()

    def _get_migrations(self) -> List[Migration]:
        """Get all database migrations"""
        return [
            Migration(
                version=1,
                name="initial_schema",
                sql="""
                -- Trusted contacts notified by alerts
                CREATE TABLE trusted_contacts (
                    id TEXT PRIMARY KEY,
                    user_id TEXT NOT NULL,
                    name TEXT NOT NULL,
                    phone TEXT NOT NULL,
                    phone_digits TEXT NOT NULL,
                    email TEXT,
                    created_at DATETIME NOT NULL,
                    UNIQUE (user_id, phone_digits)
                );

                -- Latest shared location, one row per user
                CREATE TABLE location_shares (
                    user_id TEXT PRIMARY KEY,
                    latitude REAL NOT NULL,
                    longitude REAL NOT NULL,
                    is_sharing BOOLEAN NOT NULL DEFAULT FALSE,
                    timestamp DATETIME NOT NULL,
                    accuracy REAL,
                    speed REAL,
                    updated_at DATETIME DEFAULT CURRENT_TIMESTAMP
                );

                -- Append-only log of accepted fixes
                CREATE TABLE location_history (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id TEXT NOT NULL,
                    latitude REAL NOT NULL,
                    longitude REAL NOT NULL,
                    timestamp DATETIME NOT NULL,
                    accuracy REAL,
                    speed REAL,
                    created_at DATETIME DEFAULT CURRENT_TIMESTAMP
                );

                -- Destination sharing, one row per user
                CREATE TABLE route_shares (
                    user_id TEXT PRIMARY KEY,
                    destination TEXT NOT NULL,
                    start_time DATETIME NOT NULL,
                    is_active BOOLEAN NOT NULL DEFAULT FALSE,
                    updated_at DATETIME DEFAULT CURRENT_TIMESTAMP
                );

                CREATE INDEX idx_trusted_contacts_user ON trusted_contacts (user_id, created_at);
                CREATE INDEX idx_location_history_user ON location_history (user_id, timestamp);
                CREATE INDEX idx_route_shares_active ON route_shares (is_active);
                """
            )
        ]

    def _run_migrations(self):
        """Run pending database migrations"""
        with self.get_connection() as conn:
            cursor = conn.execute("SELECT MAX(version) FROM migrations")
            result = cursor.fetchone()
            current_version = result[0] if result[0] is not None else 0

            for migration in self.migrations:
                if migration.version > current_version:
                    self.logger.info(f"Running migration {migration.version}: {migration.name}")

                    try:
                        conn.executescript(migration.sql)
                        conn.execute(
                            "INSERT INTO migrations (version, name) VALUES (?, ?)",
                            (migration.version, migration.name)
                        )
                        conn.commit()
                        self.logger.info(f"Migration {migration.version} completed successfully")

                    except Exception as e:
                        conn.rollback()
                        self.logger.error(f"Migration {migration.version} failed: {e}")
                        raise DatabaseError(f"Migration failed: {e}")

    def execute_query(self, query: str, params: Tuple = ()) -> List[sqlite3.Row]:
        """Execute a SELECT query and return results"""
        try:
            with self.get_connection() as conn:
                cursor = conn.execute(query, params)
                return cursor.fetchall()
        except sqlite3.Error as e:
            raise DatabaseError(f"Query failed: {e}") from e

    def execute_update(self, query: str, params: Tuple = ()) -> int:
        """Execute an INSERT/UPDATE/DELETE query and return affected rows"""
        try:
            with self.transaction() as conn:
                cursor = conn.execute(query, params)
                return cursor.rowcount
        except sqlite3.IntegrityError as e:
            raise DatabaseIntegrityError(f"Constraint violated: {e}") from e
        except sqlite3.Error as e:
            raise DatabaseError(f"Update failed: {e}") from e

    def upsert(self, table: str, data: Dict[str, Any], key_columns: Sequence[str]) -> int:
        """Insert a row or update it in place when the key columns already exist"""
        data = dict(data)
        data['updated_at'] = datetime.now(timezone.utc).isoformat()

        columns = list(data.keys())
        placeholders = ', '.join(['?' for _ in columns])
        update_clause = ', '.join(
            f"{col} = excluded.{col}" for col in columns if col not in key_columns
        )

        query = f"""
            INSERT INTO {table} ({', '.join(columns)})
            VALUES ({placeholders})
            ON CONFLICT({', '.join(key_columns)}) DO UPDATE SET {update_clause}
        """

        return self.execute_update(query, tuple(data.values()))

    def get_stats(self) -> Dict[str, Any]:
        """Get database statistics"""
        stats = {}

        tables = ['trusted_contacts', 'location_shares', 'location_history', 'route_shares']

        for table in tables:
            try:
                rows = self.execute_query(f"SELECT COUNT(*) FROM {table}")
                stats[table] = rows[0][0] if rows else 0
            except DatabaseError:
                stats[table] = 0

        return stats

    def close(self):
        """Close all database connections"""
        self.pool.close_all()

