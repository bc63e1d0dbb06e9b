"""Database operations for the income tracker - self-contained."""

import json
import logging
import shutil
import sqlite3
import sys
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)

BACKUPS_TO_KEEP = 10


def get_app_dir() -> Path:
    """Get the application directory."""
    if getattr(sys, 'frozen', False):
        return Path(sys.executable).parent
    else:
        return Path(__file__).parent


def get_data_dir() -> Path:
    """Get the data directory (creates if needed)."""
    data_dir = get_app_dir() / "data"
    data_dir.mkdir(exist_ok=True)
    return data_dir


def get_backups_dir() -> Path:
    """Get the backups directory (creates if needed)."""
    backups_dir = get_data_dir() / "backups"
    backups_dir.mkdir(exist_ok=True)
    return backups_dir


DB_PATH = None


def get_db_path() -> Path:
    """Get the database path."""
    global DB_PATH
    if DB_PATH is None:
        DB_PATH = get_data_dir() / "income.db"
    return DB_PATH


def get_connection() -> sqlite3.Connection:
    """Get database connection with row factory."""
    conn = sqlite3.connect(get_db_path())
    conn.row_factory = sqlite3.Row
    return conn


def init_db():
    """Initialize all database tables."""
    conn = get_connection()
    cursor = conn.cursor()

    # Configuration, one JSON value per key
    cursor.execute("""
        CREATE TABLE IF NOT EXISTS settings (
            key TEXT PRIMARY KEY,
            value TEXT NOT NULL
        )
    """)

    # Daily record and archived history, keyed by storage key
    cursor.execute("""
        CREATE TABLE IF NOT EXISTS state (
            key TEXT PRIMARY KEY,
            value TEXT NOT NULL,
            updated_at TEXT NOT NULL
        )
    """)
    cursor.execute("PRAGMA table_info(state)")
    state_cols = [row[1] for row in cursor.fetchall()]
    if 'updated_at' not in state_cols:
        cursor.execute("ALTER TABLE state ADD COLUMN updated_at TEXT NOT NULL DEFAULT ''")

    conn.commit()
    conn.close()


# === Settings ===

def set_settings(values: Dict[str, Any]):
    """Set several settings in one transaction."""
    conn = get_connection()
    try:
        conn.executemany(
            "INSERT OR REPLACE INTO settings (key, value) VALUES (?, ?)",
            [(key, json.dumps(value)) for key, value in values.items()]
        )
        conn.commit()
    finally:
        conn.close()


def get_all_settings() -> Dict[str, Any]:
    """Get every stored setting."""
    conn = get_connection()
    cursor = conn.cursor()
    cursor.execute("SELECT key, value FROM settings")
    rows = cursor.fetchall()
    conn.close()
    return {row['key']: _decode(row['value']) for row in rows}


# === Key/value state ===

def get_value(key: str) -> Optional[Any]:
    """Get a stored record or None."""
    conn = get_connection()
    cursor = conn.cursor()
    cursor.execute("SELECT value FROM state WHERE key = ?", (key,))
    row = cursor.fetchone()
    conn.close()
    return _decode(row['value']) if row else None


def set_value(key: str, value: Any):
    """Store a record, replacing any previous one."""
    conn = get_connection()
    cursor = conn.cursor()
    cursor.execute("""
        INSERT OR REPLACE INTO state (key, value, updated_at)
        VALUES (?, ?, ?)
    """, (key, json.dumps(value), datetime.now().isoformat()))
    conn.commit()
    conn.close()


def get_keys_with_prefix(prefix: str) -> List[str]:
    """List stored keys starting with prefix, sorted."""
    conn = get_connection()
    cursor = conn.cursor()
    # Escape LIKE wildcards in the prefix
    pattern = prefix.replace('\\', '\\\\').replace('%', '\\%').replace('_', '\\_') + '%'
    cursor.execute(
        "SELECT key FROM state WHERE key LIKE ? ESCAPE '\\' ORDER BY key",
        (pattern,)
    )
    rows = cursor.fetchall()
    conn.close()
    return [row['key'] for row in rows]


# === Backups ===

def backup_database() -> Optional[Path]:
    """Copy the database into the backups folder, keeping the newest few."""
    db_path = get_db_path()
    if not db_path.exists():
        return None

    backups_dir = get_backups_dir()
    stamp = datetime.now().strftime('%Y%m%d_%H%M%S')
    backup_path = backups_dir / f"income_{stamp}.db"
    try:
        shutil.copy2(db_path, backup_path)
    except OSError as e:
        logger.error("Database backup failed: %s", e)
        return None

    backups = sorted(backups_dir.glob("income_*.db"))
    for old in backups[:-BACKUPS_TO_KEEP]:
        try:
            old.unlink()
        except OSError as e:
            logger.warning("Could not remove old backup %s: %s", old, e)

    return backup_path


# === Helpers ===

def _decode(raw: str) -> Any:
    try:
        return json.loads(raw)
    except (TypeError, ValueError):
        return raw
