import sqlite3
import logging
from pathlib import Path
from typing import Optional, Union

import config
from core.utils import ensure_folder

logger = logging.getLogger(__name__)

SCHEMA = [
    # 1. Owner accounts (doubles as the profile table)
    """
    CREATE TABLE IF NOT EXISTS users (
        id TEXT PRIMARY KEY,
        email TEXT UNIQUE NOT NULL,
        password_hash BLOB NOT NULL,
        name TEXT,
        phone TEXT,
        gym_name TEXT,
        role TEXT NOT NULL DEFAULT 'owner'
            CHECK(role IN ('owner', 'manager', 'trainer', 'front_desk')),
        created_at TEXT NOT NULL,
        updated_at TEXT
    )
    """,
    # 2. Branches
    """
    CREATE TABLE IF NOT EXISTS branches (
        id TEXT PRIMARY KEY,
        owner_id TEXT NOT NULL,
        name TEXT NOT NULL,
        address TEXT,
        phone TEXT,
        is_main INTEGER NOT NULL DEFAULT 0,
        created_at TEXT NOT NULL,
        updated_at TEXT
    )
    """,
    # 3. Members
    """
    CREATE TABLE IF NOT EXISTS members (
        id TEXT PRIMARY KEY,
        user_id TEXT NOT NULL,
        branch_id TEXT,
        name TEXT NOT NULL,
        email TEXT,
        phone TEXT NOT NULL,
        plan_duration INTEGER NOT NULL DEFAULT 1,
        joining_date TEXT,
        expiry_date TEXT NOT NULL,
        status TEXT,
        qr_token TEXT UNIQUE,
        created_at TEXT NOT NULL,
        updated_at TEXT
    )
    """,
    # 4. Payments (no foreign key: payments outlive deleted members)
    """
    CREATE TABLE IF NOT EXISTS payments (
        id TEXT PRIMARY KEY,
        user_id TEXT NOT NULL,
        branch_id TEXT,
        member_id TEXT NOT NULL,
        member_name TEXT,
        amount REAL NOT NULL,
        payment_method TEXT NOT NULL,
        payment_date TEXT,
        status TEXT CHECK(status IS NULL OR status IN ('done', 'pending')),
        plan_name TEXT,
        created_at TEXT NOT NULL,
        updated_at TEXT
    )
    """,
    # 5. Plans (features stored as a JSON list)
    """
    CREATE TABLE IF NOT EXISTS plans (
        id TEXT PRIMARY KEY,
        user_id TEXT NOT NULL,
        branch_id TEXT,
        name TEXT NOT NULL,
        price REAL NOT NULL,
        duration INTEGER NOT NULL,
        features TEXT NOT NULL DEFAULT '[]',
        created_at TEXT NOT NULL,
        updated_at TEXT
    )
    """,
    # 6. Staff
    """
    CREATE TABLE IF NOT EXISTS staff_members (
        id TEXT PRIMARY KEY,
        user_id TEXT NOT NULL,
        branch_id TEXT,
        name TEXT NOT NULL,
        email TEXT,
        phone TEXT,
        role TEXT NOT NULL DEFAULT 'front_desk',
        is_active INTEGER NOT NULL DEFAULT 1,
        created_at TEXT NOT NULL,
        updated_at TEXT
    )
    """,
    # 7. Attendance
    """
    CREATE TABLE IF NOT EXISTS attendance (
        id TEXT PRIMARY KEY,
        user_id TEXT NOT NULL,
        branch_id TEXT,
        member_id TEXT NOT NULL,
        member_name TEXT,
        check_in TEXT NOT NULL,
        source TEXT,
        device_id TEXT
    )
    """,
    # 8. Activity log
    """
    CREATE TABLE IF NOT EXISTS activity_log (
        id TEXT PRIMARY KEY,
        user_id TEXT NOT NULL,
        branch_id TEXT,
        activity_type TEXT NOT NULL,
        description TEXT NOT NULL,
        created_at TEXT NOT NULL
    )
    """,
]


def connect(db_file: Optional[Union[str, Path]] = None) -> sqlite3.Connection:
    """
    Opens a connection that returns rows as sqlite3.Row.
    Connections are short-lived; each store call opens its own.
    """
    db_file = db_file or config.DB_FILE
    if not db_file:
        raise RuntimeError("Database path not found in config.")
    conn = sqlite3.connect(str(db_file))
    conn.row_factory = sqlite3.Row
    return conn


def init_db(db_file: Optional[Union[str, Path]] = None) -> None:
    """
    Initializes the SQLite database.
    Creates every table the local backend needs if it does not exist yet.
    """
    db_file = Path(db_file or config.DB_FILE)
    ensure_folder(db_file.parent)

    with connect(db_file) as conn:
        for statement in SCHEMA:
            conn.execute(statement)
        conn.execute("CREATE INDEX IF NOT EXISTS idx_members_user ON members(user_id)")
        conn.execute("CREATE INDEX IF NOT EXISTS idx_attendance_user ON attendance(user_id, check_in)")
    conn.close()
    logger.info("Database ready at %s", db_file)
