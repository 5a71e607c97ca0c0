import os
import sqlite3
from typing import Any, Dict, Iterable, List, Sequence


class FactoryDatabase:
    def __init__(self, database_path="user_data/factory_floor.db"):
        """
        Initialize the factory-floor store.

        The tool handlers never hold a connection between calls: every
        operation opens its own connection, runs one statement and closes it.
        There are no multi-statement transactions; concurrent callers rely on
        SQLite's own isolation.
        """
        directory = os.path.dirname(database_path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        self.database_path = database_path
        self._init_db()

    def _get_connection(self):
        """
        Open a connection to the SQLite file.

        check_same_thread=False because handlers run their statements on the
        server-owned thread pool, not on the thread that built this object.
        """
        connection = sqlite3.connect(self.database_path, check_same_thread=False)
        connection.row_factory = sqlite3.Row
        return connection

    def _init_db(self):
        """
        Schema definition.
        'IF NOT EXISTS' keeps this safe to run on every boot.
        """
        connection = self._get_connection()
        cursor = connection.cursor()

        # --- TABLE 1: DAILY REPORTS ---
        # One row per employee per working day.
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS daily_reports (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                report_date TEXT NOT NULL,      -- ISO date, e.g. "2026-10-18"
                employee_id INTEGER NOT NULL,
                work_plan TEXT,
                work_result TEXT,
                issues TEXT,
                next_plan TEXT
            )
        """)

        # --- TABLE 2: INSPECTION LOGS ---
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS inspection_logs (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                equipment_id INTEGER NOT NULL,
                inspect_date TEXT NOT NULL,
                inspect_by INTEGER NOT NULL,    -- employee id of the inspector
                result TEXT,
                notes TEXT,
                next_schedule TEXT
            )
        """)

        # --- TABLE 3: ANOMALY REPORTS ---
        # occurred_at is always written by the database clock, never by the caller.
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS anomaly_reports (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                equipment_id INTEGER NOT NULL,
                occurred_at TEXT NOT NULL,
                reported_by INTEGER NOT NULL,
                title TEXT,
                description TEXT
            )
        """)

        # --- TABLE 4: USER ROLES ---
        # email -> permission, one row per grant.
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS user_roles (
                email TEXT NOT NULL,
                permission TEXT NOT NULL,
                PRIMARY KEY (email, permission)
            )
        """)

        connection.commit()
        connection.close()

    # ---------------------------------------------------------
    # STATEMENT EXECUTION
    # ---------------------------------------------------------

    def fetch_all(self, sql: str, params: Sequence[Any] = ()) -> List[Dict[str, Any]]:
        """Run a SELECT and return its rows as plain dicts (JSON-ready)."""
        connection = self._get_connection()
        try:
            cursor = connection.execute(sql, tuple(params))
            return [dict(row) for row in cursor.fetchall()]
        finally:
            connection.close()

    def execute(self, sql: str, params: Sequence[Any] = ()) -> int:
        """Run a single write statement, commit it, and return lastrowid."""
        connection = self._get_connection()
        try:
            cursor = connection.execute(sql, tuple(params))
            connection.commit()
            return cursor.lastrowid
        finally:
            connection.close()

    # ---------------------------------------------------------
    # ROLE OPERATIONS
    # ---------------------------------------------------------

    def get_permissions(self, email: str) -> List[str]:
        """Permissions granted to *email* (lower-cased match). Empty when unknown."""
        connection = self._get_connection()
        try:
            cursor = connection.execute(
                "SELECT permission FROM user_roles WHERE email = ? ORDER BY permission",
                (email.strip().lower(),),
            )
            return [row["permission"] for row in cursor.fetchall()]
        finally:
            connection.close()

    def set_permissions(self, email: str, permissions: Iterable[str]):
        """
        Replace the full permission list of *email*.

        Both the email and every permission are stored trimmed and lower-cased
        so lookups never depend on how an operator typed them.
        """
        key = email.strip().lower()
        cleaned = sorted({p.strip().lower() for p in permissions if p.strip()})

        connection = self._get_connection()
        try:
            connection.execute("DELETE FROM user_roles WHERE email = ?", (key,))
            connection.executemany(
                "INSERT INTO user_roles (email, permission) VALUES (?, ?)",
                [(key, p) for p in cleaned],
            )
            connection.commit()
        finally:
            connection.close()

    def seed_roles(self, roles: Dict[str, Iterable[str]]):
        """Write an email -> permissions mapping (used at boot from FACTORY_ROLES)."""
        for email, permissions in roles.items():
            self.set_permissions(email, permissions)
            print(f"[DB] Seeded roles for {email.strip().lower()}")
