"""
Database connection management and schema.

Provides PostgreSQL connections and serializable transactions for the
ordering and communication repositories.
"""

from contextlib import contextmanager
from typing import Generator

import psycopg
from psycopg import errors as pg_errors
from psycopg.rows import dict_row

from mte_erp.config import settings
from mte_erp.core.errors import Conflict, StorageUnavailable
from mte_erp.core.logging import get_logger

log = get_logger(__name__)


def _ordered_table(table: str, container_column: str, container_table: str) -> str:
    """DDL for a table whose live rows hold a dense 1..N order per container."""
    return f"""
        CREATE TABLE IF NOT EXISTS {table} (
            id SERIAL PRIMARY KEY,
            {container_column} INTEGER NOT NULL REFERENCES {container_table}(id),
            sort_order INTEGER NOT NULL,
            payload JSONB NOT NULL DEFAULT '{{}}'::jsonb,
            created_at TIMESTAMPTZ DEFAULT NOW(),
            created_by INTEGER,
            updated_at TIMESTAMPTZ DEFAULT NOW(),
            updated_by INTEGER,
            deleted_at TIMESTAMPTZ,
            CONSTRAINT {table}_dense_order EXCLUDE USING btree (
                {container_column} WITH =, sort_order WITH =
            ) WHERE (deleted_at IS NULL) DEFERRABLE INITIALLY DEFERRED
        );

        CREATE INDEX IF NOT EXISTS idx_{table}_container
            ON {table}({container_column}, sort_order);
    """


SCHEMA_SQL = f"""
        -- users: internal staff (assignees, representatives, actors)
        CREATE TABLE IF NOT EXISTS users (
            id SERIAL PRIMARY KEY,
            name VARCHAR(255) NOT NULL,
            email VARCHAR(255),
            mobile VARCHAR(50),
            whatsapp VARCHAR(50)
        );

        CREATE TABLE IF NOT EXISTS teams (
            id SERIAL PRIMARY KEY,
            name VARCHAR(255) NOT NULL,
            created_at TIMESTAMPTZ DEFAULT NOW(),
            created_by INTEGER,
            updated_at TIMESTAMPTZ DEFAULT NOW(),
            updated_by INTEGER,
            deleted_at TIMESTAMPTZ
        );

        CREATE INDEX IF NOT EXISTS idx_teams_name ON teams(name);

        {_ordered_table("task_lists", "team_id", "teams")}
        {_ordered_table("tasks", "task_list_id", "task_lists")}

        CREATE TABLE IF NOT EXISTS task_check_lists (
            id SERIAL PRIMARY KEY,
            task_id INTEGER NOT NULL REFERENCES tasks(id),
            name VARCHAR(255) NOT NULL,
            created_at TIMESTAMPTZ DEFAULT NOW(),
            created_by INTEGER,
            updated_at TIMESTAMPTZ DEFAULT NOW(),
            updated_by INTEGER,
            deleted_at TIMESTAMPTZ
        );

        CREATE INDEX IF NOT EXISTS idx_task_check_lists_task ON task_check_lists(task_id);

        {_ordered_table("checklist_items", "check_list_id", "task_check_lists")}

        -- task_activities: audit trail of task changes
        CREATE TABLE IF NOT EXISTS task_activities (
            id SERIAL PRIMARY KEY,
            task_id INTEGER NOT NULL REFERENCES tasks(id),
            action VARCHAR(50) NOT NULL,
            description TEXT DEFAULT '',
            details JSONB DEFAULT '{{}}'::jsonb,
            created_by INTEGER,
            created_at TIMESTAMPTZ DEFAULT NOW()
        );

        CREATE INDEX IF NOT EXISTS idx_task_activities_task
            ON task_activities(task_id, created_at DESC);

        -- parties
        CREATE TABLE IF NOT EXISTS suppliers (
            id SERIAL PRIMARY KEY,
            name VARCHAR(255) NOT NULL,
            email VARCHAR(255),
            email2 VARCHAR(255),
            email3 VARCHAR(255),
            whatsapp VARCHAR(50),
            mobile VARCHAR(50),
            alternate_mobile VARCHAR(50),
            accounts_contact_mobile VARCHAR(50),
            logistic_contact_mobile VARCHAR(50),
            purchase_contact_mobile VARCHAR(50),
            deleted_at TIMESTAMPTZ
        );

        CREATE TABLE IF NOT EXISTS customers (
            id SERIAL PRIMARY KEY,
            name VARCHAR(255) NOT NULL,
            contact_email VARCHAR(255),
            contact_email2 VARCHAR(255),
            contact_email3 VARCHAR(255),
            contact_mobile VARCHAR(50),
            deleted_at TIMESTAMPTZ
        );

        CREATE TABLE IF NOT EXISTS sites (
            id SERIAL PRIMARY KEY,
            customer_id INTEGER NOT NULL REFERENCES customers(id),
            name VARCHAR(255) NOT NULL
        );

        -- inquiries: line items referenced by communications
        CREATE TABLE IF NOT EXISTS inquiries (
            id SERIAL PRIMARY KEY,
            supplier_id INTEGER REFERENCES suppliers(id),
            customer_id INTEGER REFERENCES customers(id),
            site_id INTEGER REFERENCES sites(id),
            pr_number_and_name VARCHAR(255),
            sales_description TEXT,
            sales_unit VARCHAR(50),
            quantity NUMERIC,
            size TEXT,
            supplier_price NUMERIC,
            customer_price NUMERIC,
            representative_id INTEGER REFERENCES users(id),
            supplier_remarks TEXT,
            customer_remarks TEXT,
            image_filename VARCHAR(255),
            is_open BOOLEAN DEFAULT TRUE,
            sent_to_supplier_at TIMESTAMPTZ,
            offered_to_customer_at TIMESTAMPTZ,
            created_at TIMESTAMPTZ DEFAULT NOW(),
            updated_by INTEGER,
            deleted_at TIMESTAMPTZ
        );

        CREATE INDEX IF NOT EXISTS idx_inquiries_supplier ON inquiries(supplier_id);
        CREATE INDEX IF NOT EXISTS idx_inquiries_customer ON inquiries(customer_id);

        -- communication_records: one row per completed Send
        CREATE TABLE IF NOT EXISTS communication_records (
            id SERIAL PRIMARY KEY,
            kind VARCHAR(20) NOT NULL,
            recipient_id INTEGER NOT NULL,
            site_id INTEGER,
            pr_number_and_name VARCHAR(255),
            email_sent BOOLEAN DEFAULT FALSE,
            whatsapp_sent BOOLEAN DEFAULT FALSE,
            last_resend_at TIMESTAMPTZ,
            created_at TIMESTAMPTZ DEFAULT NOW(),
            created_by INTEGER,
            updated_at TIMESTAMPTZ DEFAULT NOW(),
            updated_by INTEGER
        );

        CREATE INDEX IF NOT EXISTS idx_communication_records_kind
            ON communication_records(kind, recipient_id, created_at DESC);

        CREATE TABLE IF NOT EXISTS communication_record_items (
            record_id INTEGER NOT NULL REFERENCES communication_records(id),
            inquiry_id INTEGER NOT NULL REFERENCES inquiries(id),
            position INTEGER NOT NULL,
            PRIMARY KEY (record_id, inquiry_id)
        );

        CREATE TABLE IF NOT EXISTS communication_resend_history (
            id SERIAL PRIMARY KEY,
            record_id INTEGER NOT NULL REFERENCES communication_records(id),
            email_sent BOOLEAN NOT NULL,
            whatsapp_sent BOOLEAN NOT NULL,
            created_at TIMESTAMPTZ DEFAULT NOW(),
            created_by INTEGER
        );

        CREATE INDEX IF NOT EXISTS idx_resend_history_record
            ON communication_resend_history(record_id, created_at DESC);

        -- attachments: uploaded task files and rendered documents in the blob store
        CREATE TABLE IF NOT EXISTS attachments (
            id SERIAL PRIMARY KEY,
            filename VARCHAR(255) NOT NULL,
            object_name VARCHAR(512) NOT NULL,
            url TEXT NOT NULL,
            content_type VARCHAR(255) DEFAULT 'application/octet-stream',
            size BIGINT DEFAULT 0,
            task_id INTEGER REFERENCES tasks(id),
            record_id INTEGER REFERENCES communication_records(id),
            created_at TIMESTAMPTZ DEFAULT NOW(),
            created_by INTEGER
        );

        CREATE INDEX IF NOT EXISTS idx_attachments_task ON attachments(task_id);
"""


class Database:
    """PostgreSQL connection factory and transaction boundary."""

    def __init__(self, connection_string: str | None = None):
        """
        Initialize database connection settings.

        Args:
            connection_string: PostgreSQL connection URL. Uses settings if not provided.
        """
        self.connection_string = connection_string or settings.database_url

    @contextmanager
    def get_connection(self) -> Generator[psycopg.Connection, None, None]:
        """Get a database connection as a context manager."""
        try:
            conn = psycopg.connect(self.connection_string, row_factory=dict_row)
        except psycopg.OperationalError as e:
            log.error("database_unavailable", error=str(e))
            raise StorageUnavailable(f"Database unavailable: {e}") from e
        try:
            yield conn
        finally:
            conn.close()

    @contextmanager
    def transaction(self, serializable: bool = False) -> Generator[psycopg.Connection, None, None]:
        """
        Run the enclosed statements as one atomic transaction.

        Args:
            serializable: Use SERIALIZABLE isolation. Concurrent writers that
                would observe each other's stale reads fail with Conflict.

        Raises:
            Conflict: Serialization failure or deadlock; nothing was applied.
            StorageUnavailable: The database could not be reached.
        """
        try:
            with self.get_connection() as conn:
                if serializable:
                    conn.isolation_level = psycopg.IsolationLevel.SERIALIZABLE
                with conn.transaction():
                    yield conn
        except (pg_errors.SerializationFailure, pg_errors.DeadlockDetected, pg_errors.ExclusionViolation) as e:
            log.warning("transaction_conflict", error=str(e))
            raise Conflict(f"Concurrent modification: {e}") from e
        except psycopg.OperationalError as e:
            log.error("database_unavailable", error=str(e))
            raise StorageUnavailable(f"Database unavailable: {e}") from e

    def init_schema(self) -> None:
        """Initialize database schema (create tables if not exist)."""
        with self.get_connection() as conn:
            conn.execute(SCHEMA_SQL)
            conn.commit()
            log.info("database_schema_initialized")
