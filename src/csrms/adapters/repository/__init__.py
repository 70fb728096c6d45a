"""Repository adapters - Database implementations."""

from .postgres import PostgresStore, PostgresTransaction, run_migrations

__all__ = ["PostgresStore", "PostgresTransaction", "run_migrations"]
