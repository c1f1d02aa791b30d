"""SQLite persistence: SQLModel tables, engine policy and Alembic runner."""
