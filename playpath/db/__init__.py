# Persistence: ORM models, engine helpers and the SQL-backed ProgressStore
from playpath.db.database import create_db_engine, init_db, session_scope
from playpath.db.sql_store import SqlProgressStore
from playpath.db.store import ProgressStore

__all__ = ["ProgressStore", "SqlProgressStore", "create_db_engine", "init_db", "session_scope"]
