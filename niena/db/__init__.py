"""
Database module - PostgreSQL and MongoDB connections.
"""
from niena.db.postgres import get_db_session, check_postgres_connection, apply_schema
from niena.db.mongodb import get_mongo_db, get_collection, check_mongo_connection, init_mongo_indexes

__all__ = [
    "get_db_session",
    "check_postgres_connection",
    "apply_schema",
    "get_mongo_db",
    "get_collection",
    "check_mongo_connection",
    "init_mongo_indexes"
]
