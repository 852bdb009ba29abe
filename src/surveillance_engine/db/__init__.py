from .db import create_database, create_schema
from .db_operations import DatabaseManager

__all__ = ['create_database', 'create_schema', 'DatabaseManager']
