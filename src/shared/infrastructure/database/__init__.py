from .sqlite_connection import BaseModel, database

__all__ = ['BaseModel', 'database']
