"""
Persistence package for ClipShelf.

Provides the embedded SQLite store for clip items and settings.
"""

from clipshelf.database.sqlite_manager import SQLiteManager

__all__ = [
    'SQLiteManager',
]
