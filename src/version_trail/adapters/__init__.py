"""Adapters: storage and host-persistence implementations.

Contains:
- memory_repository.py  InMemoryRepository, a host layer calling the tracker hooks
- sql_version_log.py    SqlVersionLog, the SQLAlchemy-backed version log
"""

from version_trail.adapters.memory_repository import InMemoryRepository
from version_trail.adapters.sql_version_log import SqlVersionLog, VersionRecord

__all__ = ["InMemoryRepository", "SqlVersionLog", "VersionRecord"]
