"""Version history: the ordered log, temporal queries and reification."""

from __future__ import annotations

from version_trail.history.queries import TemporalQueryEngine, parse_timestamp
from version_trail.history.reifier import Reifier
from version_trail.history.version_log import VersionLog

__all__ = ["Reifier", "TemporalQueryEngine", "VersionLog", "parse_timestamp"]
