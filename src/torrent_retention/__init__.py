#!/usr/bin/env python3
"""Torrent retention - delete torrents that have seeded long enough."""

__version__ = "0.1.0"
__license__ = "MIT"

from .config import Connection, Instance
from .policy import Condition, DeletePolicy, Precondition

__all__ = ["Condition", "Connection", "DeletePolicy", "Instance", "Precondition", "__version__"]
