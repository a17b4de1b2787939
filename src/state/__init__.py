"""
Site data models and the session-scoped data store.

The producer writes artifacts in the `*Fetch` shape; the data store reads
them back, decrypting when configured, and serves the display shape.
"""

from .data_store import DataStore, FetchError, SortBy
from .models import Contributor, Project

__all__ = ["Contributor", "DataStore", "FetchError", "Project", "SortBy"]
