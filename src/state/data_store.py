from __future__ import annotations

import json
import logging
import threading
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Iterable, List, Optional, TypeVar, Union

import httpx
from pydantic import BaseModel, ValidationError

from common import envelope
from common.config import (
    ENV_ASSET_ENCRYPTED,
    ENV_ASSET_KEY,
    ENV_SITE_URL,
    ConfigurationError,
    getenv,
    getenv_bool,
    require,
)
from common.envelope import EnvelopeError
from common.nulls import replace_nulls

from .models import Contributor, ContributorFetch, Project, ProjectFetch, to_contributor, to_project


DATA_PATH = "assets/data"
PROJECTS_ARTIFACT = "projects"
CONTRIBUTORS_ARTIFACT = "contributors"

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=BaseModel)


class FetchError(RuntimeError):
    """Artifact request returned a non-success HTTP status."""


class SortBy(str, Enum):
    NAME = "name"
    UPDATED = "updated"
    STARS = "stars"
    FORKS = "forks"


def artifact_url(base_url: str, artifact: str, *, encrypted: bool) -> str:
    """`<base>/assets/data/<artifact>.dat` (encrypted) or `.json` (plain)."""
    ext = "dat" if encrypted else "json"
    return f"{base_url.rstrip('/')}/{DATA_PATH}/{artifact}.{ext}"


def _parse_timestamp(value: Optional[str]) -> datetime:
    if not value:
        return _EPOCH
    try:
        ts = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return _EPOCH
    return ts if ts.tzinfo else ts.replace(tzinfo=timezone.utc)


def sort_projects(items: Iterable[Project], sort_by: Union[SortBy, str]) -> List[Project]:
    """
    Stable sort of projects by one of the SortBy keys.

    - name: lexicographic, ascending
    - updated / stars / forks: descending; missing values count as epoch / 0
    - any other key: input order is kept
    """
    out = list(items)
    key = sort_by.value if isinstance(sort_by, SortBy) else str(sort_by)
    if key == SortBy.NAME.value:
        out.sort(key=lambda p: p.name or "")
    elif key == SortBy.UPDATED.value:
        out.sort(key=lambda p: _parse_timestamp(p.updated_at), reverse=True)
    elif key == SortBy.STARS.value:
        out.sort(key=lambda p: p.stars or 0, reverse=True)
    elif key == SortBy.FORKS.value:
        out.sort(key=lambda p: p.forks or 0, reverse=True)
    return out


class DataStore:
    """
    Session-scoped holder of the decoded site data.

    The caller owns the instance and passes it to whatever renders the data.
    Each collection starts empty and is replaced only by a successful fetch
    of that collection; a failed fetch returns [] to its caller and keeps
    whatever a previous successful fetch stored. Fetches of the same
    collection are serialized by a per-collection lock.

    Usage
    - `fetch_projects()` / `fetch_contributors()` GET the artifact and decode it.
    - `get_projects(...)`, `get_contributors()`, `get_project_release_by_name()`
      are read-only queries over the cached collections.
    """

    def __init__(
        self,
        base_url: str,
        *,
        encrypted: bool = True,
        asset_key: Optional[str] = None,
        timeout: float = 15.0,
        client: Optional[httpx.Client] = None,
    ) -> None:
        if not base_url:
            raise ConfigurationError("Missing required configuration: base_url")
        self.base_url = base_url.rstrip("/")
        self.encrypted = encrypted
        self._asset_key = asset_key
        self._owns_client = client is None
        # Site may redirect (http -> https, moved CDN paths)
        self._client = client or httpx.Client(timeout=timeout, follow_redirects=True)
        self._projects: List[Project] = []
        self._contributors: List[Contributor] = []
        self._projects_lock = threading.Lock()
        self._contributors_lock = threading.Lock()

    @classmethod
    def from_env(cls, *, client: Optional[httpx.Client] = None) -> "DataStore":
        base_url = require(getenv(ENV_SITE_URL), ENV_SITE_URL)
        return cls(
            base_url,
            encrypted=getenv_bool(ENV_ASSET_ENCRYPTED, default=True),
            asset_key=getenv(ENV_ASSET_KEY),
            client=client,
        )

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def __enter__(self) -> "DataStore":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    # -------- Fetch operations --------
    def fetch_projects(self) -> List[Project]:
        with self._projects_lock:
            items = self._fetch(PROJECTS_ARTIFACT, ProjectFetch, to_project)
            if items is None:
                return []
            self._projects = items
            return list(items)

    def fetch_contributors(self) -> List[Contributor]:
        with self._contributors_lock:
            items = self._fetch(CONTRIBUTORS_ARTIFACT, ContributorFetch, to_contributor)
            if items is None:
                return []
            self._contributors = items
            return list(items)

    # -------- Queries --------
    @property
    def projects(self) -> List[Project]:
        return list(self._projects)

    @property
    def contributors(self) -> List[Contributor]:
        return list(self._contributors)

    def get_projects(
        self,
        *,
        items_to_show: int = 0,
        featured: Iterable[str] = (),
        sort_by: Union[SortBy, str] = SortBy.NAME,
    ) -> List[Project]:
        """
        Filter, sort and limit the cached projects without mutating them.

        - featured: when non-empty, keep only projects whose name is listed.
        - items_to_show: truncate when > 0; 0 or negative means no limit.
        """
        wanted = set(featured)
        items = [p for p in self._projects if p.name in wanted] if wanted else list(self._projects)
        items = sort_projects(items, sort_by)
        if items_to_show > 0:
            items = items[:items_to_show]
        return items

    def get_contributors(self) -> List[Contributor]:
        return list(self._contributors)

    def get_project_release_by_name(self, name: str) -> Optional[Project]:
        for p in self._projects:
            if p.name == name:
                return p
        return None

    # -------- Internal --------
    def _key(self) -> str:
        return require(self._asset_key, ENV_ASSET_KEY)

    def _fetch(
        self,
        artifact: str,
        model: type[T],
        mapper: Callable[[T], Any],
    ) -> Optional[List[Any]]:
        # Missing key is a configuration problem and is raised before any I/O
        key = self._key() if self.encrypted else None
        url = artifact_url(self.base_url, artifact, encrypted=self.encrypted)
        try:
            resp = self._client.get(url)
            if resp.status_code < 200 or resp.status_code >= 300:
                raise FetchError(f"Failed to fetch {artifact}: HTTP {resp.status_code}")
            body = resp.content
            if key is not None:
                body = envelope.decode(key, body)
            raw = json.loads(body.decode("utf-8"))
            if not isinstance(raw, list):
                raise ValueError(f"Expected a JSON array in {artifact}")
            return [mapper(model.model_validate(replace_nulls(item))) for item in raw]
        except (FetchError, EnvelopeError, httpx.HTTPError, ValidationError, ValueError) as ex:
            logger.warning("Error fetching %s from %s: %s", artifact, url, ex)
            return None


__all__ = [
    "DataStore",
    "FetchError",
    "SortBy",
    "artifact_url",
    "sort_projects",
]
