from __future__ import annotations

import logging
import time
from typing import Any, Dict, List, Optional

import httpx


DEFAULT_API_BASE = "https://api.github.com"
API_VERSION = "2022-11-28"
PER_PAGE = 100

logger = logging.getLogger(__name__)


class GitHubError(RuntimeError):
    """Base error for GitHub client."""


class GitHubApiError(GitHubError):
    """API returned an unexpected status or payload."""


class GitHubRateLimitError(GitHubError):
    """The API rate limit for the token is exhausted."""


class GitHubClient:
    """
    Minimal read-only GitHub REST client for organisation reports.

    Notes
    - Sends the bearer token and pins `X-GitHub-Api-Version`.
    - List endpoints are paginated with `per_page=100&page=N`, following the
      `Link: rel="next"` header until no further page is announced.
    - Transport errors and 5xx are retried with exponential backoff. There is
      no local throttling; requests are issued sequentially by callers.
    """

    def __init__(
        self,
        token: str,
        *,
        api_base: str = DEFAULT_API_BASE,
        timeout: float = 15.0,
        max_attempts: int = 4,
        backoff: float = 1.0,
        client: Optional[httpx.Client] = None,
    ) -> None:
        if not token:
            raise ValueError("token is required")
        self._api_base = api_base.rstrip("/")
        self._timeout = timeout
        self._max_attempts = max_attempts
        self._backoff = backoff
        self._headers = {
            "Accept": "application/vnd.github+json",
            "Authorization": f"Bearer {token}",
            "X-GitHub-Api-Version": API_VERSION,
        }
        self._owns_client = client is None
        self._client = client or httpx.Client(timeout=self._timeout)

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def __enter__(self) -> "GitHubClient":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    # --------------- Public API ---------------
    def list_org_repos(self, org: str) -> List[Dict[str, Any]]:
        """All repositories of `org`, in the order GitHub returns them."""
        return self._paginate(f"/orgs/{org}/repos")

    def list_contributors(self, owner: str, repo: str) -> List[Dict[str, Any]]:
        return self._paginate(f"/repos/{owner}/{repo}/contributors")

    def list_topics(self, owner: str, repo: str) -> List[str]:
        resp = self._get(f"/repos/{owner}/{repo}/topics")
        data = self._json(resp)
        names = data.get("names") if isinstance(data, dict) else None
        if not isinstance(names, list):
            raise GitHubApiError(f"Malformed topics payload for {owner}/{repo}")
        return [str(n) for n in names]

    def latest_release(self, owner: str, repo: str) -> Optional[Dict[str, Any]]:
        """
        Latest published release of a repository.

        Returns None when the repository has no release (HTTP 404).
        """
        resp = self._get(f"/repos/{owner}/{repo}/releases/latest", allow_404=True)
        if resp.status_code == 404:
            return None
        data = self._json(resp)
        if not isinstance(data, dict):
            raise GitHubApiError(f"Malformed release payload for {owner}/{repo}")
        return data

    # --------------- Internal ---------------
    def _paginate(self, path: str) -> List[Dict[str, Any]]:
        results: List[Dict[str, Any]] = []
        page = 1
        while True:
            resp = self._get(path, params={"per_page": PER_PAGE, "page": page})
            # Empty repositories answer /contributors with 204
            if resp.status_code == 204:
                break
            data = self._json(resp)
            if not isinstance(data, list):
                raise GitHubApiError(f"Expected a list from {path}, got {type(data).__name__}")
            results.extend(data)
            if "next" not in resp.links:
                break
            page += 1
        logger.debug("Fetched %d items from %s over %d page(s)", len(results), path, page)
        return results

    def _get(
        self,
        path: str,
        *,
        params: Optional[Dict[str, Any]] = None,
        allow_404: bool = False,
    ) -> httpx.Response:
        url = f"{self._api_base}{path}"

        attempt = 0
        backoff = self._backoff
        last_exc: Optional[Exception] = None
        while attempt < self._max_attempts:
            try:
                resp = self._client.get(url, params=params, headers=self._headers)
            except (httpx.TimeoutException, httpx.TransportError) as exc:
                last_exc = exc
            else:
                if resp.status_code in (200, 204):
                    return resp
                if resp.status_code == 404 and allow_404:
                    return resp
                if self._is_rate_limited(resp):
                    raise GitHubRateLimitError(
                        f"GitHub rate limit exhausted (HTTP {resp.status_code}) for {path}"
                    )
                if resp.status_code in (500, 502, 503, 504):
                    last_exc = GitHubApiError(f"HTTP {resp.status_code} from GitHub for {path}")
                else:
                    raise GitHubApiError(
                        f"HTTP {resp.status_code} from GitHub for {path}: {resp.text[:200]}"
                    )

            # Retry path
            attempt += 1
            if attempt < self._max_attempts:
                logger.debug("Retrying %s after %s (attempt %d)", path, last_exc, attempt)
                time.sleep(backoff)
                backoff = min(backoff * 2, 8.0)

        if last_exc is not None:
            raise GitHubError(f"Failed request to {path} after retries") from last_exc
        raise GitHubError(f"Failed request to {path} after retries (unknown error)")

    @staticmethod
    def _is_rate_limited(resp: httpx.Response) -> bool:
        if resp.status_code == 429:
            return True
        return resp.status_code == 403 and resp.headers.get("x-ratelimit-remaining") == "0"

    @staticmethod
    def _json(resp: httpx.Response) -> Any:
        try:
            return resp.json()
        except ValueError as exc:
            raise GitHubApiError("Failed to parse JSON from GitHub API") from exc


__all__ = [
    "GitHubApiError",
    "GitHubClient",
    "GitHubError",
    "GitHubRateLimitError",
]
