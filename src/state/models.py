from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


# ---------------------------------------------------------------------------
# Artifact shape: what the producer writes (upstream snake_case names).
# Field declaration order is the key order of the serialized JSON.
# ---------------------------------------------------------------------------


class OwnerFetch(BaseModel):
    login: Optional[str] = None
    avatar_url: Optional[str] = None


class ReleaseAssetFetch(BaseModel):
    name: Optional[str] = None
    url: Optional[str] = None
    type: Optional[str] = None
    size: Optional[int] = None
    downloads: Optional[int] = None


class ReleaseFetch(BaseModel):
    tag: Optional[str] = None
    name: Optional[str] = None
    published_at: Optional[str] = None
    url: Optional[str] = None
    assets: List[ReleaseAssetFetch] = Field(default_factory=list)

    @classmethod
    def from_github(cls, payload: Dict[str, Any]) -> "ReleaseFetch":
        """Build from a GitHub `releases/latest` response."""
        assets = [
            ReleaseAssetFetch(
                name=a.get("name"),
                url=a.get("browser_download_url"),
                type=a.get("content_type"),
                size=a.get("size"),
                downloads=a.get("download_count"),
            )
            for a in payload.get("assets") or []
            if isinstance(a, dict)
        ]
        return cls(
            tag=payload.get("tag_name"),
            name=payload.get("name"),
            published_at=payload.get("published_at"),
            url=payload.get("html_url"),
            assets=assets,
        )


class ProjectFetch(BaseModel):
    """One repository as stored in the projects artifact."""

    id: Optional[int] = None
    html_url: Optional[str] = None
    name: Optional[str] = None
    full_name: Optional[str] = None
    description: Optional[str] = None
    owner: Optional[OwnerFetch] = None
    homepage: Optional[str] = None
    language: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    pushed_at: Optional[str] = None
    stargazers_count: Optional[int] = None
    forks_count: Optional[int] = None
    topics: List[str] = Field(default_factory=list)
    latest_release: Optional[ReleaseFetch] = None


class ContributorFetch(BaseModel):
    """One contributor as stored in the contributors artifact."""

    id: Optional[int] = None
    login: Optional[str] = None
    avatar_url: Optional[str] = None
    html_url: Optional[str] = None


# ---------------------------------------------------------------------------
# Display shape: what the data store serves to rendering code.
# ---------------------------------------------------------------------------


class Avatar(BaseModel):
    src: Optional[str] = None
    alt: Optional[str] = None


class ReleaseAsset(BaseModel):
    name: Optional[str] = None
    url: Optional[str] = None
    type: Optional[str] = None
    size: Optional[int] = None
    downloads: Optional[int] = None


class Release(BaseModel):
    tag: Optional[str] = None
    name: Optional[str] = None
    published_at: Optional[str] = None
    url: Optional[str] = None
    assets: List[ReleaseAsset] = Field(default_factory=list)


class Project(BaseModel):
    id: Optional[int] = None
    to: Optional[str] = None
    name: Optional[str] = None
    full_name: Optional[str] = None
    description: Optional[str] = None
    owner: Optional[Avatar] = None
    homepage: Optional[str] = None
    language: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    stars: Optional[int] = None
    forks: Optional[int] = None
    topics: List[str] = Field(default_factory=list)
    release: Optional[Release] = None


class Contributor(BaseModel):
    id: Optional[int] = None
    avatar: Optional[Avatar] = None
    username: Optional[str] = None
    to: Optional[str] = None


# ---------------------------------------------------------------------------
# Mappers
# ---------------------------------------------------------------------------


def to_release(src: ReleaseFetch) -> Release:
    return Release(
        tag=src.tag,
        name=src.name,
        published_at=src.published_at,
        url=src.url,
        assets=[
            ReleaseAsset(
                name=a.name,
                url=a.url,
                type=a.type,
                size=a.size,
                downloads=a.downloads,
            )
            for a in src.assets
        ],
    )


def to_project(src: ProjectFetch) -> Project:
    owner = None
    if src.owner is not None:
        owner = Avatar(src=src.owner.avatar_url, alt=src.owner.login)
    release = to_release(src.latest_release) if src.latest_release is not None else None
    return Project(
        id=src.id,
        to=src.html_url,
        name=src.name,
        full_name=src.full_name,
        description=src.description,
        owner=owner,
        homepage=src.homepage,
        language=src.language,
        created_at=src.created_at,
        updated_at=src.updated_at,
        stars=src.stargazers_count,
        forks=src.forks_count,
        topics=list(src.topics),
        release=release,
    )


def to_contributor(src: ContributorFetch) -> Contributor:
    avatar = None
    if src.avatar_url is not None:
        avatar = Avatar(src=src.avatar_url, alt=src.login)
    return Contributor(id=src.id, avatar=avatar, username=src.login, to=src.html_url)


__all__ = [
    "Avatar",
    "Contributor",
    "ContributorFetch",
    "OwnerFetch",
    "Project",
    "ProjectFetch",
    "Release",
    "ReleaseAsset",
    "ReleaseAssetFetch",
    "ReleaseFetch",
    "to_contributor",
    "to_project",
    "to_release",
]
