from __future__ import annotations

import argparse
import json
import logging
import os
import sys
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from botocore.exceptions import BotoCoreError, ClientError
from pydantic import BaseModel, ValidationError

from common import envelope
from common.config import (
    ENV_ASSET_KEY,
    ENV_GITHUB_TOKEN,
    ConfigurationError,
    getenv,
    getenv_bool,
    require,
    resolve_secrets,
)
from common.envelope import EnvelopeError
from common.github import GitHubClient, GitHubError
from state.models import ContributorFetch, OwnerFetch, ProjectFetch, ReleaseFetch

from .publisher import ENV_BUCKET, ENV_PREFIX, DEFAULT_PREFIX, ArtifactPublisher


ENV_OWNER = "REPORT_OWNER"
ENV_OUTPUT_DIR = "REPORT_OUTPUT_DIR"
ENV_ENCRYPT = "REPORT_ENCRYPT"

DEFAULT_OWNER = "projectm-visualizer"
DEFAULT_OUTPUT_DIR = "public/assets/data"

PROJECTS_ARTIFACT = "projects"
CONTRIBUTORS_ARTIFACT = "contributors"

logger = logging.getLogger(__name__)


@dataclass
class ReportSettings:
    owner: str = DEFAULT_OWNER
    output_dir: str = DEFAULT_OUTPUT_DIR
    token: Optional[str] = None
    encrypt: bool = False
    encryption_key: Optional[str] = None
    publish_bucket: Optional[str] = None
    publish_prefix: str = DEFAULT_PREFIX

    @classmethod
    def from_env(cls) -> "ReportSettings":
        secrets = resolve_secrets({"github_token": ENV_GITHUB_TOKEN, "asset_key": ENV_ASSET_KEY})
        return cls(
            owner=getenv(ENV_OWNER, DEFAULT_OWNER) or DEFAULT_OWNER,
            output_dir=getenv(ENV_OUTPUT_DIR, DEFAULT_OUTPUT_DIR) or DEFAULT_OUTPUT_DIR,
            token=secrets.get("github_token"),
            encrypt=getenv_bool(ENV_ENCRYPT),
            encryption_key=secrets.get("asset_key"),
            publish_bucket=getenv(ENV_BUCKET),
            publish_prefix=getenv(ENV_PREFIX, DEFAULT_PREFIX) or DEFAULT_PREFIX,
        )


# ---------- Collection ----------


def project_from_repo(
    repo: Dict[str, Any],
    *,
    topics: Optional[List[str]] = None,
    release: Optional[ReleaseFetch] = None,
) -> ProjectFetch:
    owner_raw = repo.get("owner")
    owner = None
    if isinstance(owner_raw, dict):
        owner = OwnerFetch(login=owner_raw.get("login"), avatar_url=owner_raw.get("avatar_url"))
    return ProjectFetch(
        id=repo.get("id"),
        html_url=repo.get("html_url"),
        name=repo.get("name"),
        full_name=repo.get("full_name"),
        description=repo.get("description"),
        owner=owner,
        homepage=repo.get("homepage"),
        language=repo.get("language"),
        created_at=repo.get("created_at"),
        updated_at=repo.get("updated_at"),
        pushed_at=repo.get("pushed_at"),
        stargazers_count=repo.get("stargazers_count"),
        forks_count=repo.get("forks_count"),
        topics=topics or [],
        latest_release=release,
    )


def collect_projects(gh: GitHubClient, owner: str, repos: Iterable[Dict[str, Any]]) -> List[ProjectFetch]:
    """Enrich each repository with topics and latest release, best-effort."""
    projects: List[ProjectFetch] = []
    for repo in repos:
        name = str(repo.get("name") or "")
        topics: Optional[List[str]] = None
        release: Optional[ReleaseFetch] = None
        try:
            topics = gh.list_topics(owner, name)
        except GitHubError as ex:
            logger.warning("Failed to fetch topics for %s: %s", name, ex)
        try:
            payload = gh.latest_release(owner, name)
            if payload is not None:
                release = ReleaseFetch.from_github(payload)
        except (GitHubError, ValidationError) as ex:
            logger.warning("Failed to fetch latest release for %s: %s", name, ex)
        projects.append(project_from_repo(repo, topics=topics, release=release))
    return projects


def collect_contributors(
    gh: GitHubClient, owner: str, repo_names: Iterable[str]
) -> Tuple[List[ContributorFetch], List[str]]:
    """
    Merge contributors of all repositories, deduplicated by id.

    The first record seen for an id is kept as-is. Repositories whose
    contributor list cannot be fetched or parsed are skipped as a whole and
    returned separately.
    """
    merged: Dict[Any, ContributorFetch] = {}
    skipped: List[str] = []
    for repo in repo_names:
        logger.info("Fetching contributors for: %s", repo)
        try:
            users = [
                ContributorFetch(
                    id=user.get("id"),
                    login=user.get("login"),
                    avatar_url=user.get("avatar_url"),
                    html_url=user.get("html_url"),
                )
                for user in gh.list_contributors(owner, repo)
            ]
        except (GitHubError, ValidationError) as ex:
            logger.warning("Skipping %s: %s", repo, ex)
            skipped.append(repo)
            continue
        for c in users:
            ident = c.id if c.id is not None else c.login
            if ident not in merged:
                merged[ident] = c
    return list(merged.values()), skipped


# ---------- Output ----------


def serialize(items: Sequence[BaseModel]) -> str:
    # Keys follow model field order, not alphabetical
    return json.dumps([m.model_dump(mode="json") for m in items], indent=2, ensure_ascii=False)


def _replace_file(path: Path, data: bytes) -> None:
    # Temp file in the same directory so os.replace stays on one filesystem
    fd, tmp = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(data)
        os.replace(tmp, path)
    except BaseException:
        Path(tmp).unlink(missing_ok=True)
        raise


def write_artifact(output_dir: Path | str, artifact: str, text: str, key: Optional[bytes]) -> Path:
    """
    Write `<artifact>.dat` (encrypted) when a key is given, else `<artifact>.json`.

    The file is replaced atomically; readers never see a partial artifact.
    """
    out = Path(output_dir)
    out.mkdir(parents=True, exist_ok=True)
    data = text.encode("utf-8")
    if key is not None:
        path = out / f"{artifact}.dat"
        data = envelope.encode(key, data)
    else:
        path = out / f"{artifact}.json"
    _replace_file(path, data)
    return path


# ---------- Run ----------


def run_once(settings: ReportSettings) -> Dict[str, Any]:
    # Resolve credentials before any network call
    token = require(settings.token, ENV_GITHUB_TOKEN)
    key: Optional[bytes] = None
    if settings.encrypt:
        key = envelope.decode_key(require(settings.encryption_key, ENV_ASSET_KEY))

    publisher = None
    if settings.publish_bucket:
        publisher = ArtifactPublisher(bucket=settings.publish_bucket, prefix=settings.publish_prefix)

    owner = settings.owner
    with GitHubClient(token) as gh:
        logger.info("Fetching repositories for org: %s", owner)
        repos = gh.list_org_repos(owner)

        logger.info("Enriching %d repositories with topics and releases", len(repos))
        projects = collect_projects(gh, owner, repos)

        logger.info("Collecting contributors from all repos")
        contributors, skipped = collect_contributors(gh, owner, [p.name for p in projects if p.name])

    files: List[str] = []
    projects_file = write_artifact(settings.output_dir, PROJECTS_ARTIFACT, serialize(projects), key)
    logger.info("Saved %d repositories -> %s", len(projects), projects_file)
    contributors_file = write_artifact(
        settings.output_dir, CONTRIBUTORS_ARTIFACT, serialize(contributors), key
    )
    logger.info("Saved %d unique contributors -> %s", len(contributors), contributors_file)

    for path in (projects_file, contributors_file):
        files.append(str(path))
        if publisher is not None:
            publisher.publish(path)

    return {
        "ok": True,
        "projects": len(projects),
        "contributors": len(contributors),
        "skipped": skipped,
        "files": files,
    }


def lambda_handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    return run_once(ReportSettings.from_env())


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="generate-reports",
        description="Generate GitHub project and contributor reports.",
    )
    parser.add_argument("-e", "--encrypt", action="store_true", help="encrypt data before saving")
    parser.add_argument("-k", "--encryption-key", help=f"base64 AES-256 key (default: ${ENV_ASSET_KEY})")
    parser.add_argument("-o", "--output", help=f"output directory (default: {DEFAULT_OUTPUT_DIR})")
    parser.add_argument("-n", "--owner", help=f"GitHub organisation (default: {DEFAULT_OWNER})")
    parser.add_argument("-t", "--token", help=f"GitHub token (default: ${ENV_GITHUB_TOKEN})")
    parser.add_argument("--publish-bucket", help=f"S3 bucket to upload artifacts to (default: ${ENV_BUCKET})")
    parser.add_argument("-v", "--verbose", action="store_true", help="enable debug logging")
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        settings = ReportSettings.from_env()
        if args.encrypt:
            settings.encrypt = True
        if args.encryption_key:
            settings.encryption_key = args.encryption_key
        if args.output:
            settings.output_dir = args.output
        if args.owner:
            settings.owner = args.owner
        if args.token:
            settings.token = args.token
        if args.publish_bucket:
            settings.publish_bucket = args.publish_bucket

        summary = run_once(settings)
    except (ConfigurationError, EnvelopeError, GitHubError, ValidationError) as ex:
        logger.error("Report generation failed: %s", ex)
        return 1
    except (OSError, BotoCoreError, ClientError) as ex:
        logger.exception("Failed to write or publish artifacts: %s", ex)
        return 1

    if summary["skipped"]:
        logger.warning("Contributors skipped for: %s", ", ".join(summary["skipped"]))
    logger.info("Report generation completed successfully.")
    return 0


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
