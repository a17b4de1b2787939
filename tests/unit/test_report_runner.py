from __future__ import annotations

import base64
import json
from pathlib import Path
from typing import Any, Dict, List, Optional

import pytest

from common.config import ConfigurationError
from common.envelope import decode
from common.github import GitHubApiError, GitHubError


KEY = bytes(range(32))
KEY_B64 = base64.b64encode(KEY).decode("ascii")


class _FakeGitHub:
    def __init__(self, *_args, **_kwargs) -> None:
        self.repos: List[Dict[str, Any]] = []
        self.contributors: Dict[str, List[Dict[str, Any]]] = {}
        self.topics: Dict[str, List[str]] = {}
        self.releases: Dict[str, Optional[Dict[str, Any]]] = {}
        self.fail_repos = False
        self.fail_contributors: set[str] = set()
        self.fail_enrichment: set[str] = set()
        self.calls: List[str] = []

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):  # noqa: ARG002
        return False

    def list_org_repos(self, org: str):
        self.calls.append(f"repos:{org}")
        if self.fail_repos:
            raise GitHubApiError("HTTP 404 from GitHub")
        return list(self.repos)

    def list_contributors(self, owner: str, repo: str):  # noqa: ARG002
        self.calls.append(f"contributors:{repo}")
        if repo in self.fail_contributors:
            raise GitHubError("boom")
        return self.contributors.get(repo, [])

    def list_topics(self, owner: str, repo: str):  # noqa: ARG002
        if repo in self.fail_enrichment:
            raise GitHubError("topics down")
        return self.topics.get(repo, [])

    def latest_release(self, owner: str, repo: str):  # noqa: ARG002
        if repo in self.fail_enrichment:
            raise GitHubError("releases down")
        return self.releases.get(repo)


def _user(i: int, login: str) -> Dict[str, Any]:
    return {"id": i, "login": login, "avatar_url": f"https://avatars/{login}", "html_url": f"https://github.com/{login}"}


def _fake(monkeypatch: pytest.MonkeyPatch) -> _FakeGitHub:
    from reports import handler as reports

    gh = _FakeGitHub()
    gh.repos = [
        {
            "id": 2,
            "name": "projectm",
            "full_name": "pm/projectm",
            "html_url": "https://github.com/pm/projectm",
            "owner": {"login": "pm", "avatar_url": "https://avatars/pm"},
            "stargazers_count": 100,
            "forks_count": 20,
            "updated_at": "2024-06-01T00:00:00Z",
            "private": False,
        },
        {"id": 1, "name": "presets", "full_name": "pm/presets", "owner": None},
    ]
    gh.contributors = {
        "projectm": [_user(10, "alice"), _user(11, "bob")],
        "presets": [{"id": 10, "login": "alice-renamed"}, _user(12, "carol")],
    }
    gh.topics = {"projectm": ["audio", "visualizer"]}
    gh.releases = {
        "projectm": {
            "tag_name": "v4.1.0",
            "name": "projectM 4.1.0",
            "published_at": "2024-03-01T00:00:00Z",
            "html_url": "https://github.com/pm/projectm/releases/tag/v4.1.0",
            "assets": [
                {
                    "name": "projectM.tar.gz",
                    "browser_download_url": "https://dl/projectM.tar.gz",
                    "content_type": "application/gzip",
                    "size": 1234,
                    "download_count": 56,
                }
            ],
        }
    }
    monkeypatch.setattr(reports, "GitHubClient", lambda *_a, **_k: gh)
    return gh


def _settings(tmp_path: Path, **kw):
    from reports.handler import ReportSettings

    base = dict(owner="pm", output_dir=str(tmp_path / "out"), token="TOKEN")
    base.update(kw)
    return ReportSettings(**base)


def test_plaintext_run_writes_json_artifacts(monkeypatch, tmp_path):
    from reports.handler import run_once

    gh = _fake(monkeypatch)
    result = run_once(_settings(tmp_path))

    assert result["ok"] is True
    assert result["projects"] == 2
    assert result["contributors"] == 3
    assert result["skipped"] == []
    assert gh.calls[0] == "repos:pm"

    out = tmp_path / "out"
    projects = json.loads((out / "projects.json").read_text(encoding="utf-8"))
    # Upstream order preserved, not re-sorted
    assert [p["name"] for p in projects] == ["projectm", "presets"]
    first = projects[0]
    assert list(first.keys())[:4] == ["id", "html_url", "name", "full_name"]
    assert first["topics"] == ["audio", "visualizer"]
    assert "private" not in first
    assert first["latest_release"]["tag"] == "v4.1.0"
    assert first["latest_release"]["assets"][0] == {
        "name": "projectM.tar.gz",
        "url": "https://dl/projectM.tar.gz",
        "type": "application/gzip",
        "size": 1234,
        "downloads": 56,
    }
    assert projects[1]["latest_release"] is None
    assert projects[1]["owner"] is None


def test_contributors_deduplicated_first_seen_wins(monkeypatch, tmp_path):
    from reports.handler import run_once

    _fake(monkeypatch)
    run_once(_settings(tmp_path))

    contributors = json.loads((tmp_path / "out" / "contributors.json").read_text(encoding="utf-8"))
    assert [c["id"] for c in contributors] == [10, 11, 12]
    alice = contributors[0]
    assert alice["login"] == "alice"
    assert alice["avatar_url"] == "https://avatars/alice"


def test_encrypted_run_writes_dat_envelopes(monkeypatch, tmp_path):
    from reports.handler import run_once

    _fake(monkeypatch)
    result = run_once(_settings(tmp_path, encrypt=True, encryption_key=KEY_B64))

    out = tmp_path / "out"
    assert not (out / "projects.json").exists()
    assert sorted(Path(f).name for f in result["files"]) == ["contributors.dat", "projects.dat"]
    projects = json.loads(decode(KEY, (out / "projects.dat").read_bytes()))
    assert [p["name"] for p in projects] == ["projectm", "presets"]


def test_contributor_failure_is_skipped(monkeypatch, tmp_path):
    from reports.handler import run_once

    gh = _fake(monkeypatch)
    gh.fail_contributors = {"projectm"}
    result = run_once(_settings(tmp_path))

    assert result["skipped"] == ["projectm"]
    contributors = json.loads((tmp_path / "out" / "contributors.json").read_text(encoding="utf-8"))
    assert [c["login"] for c in contributors] == ["alice-renamed", "carol"]


def test_enrichment_failure_leaves_fields_absent(monkeypatch, tmp_path):
    from reports.handler import run_once

    gh = _fake(monkeypatch)
    gh.fail_enrichment = {"projectm"}
    run_once(_settings(tmp_path))

    projects = json.loads((tmp_path / "out" / "projects.json").read_text(encoding="utf-8"))
    assert projects[0]["topics"] == []
    assert projects[0]["latest_release"] is None


def test_missing_token_fails_before_network(monkeypatch, tmp_path):
    from reports.handler import run_once

    gh = _fake(monkeypatch)
    with pytest.raises(ConfigurationError):
        run_once(_settings(tmp_path, token=None))
    assert gh.calls == []


def test_encrypt_without_key_fails_before_network(monkeypatch, tmp_path):
    from reports.handler import run_once

    gh = _fake(monkeypatch)
    with pytest.raises(ConfigurationError):
        run_once(_settings(tmp_path, encrypt=True, encryption_key=None))
    assert gh.calls == []


def test_repo_listing_failure_is_fatal_and_writes_nothing(monkeypatch, tmp_path):
    from reports.handler import run_once

    gh = _fake(monkeypatch)
    gh.fail_repos = True
    with pytest.raises(GitHubError):
        run_once(_settings(tmp_path))
    assert not (tmp_path / "out").exists()


def test_publishes_each_artifact(monkeypatch, tmp_path):
    from reports import handler as reports

    _fake(monkeypatch)
    published: List[str] = []

    class _FakePublisher:
        def __init__(self, **kw) -> None:
            assert kw["bucket"] == "site-bucket"

        def publish(self, path):
            published.append(Path(path).name)
            return f"s3://site-bucket/assets/data/{Path(path).name}"

    monkeypatch.setattr(reports, "ArtifactPublisher", _FakePublisher)
    reports.run_once(_settings(tmp_path, publish_bucket="site-bucket"))

    assert published == ["projects.json", "contributors.json"]


def test_main_cli_overrides_env(monkeypatch, tmp_path):
    from reports import handler as reports

    gh = _fake(monkeypatch)
    for name in ("GITHUB_TOKEN", "NUXT_PUBLIC_ASSET_KEY", "PARAM_PREFIX", "ARTIFACT_BUCKET", "REPORT_ENCRYPT"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("REPORT_OWNER", "env-owner")

    out = tmp_path / "cli"
    code = reports.main(["-t", "TOKEN", "-n", "cli-owner", "-o", str(out), "-e", "-k", KEY_B64])

    assert code == 0
    assert gh.calls[0] == "repos:cli-owner"
    assert (out / "projects.dat").exists()


def test_main_returns_1_on_missing_token(monkeypatch, tmp_path):
    from reports import handler as reports

    _fake(monkeypatch)
    for name in ("GITHUB_TOKEN", "PARAM_PREFIX"):
        monkeypatch.delenv(name, raising=False)

    assert reports.main(["-o", str(tmp_path)]) == 1


def test_lambda_handler_reads_env(monkeypatch, tmp_path):
    from reports import handler as reports

    _fake(monkeypatch)
    monkeypatch.delenv("PARAM_PREFIX", raising=False)
    monkeypatch.delenv("ARTIFACT_BUCKET", raising=False)
    monkeypatch.delenv("REPORT_ENCRYPT", raising=False)
    monkeypatch.setenv("GITHUB_TOKEN", "TOKEN")
    monkeypatch.setenv("REPORT_OUTPUT_DIR", str(tmp_path / "lambda"))

    result = reports.lambda_handler({}, None)

    assert result["ok"] is True
    assert (tmp_path / "lambda" / "projects.json").exists()


def test_malformed_release_payload_leaves_release_absent(monkeypatch, tmp_path):
    from reports.handler import collect_projects

    gh = _fake(monkeypatch)
    gh.releases["projectm"] = {
        "tag_name": "v5",
        "assets": [{"name": "x.zip", "size": "n/a"}],
    }

    projects = collect_projects(gh, "pm", gh.repos)

    assert projects[0].latest_release is None
    assert projects[0].topics == ["audio", "visualizer"]


def test_malformed_contributor_skips_repo(monkeypatch, tmp_path):
    from reports.handler import collect_contributors

    gh = _fake(monkeypatch)
    gh.contributors["projectm"] = [_user(11, "bob"), {"id": "ghost", "login": "ghost"}]

    contributors, skipped = collect_contributors(gh, "pm", ["projectm", "presets"])

    assert skipped == ["projectm"]
    assert [c.login for c in contributors] == ["alice-renamed", "carol"]


def test_malformed_repo_listing_exits_1(monkeypatch, tmp_path):
    from reports import handler as reports

    gh = _fake(monkeypatch)
    gh.repos = [{"id": "not-an-int", "name": "broken"}]

    assert reports.main(["-t", "TOKEN", "-o", str(tmp_path / "out")]) == 1


def test_write_artifact_replaces_atomically(tmp_path):
    from reports.handler import write_artifact

    out = tmp_path / "out"
    write_artifact(out, "projects", "[1]", None)
    path = write_artifact(out, "projects", "[2]", None)

    assert path.read_text(encoding="utf-8") == "[2]"
    assert sorted(p.name for p in out.iterdir()) == ["projects.json"]


def test_interrupted_write_keeps_previous_artifact(monkeypatch, tmp_path):
    from reports import handler as reports

    out = tmp_path / "out"
    reports.write_artifact(out, "projects", "[1]", KEY)

    def failing_replace(_src, _dst):
        raise OSError("disk full")

    monkeypatch.setattr(reports.os, "replace", failing_replace)
    with pytest.raises(OSError):
        reports.write_artifact(out, "projects", "[2]", KEY)

    assert json.loads(decode(KEY, (out / "projects.dat").read_bytes())) == [1]
    assert sorted(p.name for p in out.iterdir()) == ["projects.dat"]
