import os
import sys

import pytest


# Variables read by the producer, the data store and the publisher
_PIPELINE_ENV = (
    "GITHUB_TOKEN",
    "NUXT_PUBLIC_ASSET_KEY",
    "NUXT_PUBLIC_SITE_URL",
    "NUXT_PUBLIC_ASSET_ENCRYPTED",
    "PARAM_PREFIX",
    "REPORT_OWNER",
    "REPORT_OUTPUT_DIR",
    "REPORT_ENCRYPT",
    "ARTIFACT_BUCKET",
    "ARTIFACT_PREFIX",
)


def pytest_configure():
    # Make `src/` importable so `common.*`, `state.*`, `reports.*` resolve without install
    root = os.path.abspath(os.path.dirname(os.path.dirname(__file__)))
    src_path = os.path.join(root, "src")
    if src_path not in sys.path:
        sys.path.insert(0, src_path)


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch: pytest.MonkeyPatch):
    # CI runners often export GITHUB_TOKEN; tests must not see it
    for name in _PIPELINE_ENV:
        monkeypatch.delenv(name, raising=False)
    yield
