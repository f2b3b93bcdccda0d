"""Shared fixtures for AccessFix tests."""

from typing import Any, Dict, List

import pytest
import pytest_asyncio

from accessfix.adapters import LocalArtifactStorage, MetadataJsonCodec, default_registry
from accessfix.config import reset_settings
from accessfix.db import Database, InMemoryPlanStore


@pytest.fixture(autouse=True)
def settings_env(tmp_path, monkeypatch):
    """Point settings at a throwaway directory for every test."""
    monkeypatch.setenv("DB_PATH", str(tmp_path / "accessfix.sqlite"))
    monkeypatch.setenv("STORAGE_DIR", str(tmp_path / "artifacts"))
    monkeypatch.setenv("UPDATE_RETRY_ATTEMPTS", "5")
    reset_settings()
    yield
    reset_settings()


@pytest_asyncio.fixture
async def database(tmp_path):
    db = Database(tmp_path / "test.sqlite", busy_timeout=5.0)
    await db.init()
    yield db
    await db.close()


@pytest.fixture
def memory_store():
    return InMemoryPlanStore()


@pytest.fixture
def registry():
    return default_registry()


@pytest.fixture
def storage(tmp_path):
    return LocalArtifactStorage(tmp_path / "artifacts")


@pytest.fixture
def codec():
    return MetadataJsonCodec()


def _make_issue(
    code: str,
    location: str = "",
    severity: str = "moderate",
    source: str = "epubcheck",
    **extra: Any,
) -> Dict[str, Any]:
    issue = {
        "code": code,
        "location": location,
        "severity": severity,
        "source": source,
        "message": extra.pop("message", f"{code} reported"),
    }
    issue.update(extra)
    return issue


@pytest.fixture
def make_issue():
    """Factory for raw audit entries as an engine would report them."""
    return _make_issue


class FakeAuditRunner:
    """Audit runner that returns canned reports in order, repeating the last one."""

    def __init__(self, *reports: List[Dict[str, Any]]):
        self.reports = list(reports)
        self.calls: List[str] = []

    async def run_audit(self, artifact: bytes, file_name: str) -> List[Dict[str, Any]]:
        self.calls.append(file_name)
        if len(self.reports) > 1:
            return self.reports.pop(0)
        return self.reports[0] if self.reports else []


@pytest.fixture
def fake_audit():
    return FakeAuditRunner
