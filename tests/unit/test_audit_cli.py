"""Tests for the command-line audit runner."""

import sys

import pytest
from tenacity import wait_none

from accessfix.config import reset_settings
from accessfix.adapters.audit_cli import AuditCommandError, CommandAuditRunner, extract_issue_list

REPORT_SCRIPT = (
    "import json, sys; "
    "print(json.dumps({'combinedIssues': [{'code': 'EPUB-META-001', 'location': sys.argv[1]}]}))"
)


@pytest.fixture(autouse=True)
def no_retry_wait(monkeypatch):
    monkeypatch.setattr(CommandAuditRunner.run_audit.retry, "wait", wait_none())


class TestExtractIssueList:
    def test_plain_list(self):
        assert extract_issue_list([{"code": "A"}]) == [{"code": "A"}]

    @pytest.mark.parametrize("key", ["combinedIssues", "issues", "violations"])
    def test_nested_list(self, key):
        assert extract_issue_list({key: [{"code": "A"}]}) == [{"code": "A"}]

    def test_no_list(self):
        with pytest.raises(AuditCommandError, match="no issue list"):
            extract_issue_list({"summary": {}})


class TestCommandAuditRunner:
    """Test cases for CommandAuditRunner."""

    def test_requires_command(self):
        with pytest.raises(ValueError, match="No audit command configured"):
            CommandAuditRunner()

    def test_command_from_settings(self, monkeypatch):
        monkeypatch.setenv("AUDIT_COMMAND", "ace --format json")
        reset_settings()

        runner = CommandAuditRunner()
        assert runner.command == ["ace", "--format", "json"]
        assert runner.timeout == 600

    @pytest.mark.asyncio
    async def test_run_audit(self):
        runner = CommandAuditRunner([sys.executable, "-c", REPORT_SCRIPT])

        issues = await runner.run_audit(b"{}", "book.epub")

        assert len(issues) == 1
        assert issues[0]["code"] == "EPUB-META-001"
        assert issues[0]["location"].endswith("book.epub")

    @pytest.mark.asyncio
    async def test_non_zero_exit(self):
        runner = CommandAuditRunner([sys.executable, "-c", "import sys; sys.exit('engine crashed')"])

        with pytest.raises(AuditCommandError, match="return code 1"):
            await runner.run_audit(b"", "book.epub")

    @pytest.mark.asyncio
    async def test_invalid_json(self):
        runner = CommandAuditRunner([sys.executable, "-c", "print('not json')"])

        with pytest.raises(AuditCommandError, match="invalid JSON"):
            await runner.run_audit(b"", "book.epub")

    @pytest.mark.asyncio
    async def test_health_check(self):
        assert await CommandAuditRunner([sys.executable]).health_check() is True
        assert await CommandAuditRunner(["accessfix-no-such-engine"]).health_check() is False
