"""Tests for the accessfix command line."""

import json

from typer.testing import CliRunner

from accessfix.cli.main import app

runner = CliRunner()


def _write_report(path, issues):
    path.write_text(json.dumps({"issues": issues}), encoding="utf-8")
    return path


class TestCli:
    def test_coverage_ok(self):
        result = runner.invoke(app, ["coverage"])

        assert result.exit_code == 0
        assert "Handler coverage" in result.output

    def test_compare(self, tmp_path, make_issue):
        original = _write_report(tmp_path / "before.json", [
            make_issue("EPUB-META-001", "OEBPS/content.opf", severity="critical"),
            make_issue("EPUB-IMG-001", "OEBPS/ch1.xhtml", severity="serious"),
        ])
        new = _write_report(tmp_path / "after.json", [
            make_issue("EPUB-IMG-001", "OEBPS/ch1.xhtml", severity="serious"),
        ])

        result = runner.invoke(app, ["compare", str(original), str(new), "--job-id", "job-9"])

        assert result.exit_code == 0
        assert "Comparison for job-9" in result.output
        assert "50.0%" in result.output

    def test_plan_then_show(self, tmp_path, make_issue):
        report = _write_report(tmp_path / "audit.json", [
            make_issue("EPUB-META-001", "OEBPS/content.opf", severity="critical"),
            make_issue("HEADING-SKIP", "OEBPS/ch2.xhtml", severity="minor"),
        ])

        created = runner.invoke(app, ["plan", str(report), "--job-id", "job-cli", "--file-name", "book.epub"])
        shown = runner.invoke(app, ["show", "job-cli", "--pending"])

        assert created.exit_code == 0
        assert "Plan created for job job-cli" in created.output
        assert shown.exit_code == 0
        assert "Total: 2" in shown.output
        assert "Critical remaining: 1" in shown.output

    def test_show_unknown_job_exits_with_error(self):
        result = runner.invoke(app, ["show", "nope"])

        assert result.exit_code == 1
