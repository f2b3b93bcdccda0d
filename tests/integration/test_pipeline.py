"""Integration tests for the AccessFix remediation pipeline."""

import pytest

from accessfix.adapters import MetadataDocument
from accessfix.config import reset_settings
from accessfix.db import ComparisonStore, JobStore, SqlPlanStore
from accessfix.errors import ConcurrencyLimitError
from accessfix.models.jobs import Job
from accessfix.orchestrator.pipeline import RemediationPipeline


@pytest.fixture
def original_report(make_issue):
    return [
        make_issue("EPUB-META-001", "OEBPS/content.opf", severity="critical"),
        make_issue("EPUB-SEM-001", "OEBPS/ch1.xhtml", severity="serious"),
        make_issue("OPF-014", "OEBPS/content.opf", severity="moderate"),
        make_issue("EPUB-IMG-001", "OEBPS/ch1.xhtml", severity="serious"),
        make_issue("EPUB-CONTRAST-001", "OEBPS/ch3.xhtml", severity="moderate"),
        make_issue("HEADING-SKIP", "OEBPS/ch2.xhtml", severity="minor"),
        make_issue("EPUB-META-004", "OEBPS/content.opf", severity="moderate"),
        make_issue("metadata-accessmode", "OEBPS/content.opf", severity="moderate", source="ace"),
    ]


@pytest.fixture
def reaudit_report(make_issue):
    return [
        make_issue("EPUB-IMG-001", "OEBPS/ch1.xhtml", severity="serious"),
        make_issue("HEADING-SKIP", "OEBPS/ch2.xhtml", severity="minor"),
        make_issue("OPF-014", "OEBPS/content.opf", severity="moderate"),
        make_issue("EPUB-META-004", "OEBPS/content.opf", severity="moderate"),
        make_issue("metadata-accessmode", "OEBPS/content.opf", severity="moderate", source="ace"),
    ]


def _pipeline(database, audit, storage, codec, registry):
    return RemediationPipeline.for_database(
        database, audit_runner=audit, storage=storage, codec=codec, registry=registry
    )


async def _store_document(storage, codec, job_id, file_name="book.epub"):
    doc = MetadataDocument(format="epub", title="Book", content_languages={"OEBPS/ch1.xhtml": None})
    await storage.save_artifact(job_id, file_name, codec.dump(doc))


class TestPipeline:
    """Integration tests for the remediation pipeline."""

    @pytest.mark.asyncio
    async def test_full_run(self, database, storage, codec, registry, fake_audit,
                            original_report, reaudit_report):
        audit = fake_audit(original_report, reaudit_report)
        await _store_document(storage, codec, "job-1")
        pipeline = _pipeline(database, audit, storage, codec, registry)

        result = await pipeline.execute(Job(id="job-1", tenant_id="acme", file_name="book.epub"))

        assert audit.calls == ["book.epub", "book.epub"]

        statuses = {task.issue_code: task.status for task in result.plan.tasks}
        assert statuses == {
            "EPUB-META-001": "COMPLETED",
            "EPUB-SEM-001": "COMPLETED",
            "OPF-014": "SKIPPED",
            "EPUB-IMG-001": "PENDING",
            "EPUB-CONTRAST-001": "COMPLETED",
            "HEADING-SKIP": "PENDING",
            "EPUB-META-004": "PENDING",
        }
        methods = {task.issue_code: task.completion_method for task in result.plan.tasks}
        assert methods["EPUB-META-001"] == "auto"
        assert methods["EPUB-CONTRAST-001"] == "verified"

        assert result.plan.tallies["validation"]["deduped_count"] == 1
        assert result.dispatch.artifact.language == "en"
        assert result.dispatch.artifact.content_languages == {"OEBPS/ch1.xhtml": "en"}
        assert result.verification.verified_fixed == 2
        assert result.verification.still_broken == 0

        metrics = result.comparison.metrics
        assert metrics.resolved_count == 3
        assert metrics.total_original == 8
        assert metrics.remaining_count == 5
        assert metrics.regression_count == 0
        assert metrics.resolution_rate == 37.5

        assert result.summary["completionPercentage"] == 57
        assert result.job.status == "completed"

        stored = await JobStore(database).get("job-1")
        assert stored.status == "completed"
        assert stored.notes.startswith("57% of 7 tasks")
        assert len(await ComparisonStore(database).list_for_job("job-1")) == 1

        remediated = codec.load(await storage.get_artifact("job-1", "book_remediated.epub"))
        assert remediated.language == "en"

    @pytest.mark.asyncio
    async def test_failure_marks_job_failed(self, database, storage, codec, registry, fake_audit,
                                            original_report):
        pipeline = _pipeline(database, fake_audit(original_report), storage, codec, registry)

        with pytest.raises(FileNotFoundError):
            await pipeline.execute(Job(id="job-2", tenant_id="acme", file_name="missing.epub"))

        stored = await JobStore(database).get("job-2")
        assert stored.status == "failed"
        assert stored.notes.startswith("Error:")

    @pytest.mark.asyncio
    async def test_admission_refused(self, database, storage, codec, registry, fake_audit, monkeypatch):
        monkeypatch.setenv("MAX_CONCURRENT_JOBS_PER_TENANT", "1")
        reset_settings()
        await JobStore(database).admit(Job(id="busy", tenant_id="acme", file_name="a.epub"))
        pipeline = _pipeline(database, fake_audit([]), storage, codec, registry)

        with pytest.raises(ConcurrencyLimitError):
            await pipeline.execute(Job(id="job-3", tenant_id="acme", file_name="b.epub"))

    @pytest.mark.asyncio
    async def test_nothing_auto_fixable_skips_verification(self, database, storage, codec, registry,
                                                           fake_audit, make_issue):
        await _store_document(storage, codec, "job-4")
        audit = fake_audit([make_issue("HEADING-SKIP", "OEBPS/ch2.xhtml")])
        pipeline = _pipeline(database, audit, storage, codec, registry)

        result = await pipeline.execute(Job(id="job-4", tenant_id="acme", file_name="book.epub"))

        assert result.verification is None
        assert result.comparison is None
        assert audit.calls == ["book.epub"]
        assert result.to_dict()["totalIssues"] == 1

    @pytest.mark.asyncio
    async def test_execute_many(self, database, storage, codec, registry, fake_audit, make_issue):
        audit = fake_audit([make_issue("EPUB-META-001", "OEBPS/content.opf", severity="critical")])
        for job_id in ("m1", "m2"):
            await _store_document(storage, codec, job_id)
        pipeline = RemediationPipeline(
            jobs=JobStore(database),
            store=SqlPlanStore(database),
            audit_runner=audit,
            storage=storage,
            codec=codec,
            registry=registry,
            max_concurrent_jobs=2,
        )

        results = await pipeline.execute_many([
            Job(id="m1", tenant_id="t1", file_name="book.epub"),
            Job(id="m2", tenant_id="t2", file_name="book.epub"),
            Job(id="m3", tenant_id="t3", file_name="book.epub"),
        ])

        assert results[0].job.status == "completed"
        assert results[1].job.status == "completed"
        assert isinstance(results[2], FileNotFoundError)
        assert (await JobStore(database).get("m3")).status == "failed"

    @pytest.mark.asyncio
    async def test_deduplicated_alias_is_not_a_regression(self, database, storage, codec, registry,
                                                          fake_audit, make_issue):
        unchanged = [
            make_issue("EPUB-META-004", "OEBPS/content.opf"),
            make_issue("metadata-accessmode", "OEBPS/content.opf", source="ace"),
        ]
        original = [make_issue("EPUB-META-001", "OEBPS/content.opf", severity="critical"), *unchanged]
        await _store_document(storage, codec, "job-5")
        pipeline = _pipeline(database, fake_audit(original, unchanged), storage, codec, registry)

        result = await pipeline.execute(Job(id="job-5", tenant_id="acme", file_name="book.epub"))

        assert result.plan.total_issues == 2
        assert [issue.code for issue in result.comparison.resolved] == ["EPUB-META-001"]
        assert len(result.comparison.remaining) == 2
        assert result.comparison.regressions == []
