"""Unit tests for issue tallies."""

from accessfix.models.issues import parse_issues
from accessfix.models.tally import IssueTally, create_tally, validate_tally_transition
from accessfix.orchestrator.planner import PlanBuilder


class TestCreateTally:
    def test_issue_tally(self, make_issue):
        issues, _ = parse_issues([
            make_issue("EPUB-META-001", severity="critical", source="epubcheck"),
            make_issue("EPUB-IMG-001", severity="serious", source="ace"),
            make_issue("UNKNOWN-CODE", severity="minor", source="whatever"),
        ])

        tally = create_tally(issues, "audit")

        assert tally.grand_total == 3
        assert tally.by_source == {
            "epubcheck": 1, "ace": 1, "js-auditor": 0, "pdf-validator": 0, "unknown": 1,
        }
        assert tally.by_classification == {"AUTO_FIXABLE": 1, "QUICK_FIX": 1, "MANUAL": 1}
        assert sum(tally.by_status.values()) == 0
        assert tally.is_consistent

    def test_task_tally_uses_stored_status(self, memory_store, make_issue):
        plan = PlanBuilder(memory_store).compile_plan("job-1", [make_issue("A"), make_issue("B")])
        plan.tasks[0].transition("COMPLETED")

        tally = create_tally(plan.tasks, "in_progress")

        assert tally.by_status["COMPLETED"] == 1
        assert tally.by_status["PENDING"] == 1


class TestValidateTransition:
    def test_equal_tallies_are_valid(self, make_issue):
        issues, _ = parse_issues([make_issue("A"), make_issue("B", source="ace")])
        result = validate_tally_transition(create_tally(issues, "audit"),
                                           create_tally(issues, "remediation_plan"))
        assert result.is_valid
        assert result.errors == []

    def test_lost_issue_is_reported(self, make_issue):
        issues, _ = parse_issues([make_issue("A"), make_issue("B", source="ace")])
        result = validate_tally_transition(create_tally(issues, "audit"),
                                           create_tally(issues[:1], "remediation_plan"))

        assert result.is_valid is False
        fields = {d.field for d in result.discrepancies}
        assert fields == {"grandTotal", "bySource.ace"}
        grand = next(d for d in result.discrepancies if d.field == "grandTotal")
        assert (grand.expected, grand.actual, grand.difference) == (2, 1, 1)

    def test_deduplicated_issues_are_accounted_for(self, make_issue):
        issues, _ = parse_issues([make_issue("A"), make_issue("B", source="ace")])
        result = validate_tally_transition(
            create_tally(issues, "audit"),
            create_tally(issues[:1], "remediation_plan"),
            create_tally(issues[1:], "deduplicated"),
        )

        assert result.is_valid
        assert result.deduped_count == 1

    def test_inconsistent_breakdown_is_a_warning(self):
        broken = IssueTally(stage="remediation_plan", grand_total=0)
        broken.by_severity["minor"] = 2
        result = validate_tally_transition(IssueTally(stage="audit"), broken)

        assert result.is_valid
        assert result.warnings
