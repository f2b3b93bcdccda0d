"""Unit tests for before/after audit reconciliation."""

from accessfix.models.issues import Issue, parse_issues
from accessfix.orchestrator.reconciler import calculate_success_metrics, compare_issue_sets, reconcile


def _issues(*specs):
    """Issues from (code, location, severity) tuples."""
    raw = [
        {"code": code, "location": location, "severity": severity}
        for code, location, severity in specs
    ]
    return parse_issues(raw)[0]


def _keys(issues):
    return [(issue.code, issue.location) for issue in issues]


class TestCompareIssueSets:
    """Test cases for strict and fuzzy matching."""

    def test_strict_matches(self):
        original = _issues(("A", "loc1", "serious"), ("A", "loc2", "serious"), ("B", "loc1", "minor"))
        new = _issues(("A", "loc1", "serious"))

        result = compare_issue_sets(original, new)

        assert _keys(result.resolved) == [("A", "loc2"), ("B", "loc1")]
        assert _keys(result.remaining) == [("A", "loc1")]
        assert result.regressions == []

    def test_fuzzy_fallback_on_moved_location(self):
        original = _issues(("A", "loc1", "critical"))
        new = _issues(("A", "loc9", "critical"))

        result = compare_issue_sets(original, new)

        assert result.resolved == []
        assert _keys(result.remaining) == [("A", "loc9")]
        assert result.regressions == []

    def test_regression(self):
        result = compare_issue_sets([], _issues(("C", "loc1", "moderate")))

        assert _keys(result.regressions) == [("C", "loc1")]
        assert result.resolved == result.remaining == []

    def test_fuzzy_needs_same_severity(self):
        result = compare_issue_sets(_issues(("A", "loc1", "critical")), _issues(("A", "loc9", "minor")))

        assert _keys(result.resolved) == [("A", "loc1")]
        assert _keys(result.regressions) == [("A", "loc9")]

    def test_each_new_issue_matches_once(self):
        original = _issues(("A", "loc1", "serious"), ("A", "loc1", "serious"))
        new = _issues(("A", "loc1", "serious"))

        result = compare_issue_sets(original, new)

        assert len(result.remaining) == 1
        assert len(result.resolved) == 1

    def test_greedy_in_original_order(self):
        # The first original falls back to a fuzzy match and takes new[0],
        # which is the exact location of the second original
        original = _issues(("A", "loc1", "serious"), ("A", "loc2", "serious"))
        new = _issues(("A", "loc2", "serious"), ("A", "loc7", "serious"))

        result = compare_issue_sets(original, new)

        assert _keys(result.remaining) == [("A", "loc2"), ("A", "loc7")]
        assert result.resolved == []
        assert result.regressions == []

    def test_fuzzy_fallback_per_original_before_moving_on(self):
        original = _issues(("A", "l1", "serious"), ("A", "l2", "critical"))
        new = _issues(("A", "l2", "serious"), ("A", "l9", "critical"))

        result = compare_issue_sets(original, new)

        assert _keys(result.remaining) == [("A", "l2"), ("A", "l9")]
        assert result.resolved == []
        assert result.regressions == []

    def test_empty_locations_never_match_strictly(self):
        original = [Issue(id="o", code="A", source="ace", severity="minor")]
        new = [Issue(id="n", code="A", source="ace", severity="serious")]

        result = compare_issue_sets(original, new)

        assert len(result.resolved) == 1
        assert len(result.regressions) == 1

    def test_locations_are_normalized(self):
        original = [Issue(id="o", code="A", source="ace", severity="minor", location="./x\\y.xhtml")]
        new = [Issue(id="n", code="A", source="ace", severity="serious", location="x/y.xhtml")]

        assert len(compare_issue_sets(original, new).remaining) == 1


class TestSuccessMetrics:
    def test_metrics(self):
        original = _issues(("A", "loc1", "critical"), ("B", "loc2", "critical"), ("C", "loc3", "minor"))
        new = _issues(("A", "loc1", "critical"), ("D", "loc4", "serious"))

        metrics = compare_issue_sets(original, new).metrics

        assert metrics.total_original == 3
        assert metrics.total_new == 2
        assert metrics.resolved_count == 2
        assert metrics.remaining_count == 1
        assert metrics.regression_count == 1
        assert round(metrics.resolution_rate, 2) == 66.67
        assert metrics.critical_resolved == 1
        assert metrics.critical_remaining == 1
        assert metrics.severity_breakdown["minor"] == {"resolved": 1, "remaining": 0}

    def test_zero_division(self):
        result = compare_issue_sets([], [])
        metrics = calculate_success_metrics(result)

        assert metrics.resolution_rate == 0.0
        assert metrics.total_original == 0
        assert set(metrics.severity_breakdown) == {"critical", "serious", "moderate", "minor"}

    def test_improvement(self):
        result = compare_issue_sets(_issues(("A", "l", "minor")), [])
        assert result.is_improvement
        assert result.metrics.resolution_rate == 100.0


class TestReconcile:
    def test_raw_inputs_are_validated(self):
        result = reconcile(
            "job-1",
            [{"code": "A", "location": "l"}, {"no": "code"}],
            [{"code": "A", "location": "l"}, "junk"],
        )

        assert result.job_id == "job-1"
        assert len(result.remaining) == 1
        assert result.metrics.total_original == 1

    def test_result_serializes(self):
        result = reconcile("job-1", [{"code": "A", "location": "l"}], [])
        restored = type(result).from_json(result.to_json())

        assert restored.resolved[0].code == "A"
        assert restored.metrics.resolved_count == 1
