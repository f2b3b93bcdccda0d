"""Unit tests for issue classification."""

import pytest

from accessfix.classification import (
    AUTO_FIXABLE,
    DUPLICATE_CODE_MAP,
    MANUAL,
    QUICK_FIX,
    canonical_duplicate_of,
    check_disjoint,
    classify,
    codes_for_tier,
    is_known_code,
    normalize_issue_code,
    remediation_guidance,
    tier_description,
)


class TestClassify:
    """Test cases for code to tier resolution."""

    @pytest.mark.parametrize("code,tier", [
        ("EPUB-META-001", AUTO_FIXABLE),
        ("PDF-NO-LANGUAGE", AUTO_FIXABLE),
        ("MATTERHORN-11-001", AUTO_FIXABLE),
        ("EPUB-IMG-001", QUICK_FIX),
        ("MATTERHORN-13-002", QUICK_FIX),
        ("PDF-UNTAGGED", MANUAL),
        ("HEADING-SKIP", MANUAL),
    ])
    def test_known_codes(self, code, tier):
        assert classify(code) == tier

    def test_unknown_code_is_manual(self):
        assert classify("SOMETHING-NEW-999") == MANUAL
        assert is_known_code("SOMETHING-NEW-999") is False

    def test_alias_is_normalized_before_lookup(self):
        assert normalize_issue_code("metadata-accessmode-missing") == "METADATA-ACCESSMODE"
        assert classify("metadata-accessmode-missing") == QUICK_FIX

    def test_lower_case_code_is_upper_cased(self):
        assert normalize_issue_code("  pdf-no-title ") == "PDF-NO-TITLE"
        assert classify("pdf-no-title") == AUTO_FIXABLE

    def test_mixed_case_exact_code_still_matches(self):
        # OPF-014b is configured with a lower-case suffix
        assert classify("OPF-014b") == AUTO_FIXABLE
        assert is_known_code("OPF-014b")


class TestTierSets:
    """Test cases for the tier sets themselves."""

    def test_tiers_are_disjoint(self):
        assert check_disjoint() == {}

    def test_codes_for_tier_is_sorted(self):
        codes = codes_for_tier(MANUAL)
        assert codes == sorted(codes)
        assert "PDF-READING-ORDER" in codes

    def test_codes_for_unknown_tier(self):
        with pytest.raises(ValueError, match="Unknown fix tier"):
            codes_for_tier("SOMETIMES")

    def test_tier_description(self):
        assert tier_description(AUTO_FIXABLE) == "Can be automatically fixed"
        assert tier_description("NOPE") == "Unknown fix type"


class TestDuplicates:
    """Test cases for cross-engine duplicate codes."""

    def test_coarse_metadata_signal_maps_to_specific_code(self):
        assert canonical_duplicate_of("metadata-accessmode") == "EPUB-META-004"
        assert canonical_duplicate_of("METADATA-ACCESSIBILITYSUMMARY") == "EPUB-META-003"

    def test_lookup_falls_back_to_lower_case(self):
        assert canonical_duplicate_of("EPUB-LANG") == "EPUB-META-001"

    def test_non_duplicate(self):
        assert canonical_duplicate_of("EPUB-META-001") is None

    def test_canonical_codes_are_classified(self):
        for canonical in DUPLICATE_CODE_MAP.values():
            assert is_known_code(canonical), canonical


class TestGuidance:
    def test_specific_guidance(self):
        assert "dc:language" in remediation_guidance("EPUB-META-001")

    def test_normalized_guidance(self):
        assert remediation_guidance("pdf-no-title") == remediation_guidance("PDF-NO-TITLE")

    def test_fallback_guidance(self):
        assert "WCAG" in remediation_guidance("XYZZY-42")
