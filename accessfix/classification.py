"""Issue classification for AccessFix.

Maps audit issue codes to the fix tier that decides how much human
involvement a remediation needs:

- ``AUTO_FIXABLE``: applied by a registered handler without user input
- ``QUICK_FIX``: needs a content decision through a guided workflow
- ``MANUAL``: needs an editor outside the platform

Any code not listed here classifies as ``MANUAL`` so an unrecognized defect is
never auto-applied.
"""

from __future__ import annotations

from typing import Dict, FrozenSet, List, Literal, Optional, Tuple

FixTier = Literal['AUTO_FIXABLE', 'QUICK_FIX', 'MANUAL']

AUTO_FIXABLE: FixTier = 'AUTO_FIXABLE'
QUICK_FIX: FixTier = 'QUICK_FIX'
MANUAL: FixTier = 'MANUAL'

TIERS: Tuple[FixTier, ...] = (AUTO_FIXABLE, QUICK_FIX, MANUAL)


AUTO_FIXABLE_CODES: FrozenSet[str] = frozenset({
    # EPUB package and content
    'EPUB-META-001',        # Missing dc:language
    'OPF-014',
    'OPF-014b',
    'EPUB-NAV-001',         # Missing skip navigation
    'EPUB-SEM-001',         # Missing html lang attributes
    'EPUB-SEM-002',         # Empty links
    'EPUB-STRUCT-003',      # Heading levels skipped
    'EPUB-STRUCT-004',      # Missing ARIA landmarks
    'EPUB-FIG-001',         # Images not wrapped in figure
    # PDF document-level metadata
    'PDF-NO-LANGUAGE',
    'PDF-NO-TITLE',
    'PDF-NO-METADATA',
    'PDF-NO-CREATOR',
    'PDF-EMPTY-HEADING',
    'PDF-REDUNDANT-TAG',
    'MATTERHORN-11-001',    # Document language not specified
    'WCAG-2.4.2',           # Document title not present
    'MATTERHORN-07-001',    # Metadata missing
})

QUICK_FIX_CODES: FrozenSet[str] = frozenset({
    # EPUB accessibility metadata
    'METADATA-ACCESSMODE',
    'METADATA-ACCESSIBILITYFEATURE',
    'METADATA-ACCESSIBILITYHAZARD',
    'METADATA-ACCESSIBILITYSUMMARY',
    'EPUB-META-002',        # accessibilityFeature
    'EPUB-META-003',        # accessibilitySummary
    'EPUB-META-004',        # accessMode
    # Images, contrast, tables
    'EPUB-IMG-001',
    'IMG-001',
    'ACE-IMG-001',
    'EPUB-CONTRAST-001',
    'COLOR-CONTRAST',
    'EPUB-STRUCT-002',
    'EPUB-SEM-003',
    'LANDMARK-UNIQUE',
    # PDF guided fixes
    'PDF-IMAGE-NO-ALT',
    'PDF-TABLE-NO-HEADERS',
    'PDF-FORM-NO-LABEL',
    'PDF-LINK-NO-TEXT',
    'PDF-FIGURE-NO-CAPTION',
    'MATTERHORN-13-002',    # Image without alt text
    'MATTERHORN-13-003',    # Insufficient alt text
    'ALT-TEXT-QUALITY',
    'ALT-TEXT-REDUNDANT-PREFIX',
    'TABLE-MISSING-SUMMARY',
    'TABLE-MISSING-HEADERS',
    'MATTERHORN-15-002',    # Table without TH cells
    'MATTERHORN-15-003',    # Table header not marked
    'MATTERHORN-17-001',    # Link without text
    'MATTERHORN-19-006',    # Form field missing label
})

MANUAL_CODES: FrozenSet[str] = frozenset({
    'PDF-UNTAGGED',
    'PDF-READING-ORDER',
    'PDF-COMPLEX-TABLE',
    'PDF-CONTRAST-FAIL',
    'PDF-MISSING-STRUCTURE',
    'PDF-NESTED-STRUCTURE',
    'PDF-LOW-CONTRAST',
    'MATTERHORN-01-003',    # PDF not tagged
    'MATTERHORN-01-004',    # Suspect tag structure
    'MATTERHORN-09-004',    # Reading order not logical
    'MATTERHORN-15-005',
    'HEADING-SKIP',
    'HEADING-MULTIPLE-H1',
    'HEADING-IMPROPER-NESTING',
    'TABLE-ACCESSIBILITY',
    'TABLE-INACCESSIBLE',
    'TABLE-COMPLEX-STRUCTURE',
    'LIST-NOT-TAGGED',
    'LIST-IMPROPER-MARKUP',
    'CONTRAST-FAIL',
})

_CODES_BY_TIER: Dict[FixTier, FrozenSet[str]] = {
    AUTO_FIXABLE: AUTO_FIXABLE_CODES,
    QUICK_FIX: QUICK_FIX_CODES,
    MANUAL: MANUAL_CODES,
}

# Spellings used by individual engines for the same rule
CODE_ALIASES: Dict[str, str] = {
    'metadata-accessmode-missing': 'METADATA-ACCESSMODE',
    'metadata-accessibilityfeature-missing': 'METADATA-ACCESSIBILITYFEATURE',
    'metadata-accessibilityhazard-missing': 'METADATA-ACCESSIBILITYHAZARD',
    'metadata-accessibilitysummary-missing': 'METADATA-ACCESSIBILITYSUMMARY',
    'metadata-accessmode': 'METADATA-ACCESSMODE',
    'metadata-accessibilityfeature': 'METADATA-ACCESSIBILITYFEATURE',
    'metadata-accessibilityhazard': 'METADATA-ACCESSIBILITYHAZARD',
    'metadata-accessibilitysummary': 'METADATA-ACCESSIBILITYSUMMARY',
}

# A coarse signal from one engine -> the specific signal another engine
# reports for the same underlying defect. Keys are matched exactly, then
# lower-cased.
DUPLICATE_CODE_MAP: Dict[str, str] = {
    'metadata-accessmode': 'EPUB-META-004',
    'metadata-accessmode-missing': 'EPUB-META-004',
    'METADATA-ACCESSMODE': 'EPUB-META-004',
    'metadata-accessibilityfeature': 'EPUB-META-002',
    'metadata-accessibilityfeature-missing': 'EPUB-META-002',
    'METADATA-ACCESSIBILITYFEATURE': 'EPUB-META-002',
    'metadata-accessibilitysummary': 'EPUB-META-003',
    'metadata-accessibilitysummary-missing': 'EPUB-META-003',
    'METADATA-ACCESSIBILITYSUMMARY': 'EPUB-META-003',
    'epub-lang': 'EPUB-META-001',
    'html-has-lang': 'EPUB-SEM-001',
    'MATTERHORN-11-001': 'PDF-NO-LANGUAGE',
    'WCAG-2.4.2': 'PDF-NO-TITLE',
    'MATTERHORN-07-001': 'PDF-NO-METADATA',
}

_TIER_DESCRIPTIONS: Dict[FixTier, str] = {
    AUTO_FIXABLE: 'Can be automatically fixed',
    QUICK_FIX: 'Requires user input through guided workflow',
    MANUAL: 'Requires manual intervention in a document editor',
}

_GUIDANCE: Dict[str, str] = {
    'EPUB-META-001': 'Add a <dc:language> element to the package document with the primary language code.',
    'EPUB-META-002': 'Add schema:accessibilityFeature metadata such as structuralNavigation or readingOrder.',
    'EPUB-META-003': 'Add schema:accessibilitySummary describing the accessibility of the publication.',
    'EPUB-META-004': 'Add schema:accessMode metadata (textual, visual) to the package document.',
    'EPUB-SEM-001': 'Add a lang attribute to html elements so screen readers pick the right voice.',
    'EPUB-SEM-002': 'Give empty links descriptive text or an aria-label.',
    'EPUB-IMG-001': 'Add alt text describing the image, or alt="" for decorative images.',
    'EPUB-STRUCT-002': 'Add <th> elements with scope attributes to data tables.',
    'EPUB-STRUCT-003': 'Fix the heading hierarchy so no level is skipped.',
    'EPUB-STRUCT-004': 'Add ARIA landmark roles (main, navigation, banner, contentinfo).',
    'EPUB-NAV-001': 'Add a skip navigation link at the top of content pages.',
    'EPUB-FIG-001': 'Wrap images in <figure> elements with a <figcaption>.',
    'PDF-NO-LANGUAGE': 'Set the document catalog /Lang entry.',
    'PDF-NO-TITLE': 'Set the document title and display it in the viewer title bar.',
    'PDF-NO-METADATA': 'Add an XMP metadata stream with title and PDF/UA identifiers.',
    'PDF-NO-CREATOR': 'Record the creating application in the document information.',
    'COLOR-CONTRAST': 'Adjust colors to reach 4.5:1 for normal text and 3:1 for large text.',
    'IMAGE-ALT': 'Add alt text to images; use alt="" for decorative ones.',
    'LINK-NAME': 'Give every link an accessible name.',
    'DUPLICATE-ID': 'Rename duplicate id attributes so each id is unique in its document.',
}

_DEFAULT_GUIDANCE = (
    'Review and manually remediate this accessibility issue according to WCAG '
    'guidelines. Check the issue message and location for specific details.'
)


def normalize_issue_code(code: str) -> str:
    """Map an engine-specific spelling to the canonical code."""
    code = (code or '').strip()
    mapped = CODE_ALIASES.get(code) or CODE_ALIASES.get(code.lower())
    if mapped:
        return mapped
    return code.upper()


def _lookup(code: str) -> Optional[FixTier]:
    for candidate in (code, normalize_issue_code(code)):
        for tier in TIERS:
            if candidate in _CODES_BY_TIER[tier]:
                return tier
    return None


def classify(code: str) -> FixTier:
    """Resolve the fix tier for an issue code; unknown codes are MANUAL."""
    return _lookup(code) or MANUAL


def is_known_code(code: str) -> bool:
    """Check if a code appears in any classification set."""
    return _lookup(code) is not None


def codes_for_tier(tier: FixTier) -> List[str]:
    """All configured codes for a tier, sorted."""
    if tier not in _CODES_BY_TIER:
        raise ValueError(f"Unknown fix tier: {tier}")
    return sorted(_CODES_BY_TIER[tier])


def tier_description(tier: FixTier) -> str:
    return _TIER_DESCRIPTIONS.get(tier, 'Unknown fix type')


def canonical_duplicate_of(code: str) -> Optional[str]:
    """Return the canonical code this code duplicates, if it is a known alias."""
    code = (code or '').strip()
    return DUPLICATE_CODE_MAP.get(code) or DUPLICATE_CODE_MAP.get(code.lower())


def check_disjoint() -> Dict[str, List[FixTier]]:
    """Return codes configured in more than one tier (empty when healthy)."""
    seen: Dict[str, List[FixTier]] = {}
    for tier in TIERS:
        for code in _CODES_BY_TIER[tier]:
            seen.setdefault(code, []).append(tier)
    return {code: tiers for code, tiers in seen.items() if len(tiers) > 1}


def remediation_guidance(code: str) -> str:
    """Human guidance for fixing an issue code."""
    if code in _GUIDANCE:
        return _GUIDANCE[code]
    upper = normalize_issue_code(code)
    if upper in _GUIDANCE:
        return _GUIDANCE[upper]
    for key, text in _GUIDANCE.items():
        if key in upper or upper in key:
            return text
    return _DEFAULT_GUIDANCE
