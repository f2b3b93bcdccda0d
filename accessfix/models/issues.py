"""Audit issue models and the ingestion boundary that validates them."""

from __future__ import annotations

import hashlib
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Literal, Mapping, Optional, Tuple

from dataclasses_json import DataClassJsonMixin

# Type aliases for better type safety
IssueSeverity = Literal['critical', 'serious', 'moderate', 'minor']
IssueSource = Literal['epubcheck', 'ace', 'js-auditor', 'pdf-validator', 'unknown']

SEVERITIES: Tuple[IssueSeverity, ...] = ('critical', 'serious', 'moderate', 'minor')
SOURCES: Tuple[IssueSource, ...] = ('epubcheck', 'ace', 'js-auditor', 'pdf-validator', 'unknown')

_SOURCE_ALIASES: Dict[str, IssueSource] = {
    'epubcheck': 'epubcheck',
    'epub-check': 'epubcheck',
    'ace': 'ace',
    'daisy-ace': 'ace',
    'js-auditor': 'js-auditor',
    'js_auditor': 'js-auditor',
    'jsauditor': 'js-auditor',
    'pdf-validator': 'pdf-validator',
    'pdf_validator': 'pdf-validator',
    'pdf': 'pdf-validator',
    'pdfua': 'pdf-validator',
    'matterhorn': 'pdf-validator',
}

# PDF engines report their own severity scale
_SEVERITY_ALIASES: Dict[str, IssueSeverity] = {
    'critical': 'critical',
    'serious': 'serious',
    'moderate': 'moderate',
    'minor': 'minor',
    'major': 'serious',
    'info': 'minor',
    'error': 'serious',
    'warning': 'moderate',
}


def normalize_source(source: Any) -> IssueSource:
    """Map an engine name to one of the known issue sources."""
    key = str(source or '').strip().lower()
    return _SOURCE_ALIASES.get(key, 'unknown')


def normalize_severity(severity: Any) -> IssueSeverity:
    """Map an engine severity to the canonical scale; unknown values are moderate."""
    key = str(severity or '').strip().lower()
    return _SEVERITY_ALIASES.get(key, 'moderate')


def normalize_location(location: Any) -> str:
    """Canonical form of an issue location used for matching across engines.

    Whitespace is stripped, Windows separators become ``/`` and a leading
    ``./`` is removed. ``None`` becomes the empty string.
    """
    if location is None:
        return ''
    if isinstance(location, Mapping):
        location = _location_from_mapping(location)
    text = str(location).strip().replace('\\', '/')
    while text.startswith('./'):
        text = text[2:]
    return text


def _location_from_mapping(location: Mapping[str, Any]) -> str:
    path = location.get('path') or location.get('file') or location.get('filePath')
    page = location.get('page')
    if path and page is not None:
        return f"{path}#page={page}"
    if path:
        return str(path)
    if page is not None:
        return f"Page {page}"
    return ''


@dataclass(slots=True, frozen=True)
class Issue(DataClassJsonMixin):
    """A single accessibility defect reported by an audit engine."""

    id: str
    code: str
    source: IssueSource
    severity: IssueSeverity
    location: str = ''
    message: str = ''
    suggestion: Optional[str] = None
    wcag: List[str] = field(default_factory=list)

    def __post_init__(self) -> None:
        """Validate issue data after initialization."""
        if not self.id:
            raise ValueError("Issue ID cannot be empty")
        if not self.code:
            raise ValueError("Issue code cannot be empty")
        if self.severity not in SEVERITIES:
            raise ValueError(f"Invalid severity: {self.severity}")
        if self.source not in SOURCES:
            raise ValueError(f"Invalid source: {self.source}")

    @property
    def is_critical(self) -> bool:
        return self.severity == 'critical'

    @property
    def normalized_location(self) -> str:
        return normalize_location(self.location)


def derive_issue_id(code: str, location: str, position: int) -> str:
    """Deterministic id for an issue an engine reported without one."""
    digest = hashlib.md5(f"{code}-{location}-{position}".encode('utf-8')).hexdigest()
    return f"issue-{digest[:12]}"


def parse_issue(raw: Any, position: int = 0) -> Issue:
    """Validate one raw audit entry into an Issue.

    Raises:
        ValueError: If the entry is not a mapping or carries no code.
    """
    if isinstance(raw, Issue):
        return raw
    if not isinstance(raw, Mapping):
        raise ValueError(f"Issue entry must be a mapping, got {type(raw).__name__}")

    code = str(raw.get('code') or '').strip()
    if not code:
        raise ValueError("Issue entry has no code")

    location = normalize_location(raw.get('location') or raw.get('filePath'))
    wcag_raw = raw.get('wcagCriteria', raw.get('wcag'))
    if isinstance(wcag_raw, str):
        wcag = [wcag_raw]
    elif isinstance(wcag_raw, (list, tuple)):
        wcag = [str(item) for item in wcag_raw]
    else:
        wcag = []

    suggestion = raw.get('suggestion')

    return Issue(
        id=str(raw.get('id') or derive_issue_id(code, location, position)),
        code=code,
        source=normalize_source(raw.get('source')),
        severity=normalize_severity(raw.get('severity')),
        location=location,
        message=str(raw.get('message') or ''),
        suggestion=str(suggestion) if suggestion else None,
        wcag=wcag,
    )


def parse_issues(raw_issues: Iterable[Any]) -> Tuple[List[Issue], int]:
    """Validate a raw issue list, returning the valid issues and the dropped count."""
    issues: List[Issue] = []
    dropped = 0
    for position, raw in enumerate(raw_issues or []):
        try:
            issues.append(parse_issue(raw, position))
        except ValueError:
            dropped += 1
    return issues, dropped
