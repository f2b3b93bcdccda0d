"""Reference document model with handlers for document-level metadata fixes.

``MetadataDocument`` carries the package-level properties that most
auto-fixable defects are about (language, title, creator, XMP and schema.org
accessibility metadata). Format-specific codecs for real EPUB or PDF files
load into the same object; the JSON codec here is the one used for stored
metadata snapshots and tests.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import PurePosixPath
from typing import Any, Dict, List, Literal, Mapping, Optional

from dataclasses_json import DataClassJsonMixin

from ..config import get_settings
from .base import ModificationResult
from .handlers import HandlerRegistry

DocumentFormat = Literal['epub', 'pdf']

DEFAULT_CREATOR = 'AccessFix'

# AUTO_FIXABLE codes whose fix edits document content rather than metadata
INTENTIONALLY_UNHANDLED = frozenset({
    'OPF-014',
    'OPF-014b',
    'EPUB-NAV-001',
    'EPUB-SEM-002',
    'EPUB-STRUCT-003',
    'EPUB-STRUCT-004',
    'EPUB-FIG-001',
    'PDF-EMPTY-HEADING',
    'PDF-REDUNDANT-TAG',
})


@dataclass(slots=True)
class MetadataDocument(DataClassJsonMixin):
    """Mutable document-level properties of an EPUB or PDF."""

    format: DocumentFormat
    title: Optional[str] = None
    language: Optional[str] = None
    creator: Optional[str] = None
    accessibility: Dict[str, Any] = field(default_factory=dict)
    xmp: Dict[str, str] = field(default_factory=dict)
    # content document -> its html lang attribute
    content_languages: Dict[str, Optional[str]] = field(default_factory=dict)


class MetadataJsonCodec:
    """Stores a MetadataDocument as UTF-8 JSON."""

    def load(self, data: bytes) -> MetadataDocument:
        return MetadataDocument.from_json(data.decode('utf-8'))

    def dump(self, artifact: MetadataDocument) -> bytes:
        return artifact.to_json(indent=2, sort_keys=True).encode('utf-8')


def _already(prop: str, value: Any) -> ModificationResult:
    return ModificationResult(
        success=False,
        description=f"{prop} already exists",
        before=str(value),
        after=str(value),
    )


def _title_from_file_name(file_name: str) -> Optional[str]:
    stem = PurePosixPath(file_name).stem if file_name else ''
    title = stem.replace('_', ' ').replace('-', ' ').strip()
    return title.title() if title else None


# Handlers

def add_language(doc: MetadataDocument, options: Mapping[str, Any]) -> List[ModificationResult]:
    """Declare the primary language of the publication."""
    if doc.language:
        return [_already('Language declaration', doc.language)]
    language = options.get('language') or get_settings().default_language
    doc.language = language
    return [ModificationResult(True, f"Added language declaration '{language}'", None, language)]


def add_content_languages(doc: MetadataDocument, options: Mapping[str, Any]) -> List[ModificationResult]:
    """Give every content document without one a lang attribute."""
    language = doc.language or options.get('language') or get_settings().default_language
    missing = [name for name, lang in doc.content_languages.items() if not lang]
    if not missing:
        return [ModificationResult(False, "Lang attributes already exist on all content documents")]

    results = []
    for name in missing:
        doc.content_languages[name] = language
        results.append(ModificationResult(True, f"Added lang='{language}' to {name}", None, language))
    return results


def add_title(doc: MetadataDocument, options: Mapping[str, Any]) -> List[ModificationResult]:
    if doc.title:
        return [_already('Document title', doc.title)]
    title = options.get('title') or _title_from_file_name(options.get('file_name', ''))
    if not title:
        return [ModificationResult(False, "No title could be derived for the document")]
    doc.title = title
    return [ModificationResult(True, f"Added document title '{title}'", None, title)]


def add_creator(doc: MetadataDocument, options: Mapping[str, Any]) -> List[ModificationResult]:
    if doc.creator:
        return [_already('Creator', doc.creator)]
    creator = options.get('creator') or DEFAULT_CREATOR
    doc.creator = creator
    return [ModificationResult(True, f"Added creator '{creator}'", None, creator)]


# XMP entries whose value is prescribed, not just required
_XMP_FIXED_VALUES = frozenset({'pdfuaid:part'})


def add_xmp_metadata(doc: MetadataDocument, options: Mapping[str, Any]) -> List[ModificationResult]:
    """Add the XMP entries a PDF/UA document must carry."""
    wanted = {
        'dc:title': doc.title or options.get('title') or '',
        'pdfuaid:part': '1',
    }
    results = []
    for key, value in wanted.items():
        current = doc.xmp.get(key)
        if current and (key not in _XMP_FIXED_VALUES or current == value):
            continue
        if not value:
            results.append(ModificationResult(False, f"No value available for XMP {key}"))
            continue
        doc.xmp[key] = value
        verb = "Corrected" if current else "Added"
        results.append(ModificationResult(True, f"{verb} XMP {key}", current, value))
    return results or [_already('XMP metadata', ', '.join(sorted(doc.xmp)))]


def _accessibility_handler(prop: str, default: Any):
    def handler(doc: MetadataDocument, options: Mapping[str, Any]) -> List[ModificationResult]:
        if doc.accessibility.get(prop):
            return [_already(f"schema:{prop}", doc.accessibility[prop])]
        value = options.get(prop, default)
        if not value:
            return [ModificationResult(False, f"schema:{prop} requires a value from the reviewer")]
        doc.accessibility[prop] = value
        return [ModificationResult(True, f"Added schema:{prop}", None, str(value))]

    handler.__name__ = f"add_{prop}"
    return handler


add_access_mode = _accessibility_handler('accessMode', ['textual'])
add_accessibility_feature = _accessibility_handler(
    'accessibilityFeature', ['structuralNavigation', 'readingOrder']
)
add_accessibility_hazard = _accessibility_handler('accessibilityHazard', ['none'])
# A summary has to describe the actual publication, so there is no default
add_accessibility_summary = _accessibility_handler('accessibilitySummary', None)


# Probes

def has_language(doc: MetadataDocument) -> bool:
    return bool(doc.language)


def has_content_languages(doc: MetadataDocument) -> bool:
    return all(doc.content_languages.values())


def has_title(doc: MetadataDocument) -> bool:
    return bool(doc.title)


def has_creator(doc: MetadataDocument) -> bool:
    return bool(doc.creator)


def has_xmp_metadata(doc: MetadataDocument) -> bool:
    return bool(doc.xmp.get('dc:title')) and doc.xmp.get('pdfuaid:part') == '1'


def default_registry() -> HandlerRegistry:
    """Registry with the metadata handlers this package ships."""
    registry = HandlerRegistry()

    for code in ('EPUB-META-001', 'PDF-NO-LANGUAGE', 'MATTERHORN-11-001'):
        registry.register(code, add_language, has_language)
    registry.register('EPUB-SEM-001', add_content_languages, has_content_languages)
    for code in ('PDF-NO-TITLE', 'WCAG-2.4.2'):
        registry.register(code, add_title, has_title)
    registry.register('PDF-NO-CREATOR', add_creator, has_creator)
    for code in ('PDF-NO-METADATA', 'MATTERHORN-07-001'):
        registry.register(code, add_xmp_metadata, has_xmp_metadata)

    # Guided fixes; applied with reviewer-supplied options
    registry.register('EPUB-META-004', add_access_mode)
    registry.register('METADATA-ACCESSMODE', add_access_mode)
    registry.register('EPUB-META-002', add_accessibility_feature)
    registry.register('METADATA-ACCESSIBILITYFEATURE', add_accessibility_feature)
    registry.register('METADATA-ACCESSIBILITYHAZARD', add_accessibility_hazard)
    registry.register('EPUB-META-003', add_accessibility_summary)
    registry.register('METADATA-ACCESSIBILITYSUMMARY', add_accessibility_summary)

    return registry
