"""Adapters for external systems integration."""

from .audit_cli import CommandAuditRunner
from .base import ArtifactCodec, ArtifactStorage, AuditRunner, Handler, ModificationResult, Probe
from .handlers import CoverageReport, HandlerRegistry, assert_handler_coverage, check_handler_coverage
from .metadata import INTENTIONALLY_UNHANDLED, MetadataDocument, MetadataJsonCodec, default_registry
from .storage import LocalArtifactStorage

__all__ = [
    "CommandAuditRunner",
    "ArtifactCodec",
    "ArtifactStorage",
    "AuditRunner",
    "Handler",
    "ModificationResult",
    "Probe",
    "CoverageReport",
    "HandlerRegistry",
    "assert_handler_coverage",
    "check_handler_coverage",
    "INTENTIONALLY_UNHANDLED",
    "MetadataDocument",
    "MetadataJsonCodec",
    "default_registry",
    "LocalArtifactStorage",
]
