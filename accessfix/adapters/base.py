"""Collaborator interfaces the remediation engine is written against."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Mapping, Optional, Protocol, Union

from dataclasses_json import DataClassJsonMixin

from ..models.issues import Issue


@dataclass(slots=True)
class ModificationResult(DataClassJsonMixin):
    """Outcome of one element touched by a handler."""

    success: bool
    description: str
    before: Optional[str] = None
    after: Optional[str] = None


# handler(artifact, options) -> per-element results
Handler = Callable[[Any, Mapping[str, Any]], List[ModificationResult]]

# probe(artifact) -> True when the defect is gone
Probe = Callable[[Any], bool]


class AuditRunner(Protocol):
    """Runs the full accessibility audit over a document."""

    async def run_audit(self, artifact: bytes, file_name: str) -> List[Union[Issue, Dict[str, Any]]]:
        ...


class ArtifactStorage(Protocol):
    """Reads and writes document artifacts for a job."""

    async def get_artifact(self, job_id: str, file_name: str) -> bytes:
        ...

    async def save_artifact(self, job_id: str, file_name: str, data: bytes) -> str:
        ...


class ArtifactCodec(Protocol):
    """Turns stored bytes into the mutable object handlers operate on."""

    def load(self, data: bytes) -> Any:
        ...

    def dump(self, artifact: Any) -> bytes:
        ...
