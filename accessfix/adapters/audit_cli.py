"""Audit runner that shells out to an external audit engine."""

import json
import shlex
import subprocess
import tempfile
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Union

import anyio
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from ..config import get_settings
from ..errors import AccessFixError
from ..logging import get_logger

logger = get_logger(__name__)

# Keys under which engines nest their issue lists
_ISSUE_LIST_KEYS = ('combinedIssues', 'issues', 'violations')


class AuditCommandError(AccessFixError):
    """The audit command failed or produced unreadable output."""


def extract_issue_list(payload: Any) -> List[Dict[str, Any]]:
    """Pull the raw issue list out of an engine's JSON report."""
    if isinstance(payload, list):
        return payload
    if isinstance(payload, dict):
        for key in _ISSUE_LIST_KEYS:
            if isinstance(payload.get(key), list):
                return payload[key]
    raise AuditCommandError("Audit report contains no issue list")


class CommandAuditRunner:
    """Runs ``<command> <file>`` and reads a JSON issue report from stdout.

    The artifact is written to a temporary file named like the original so
    engines that dispatch on the extension see the right one.
    """

    def __init__(
        self,
        command: Optional[Union[str, Sequence[str]]] = None,
        timeout: Optional[int] = None,
    ):
        settings = get_settings()
        command = command or settings.audit_command
        if not command:
            raise ValueError("No audit command configured (set AUDIT_COMMAND)")
        self.command: List[str] = shlex.split(command) if isinstance(command, str) else list(command)
        self.timeout = timeout or settings.audit_timeout

    @retry(
        retry=retry_if_exception_type(AuditCommandError),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=10),
        reraise=True
    )
    async def run_audit(self, artifact: bytes, file_name: str) -> List[Dict[str, Any]]:
        """Audit ``artifact`` and return the engine's raw issues."""
        logger.info("Running audit command", cmd=" ".join(self.command), file_name=file_name)

        result = await anyio.to_thread.run_sync(self._run_subprocess, artifact, file_name)

        if result.returncode != 0:
            error_msg = result.stderr[-1000:] or result.stdout[-1000:]
            raise AuditCommandError(
                f"Audit command failed (return code {result.returncode}): {error_msg}"
            )

        try:
            payload = json.loads(result.stdout)
        except json.JSONDecodeError as e:
            raise AuditCommandError(f"Audit command printed invalid JSON: {e}") from e

        issues = extract_issue_list(payload)
        logger.info("Audit completed", file_name=file_name, issues=len(issues))
        return issues

    def _run_subprocess(self, artifact: bytes, file_name: str) -> subprocess.CompletedProcess:
        """Run the audit command against a temporary copy of the artifact."""
        with tempfile.TemporaryDirectory(prefix="accessfix_audit_") as tmp_dir:
            path = Path(tmp_dir) / (Path(file_name).name or "document")
            path.write_bytes(artifact)
            try:
                return subprocess.run(
                    [*self.command, str(path)],
                    capture_output=True,
                    text=True,
                    timeout=self.timeout,
                )
            except subprocess.TimeoutExpired as e:
                raise AuditCommandError(f"Audit command timed out after {self.timeout}s") from e

    async def health_check(self) -> bool:
        """Check that the audit command can be started."""
        try:
            result = await anyio.to_thread.run_sync(
                lambda: subprocess.run(
                    [self.command[0], "--help"], capture_output=True, text=True, timeout=10
                )
            )
            return result.returncode == 0
        except (OSError, subprocess.TimeoutExpired) as e:
            logger.error("Audit command health check failed", error=str(e))
            return False
