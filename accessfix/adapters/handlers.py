"""Injectable issue-code -> handler lookup and its coverage check."""

from dataclasses import dataclass, field
from typing import Dict, FrozenSet, Iterable, List, Optional

from ..classification import (
    AUTO_FIXABLE_CODES,
    MANUAL,
    classify,
    is_known_code,
    normalize_issue_code,
)
from ..errors import HandlerCoverageError
from ..logging import get_logger
from .base import Handler, Probe

logger = get_logger(__name__)


class HandlerRegistry:
    """Handlers and verification probes keyed by issue code.

    Built explicitly at startup and passed to the dispatcher and verifier, so
    tests can swap in their own handlers.
    """

    def __init__(self):
        self._handlers: Dict[str, Handler] = {}
        self._probes: Dict[str, Probe] = {}

    def register(self, code: str, handler: Handler, probe: Optional[Probe] = None) -> None:
        if code in self._handlers:
            raise ValueError(f"Handler already registered for {code}")
        self._handlers[code] = handler
        if probe is not None:
            self._probes[code] = probe

    def register_probe(self, code: str, probe: Probe) -> None:
        self._probes[code] = probe

    def get(self, code: str) -> Optional[Handler]:
        """Handler for a code, trying the exact spelling first."""
        return self._handlers.get(code) or self._handlers.get(normalize_issue_code(code))

    def probe(self, code: str) -> Optional[Probe]:
        return self._probes.get(code) or self._probes.get(normalize_issue_code(code))

    def codes(self) -> List[str]:
        return sorted(self._handlers)

    def __contains__(self, code: str) -> bool:
        return self.get(code) is not None

    def __len__(self) -> int:
        return len(self._handlers)


@dataclass(slots=True)
class CoverageReport:
    """Disagreements between the handler registry and the fix tiers."""

    unclassified_handlers: List[str] = field(default_factory=list)
    manual_handlers: List[str] = field(default_factory=list)
    missing_handlers: List[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not (self.unclassified_handlers or self.manual_handlers or self.missing_handlers)

    def problems(self) -> List[str]:
        problems = []
        problems.extend(f"handler registered for unclassified code {code}"
                        for code in self.unclassified_handlers)
        problems.extend(f"handler registered for MANUAL code {code}"
                        for code in self.manual_handlers)
        problems.extend(f"AUTO_FIXABLE code {code} has no handler"
                        for code in self.missing_handlers)
        return problems


def check_handler_coverage(
    registry: HandlerRegistry,
    intentionally_unhandled: Iterable[str] = (),
) -> CoverageReport:
    """Compare registered handlers against the classification tiers.

    Every handler must belong to an AUTO_FIXABLE or QUICK_FIX code, and every
    AUTO_FIXABLE code needs a handler unless listed in
    ``intentionally_unhandled``.
    """
    opted_out: FrozenSet[str] = frozenset(intentionally_unhandled)
    report = CoverageReport()

    for code in registry.codes():
        if not is_known_code(code):
            report.unclassified_handlers.append(code)
        elif classify(code) == MANUAL:
            report.manual_handlers.append(code)

    for code in sorted(AUTO_FIXABLE_CODES):
        if code not in registry and code not in opted_out:
            report.missing_handlers.append(code)

    if not report.ok:
        logger.warning("Handler coverage gaps", problems=report.problems())
    return report


def assert_handler_coverage(
    registry: HandlerRegistry,
    intentionally_unhandled: Iterable[str] = (),
) -> None:
    """Raise HandlerCoverageError if the coverage check finds any problem."""
    report = check_handler_coverage(registry, intentionally_unhandled)
    if not report.ok:
        raise HandlerCoverageError(report.problems())
