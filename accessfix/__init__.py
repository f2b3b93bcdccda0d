"""
AccessFix: accessibility remediation orchestration for EPUB and PDF documents

AccessFix turns the findings of one or more audit engines into a remediation
plan and carries it through to verified fixes:
- Classifies issue codes into auto-fixable, quick-fix and manual tiers
- Compiles deduplicated, priority-ordered plans with tally conservation checks
- Runs code-grouped auto-fix handlers against the document
- Re-audits the result and reports what was resolved, what remains and what regressed

Usage:
    from accessfix import RemediationPipeline

    # Or use CLI:
    $ accessfix run book.epub --tenant acme
"""

__version__ = "0.3.0"

# Core functionality
from .config import get_settings
from .logging import get_logger

# Main pipeline class for programmatic use
from .orchestrator.pipeline import RemediationPipeline

__all__ = ["RemediationPipeline", "get_settings", "get_logger", "__version__"]
