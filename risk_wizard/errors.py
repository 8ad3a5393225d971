"""
Error taxonomy for the risk assessment wizard.

All errors are local and recoverable: they signal that an action was
requested before its precondition holds, and the presentation layer
decides how to surface them (disabled button, prompt, message).
"""

from __future__ import annotations


class WizardError(RuntimeError):
    """Base class for all wizard errors."""


class AlreadyRunningError(WizardError):
    """A simulator was started while a previous run is still active."""


class StageNotReadyError(WizardError):
    """A forward stage transition was requested before its gate holds."""


class NoModelSelectedError(WizardError):
    """Scoring was requested without a scoring strategy."""


class NotYetReviewedError(WizardError):
    """Recognition was completed before a risk verdict exists."""


class LayoutClosedError(WizardError):
    """The graph layout engine was used after teardown."""
