"""User interface contract consumed by the synchronization engine.

The engine never prints or prompts directly; everything user-facing goes
through an object implementing UserInterface.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from packsync.core.options import OptionGroup


class UserInterface(Protocol):
    """Callbacks the engine drives during a run."""

    def report_progress(self, message: str, completed: int | None = None, total: int | None = None) -> None:
        """Report a status message, optionally with a completion count."""
        ...

    def present_option_groups(self, groups: list[OptionGroup]) -> dict[str, bool] | None:
        """Ask for optional-group selections.

        Blocks until the user decides. Returns a map of group name to
        selection, or None if the dialog was cancelled or cannot be shown.
        """
        ...

    def report_fatal_error(self, error: BaseException) -> None:
        """Report an error that aborted the run."""
        ...

    def report_recoverable_error(self, error: BaseException, file_id: str | None = None) -> None:
        """Report a per-file error; the run continues."""
        ...
