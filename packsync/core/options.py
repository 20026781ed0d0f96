"""Optional component selection.

Linked descriptors may declare an optional group. When a group appears
that has no recorded selection, every optional group is presented to the
user before any download starts, and the returned selections are applied
to the tasks of the run.
"""

from __future__ import annotations

from dataclasses import dataclass

import structlog

from packsync.core.errors import OptionSelectionCancelled, SyncError
from packsync.core.fetcher import DescriptorFetcher
from packsync.core.integrity import IntegrityError
from packsync.core.reconcile import ReconcilePlan
from packsync.core.tasks import DownloadTask, LinkedSource
from packsync.core.ui import UserInterface

logger = structlog.get_logger()


@dataclass
class OptionGroup:
    """A named, user-toggleable inclusion flag.

    Attributes:
        name: Group name (the linked descriptor name)
        description: Human-readable description
        default: Selection suggested by the pack
        selected: Current selection (recorded, else default)
        file_ids: Identifiers of the files in the group
    """

    name: str
    description: str
    default: bool
    selected: bool
    file_ids: list[str]


def collect_option_groups(tasks: list[DownloadTask]) -> list[OptionGroup]:
    """Group optional tasks by name, in index order.

    Tasks must have their linked descriptors resolved.
    """
    groups: dict[str, OptionGroup] = {}
    for task in tasks:
        descriptor = task.descriptor
        option = descriptor.option if descriptor is not None else None
        if descriptor is None or option is None or not option.optional:
            continue
        group = groups.get(descriptor.name)
        if group is None:
            group = OptionGroup(
                name=descriptor.name,
                description=option.description,
                default=option.default,
                selected=task.option_value,
                file_ids=[],
            )
            groups[descriptor.name] = group
        group.file_ids.append(task.file_id)
    return list(groups.values())


def apply_selections(tasks: list[DownloadTask], selections: dict[str, bool]) -> None:
    """Set each optional task's selection from its group's choice."""
    for task in tasks:
        group = task.option_group
        if group is not None and group in selections:
            task.selection = bool(selections[group])


class OptionCoordinator:
    """Requests optional-group decisions before downloads proceed.

    Args:
        ui: User interface used to present the groups
        fetcher: Fetcher used to resolve descriptors of skipped files
    """

    def __init__(self, ui: UserInterface, fetcher: DescriptorFetcher):
        self.ui = ui
        self.fetcher = fetcher

    def coordinate(self, plan: ReconcilePlan, force: bool = False) -> bool:
        """Present option groups if needed and apply the selections.

        Args:
            plan: Reconciliation plan, updated in place
            force: Present all groups even when none is new

        Returns:
            True if groups were presented

        Raises:
            OptionSelectionCancelled: If the user interface returned no selection
        """
        if not (plan.optional_set_changed or force):
            return False

        self._resolve_skipped_optionals(plan)
        groups = collect_option_groups(plan.active)
        if not groups:
            return False

        logger.info("options_presented", groups=len(groups), forced=force)
        selections = self.ui.present_option_groups(groups)
        if selections is None:
            raise OptionSelectionCancelled("Optional component selection was cancelled")

        apply_selections(plan.active, selections)
        self._reschedule(plan)
        return True

    def _resolve_skipped_optionals(self, plan: ReconcilePlan) -> None:
        """Fetch descriptors of skipped optional files so they can be shown."""
        for task in list(plan.to_skip):
            if not isinstance(task.source, LinkedSource) or task.source.descriptor is not None:
                continue
            if task.record is None or not task.record.is_optional:
                continue
            try:
                task.resolve(self.fetcher)
            except (SyncError, IntegrityError) as e:
                logger.warning("linked_descriptor_failed", file_id=task.file_id, error=str(e))
                task.error = e
                plan.to_skip.remove(task)
                plan.failed.append(task)

    @staticmethod
    def _reschedule(plan: ReconcilePlan) -> None:
        """Move skipped optional files whose selection flipped into the fetch set.

        Deselected files with a cached copy need deleting; selected files
        without one need downloading.
        """
        for task in list(plan.to_skip):
            record = task.record
            if not task.is_optional or record is None:
                continue
            deselect = not task.option_value and record.cached_location is not None
            reselect = task.option_value and record.cached_location is None
            if deselect or reselect:
                plan.to_skip.remove(task)
                plan.to_fetch.append(task)
                logger.debug("option_rescheduled", file_id=task.file_id, selected=task.option_value)
