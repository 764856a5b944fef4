from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, Generic, List, Optional, Sequence, TypeVar

import structlog
from sqlalchemy.engine import Engine

from tancms import repo
from tancms.errors import ValidationError
from tancms.models import BulkAction, ContentStatus

logger = structlog.get_logger(__name__)

T = TypeVar("T")

DEFAULT_ACTIONS: List[BulkAction] = [
    BulkAction(id="publish", label="Publish"),
    BulkAction(id="draft", label="Set to Draft"),
    BulkAction(id="schedule", label="Schedule"),
    BulkAction(
        id="archive",
        label="Archive",
        requires_confirmation=True,
        confirmation_message="Are you sure you want to archive these items?",
    ),
    BulkAction(
        id="delete",
        label="Delete",
        requires_confirmation=True,
        confirmation_message="Are you sure you want to delete these items? This action cannot be undone.",
    ),
]

_STATUS_FOR_ACTION: Dict[str, str] = {
    "publish": ContentStatus.PUBLISHED.value,
    "draft": ContentStatus.DRAFT.value,
    "schedule": ContentStatus.SCHEDULED.value,
    "archive": ContentStatus.ARCHIVED.value,
}


def find_action(action_id: str, actions: Sequence[BulkAction] = DEFAULT_ACTIONS) -> BulkAction:
    for action in actions:
        if action.id == action_id:
            return action
    raise ValidationError(message=f"Unknown bulk action: {action_id}", code="bulk.unknown_action")


class BulkOutcome(str, Enum):
    IGNORED = "ignored"
    PENDING_CONFIRMATION = "pending_confirmation"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class BulkActionController(Generic[T]):
    """
    Selection + confirmation state for bulk actions over a list of items.

    Actions flagged `requires_confirmation` are parked until `confirm()`;
    `cancel()` drops the parked action and leaves the selection as it was.
    A successful run clears the selection. A failing run is logged and the
    selection is kept so the user can retry by hand.
    """

    def __init__(
        self,
        on_action: Callable[[str, List[T]], Any],
        actions: Optional[Sequence[BulkAction]] = None,
    ) -> None:
        self.on_action = on_action
        self.actions: List[BulkAction] = list(actions if actions is not None else DEFAULT_ACTIONS)
        self.selected: List[T] = []
        self.pending: Optional[BulkAction] = None
        self.in_flight = False
        self.last_error: Optional[Exception] = None

    @property
    def selected_count(self) -> int:
        return len(self.selected)

    def is_all_selected(self, total_items: int) -> bool:
        return total_items > 0 and self.selected_count == total_items

    def select(self, item: T) -> None:
        if item not in self.selected:
            self.selected.append(item)

    def deselect(self, item: T) -> None:
        if item in self.selected:
            self.selected.remove(item)

    def toggle(self, item: T) -> None:
        if item in self.selected:
            self.deselect(item)
        else:
            self.select(item)

    def select_all(self, items: Sequence[T]) -> None:
        self.selected = list(items)

    def clear_selection(self) -> None:
        self.selected = []

    def request(self, action_id: str) -> BulkOutcome:
        if not self.selected or self.in_flight:
            return BulkOutcome.IGNORED

        action = find_action(action_id, self.actions)
        if action.requires_confirmation:
            self.pending = action
            return BulkOutcome.PENDING_CONFIRMATION

        return self._execute(action)

    def confirm(self) -> BulkOutcome:
        if self.pending is None or self.in_flight:
            return BulkOutcome.IGNORED
        return self._execute(self.pending)

    def cancel(self) -> BulkOutcome:
        self.pending = None
        return BulkOutcome.CANCELLED

    def _execute(self, action: BulkAction) -> BulkOutcome:
        self.in_flight = True
        self.last_error = None
        try:
            self.on_action(action.id, list(self.selected))
        except Exception as e:
            self.last_error = e
            logger.exception("bulk.action_failed", action=action.id, items=len(self.selected), error=str(e))
            return BulkOutcome.FAILED
        else:
            self.clear_selection()
            return BulkOutcome.COMPLETED
        finally:
            self.in_flight = False
            self.pending = None


def run_bulk_action(
    engine: Engine,
    action_id: str,
    entry_ids: Sequence[str],
    scheduled_at: Optional[datetime] = None,
) -> Dict[str, Any]:
    """
    Apply one action to each entry in turn, one transaction per entry.
    The first failure propagates; entries handled before it stay changed.
    """
    action = find_action(action_id)
    processed: List[str] = []

    try:
        for entry_id in entry_ids:
            if action.id == "delete":
                repo.delete_entry(engine, entry_id)
            else:
                repo.set_entry_status(engine, entry_id, _STATUS_FOR_ACTION[action.id], scheduled_at)
            processed.append(entry_id)
    except Exception:
        logger.warning("bulk.partial_failure", action=action.id, processed=len(processed), requested=len(entry_ids))
        raise

    logger.info("bulk.applied", action=action.id, processed=len(processed))
    return {"action": action.id, "processed": processed}
