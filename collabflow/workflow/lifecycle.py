from collections.abc import Iterable
from dataclasses import replace

from collabflow.workflow.errors import InvalidTransitionError
from collabflow.workflow.models import ItemStatus, ItemType, PipelineMode, WorkItem

PHASE_BATCHED_ORDER: tuple[ItemStatus, ...] = (
    ItemStatus.PENDING,
    ItemStatus.BRAINSTORMED,
    ItemStatus.COMPLETE,
)

PER_ITEM_ORDER: tuple[ItemStatus, ...] = (
    ItemStatus.PENDING,
    ItemStatus.BRAINSTORMED,
    ItemStatus.INTERFACE,
    ItemStatus.PSEUDOCODE,
    ItemStatus.SKELETON,
    ItemStatus.COMPLETE,
)

ROUGH_DRAFT_STATUSES = frozenset({ItemStatus.INTERFACE, ItemStatus.PSEUDOCODE, ItemStatus.SKELETON})

LEGACY_STATUS_MAP = {ItemStatus.DOCUMENTED: ItemStatus.BRAINSTORMED}


def status_order(item: WorkItem, pipeline: PipelineMode = PipelineMode.PHASE_BATCHED) -> tuple[ItemStatus, ...]:
    # Only code items get the staged rough-draft pipeline; task and bugfix are always 2-hop
    if pipeline == PipelineMode.PER_ITEM and item.type == ItemType.CODE:
        return PER_ITEM_ORDER
    return PHASE_BATCHED_ORDER


def is_terminal(item: WorkItem) -> bool:
    return item.status == ItemStatus.COMPLETE


def available_statuses(item: WorkItem, pipeline: PipelineMode = PipelineMode.PHASE_BATCHED) -> list[ItemStatus]:
    order = status_order(item, pipeline)
    if item.status not in order or is_terminal(item):
        return []
    return [order[order.index(item.status) + 1]]


def can_transition(item: WorkItem, new_status: ItemStatus, pipeline: PipelineMode = PipelineMode.PHASE_BATCHED) -> bool:
    return new_status in available_statuses(item, pipeline)


def update_item_status(
    item: WorkItem,
    new_status: ItemStatus | str,
    pipeline: PipelineMode = PipelineMode.PHASE_BATCHED,
) -> WorkItem:
    """Return a copy of `item` advanced to `new_status`.

    Only the immediate successor in the item's ordering is legal; `complete`
    has no successors. The argument is never mutated.
    """
    try:
        target = ItemStatus(new_status)
    except ValueError:
        raise InvalidTransitionError(item.number, item.status, str(new_status), "unknown status") from None

    if is_terminal(item):
        raise InvalidTransitionError(item.number, item.status, target, "item is already complete")

    order = status_order(item, pipeline)
    if item.status not in order:
        raise InvalidTransitionError(
            item.number, item.status, target, f"status not part of the {pipeline} pipeline for {item.type} items"
        )
    if not can_transition(item, target, pipeline):
        expected = order[order.index(item.status) + 1]
        raise InvalidTransitionError(item.number, item.status, target, f"expected '{expected}'")

    return replace(item, status=target)


def find_next_pending_item(items: Iterable[WorkItem]) -> WorkItem | None:
    return next((item for item in items if item.status != ItemStatus.COMPLETE), None)


def _migrate_status(item: WorkItem, pipeline: PipelineMode) -> ItemStatus:
    status = LEGACY_STATUS_MAP.get(item.status, item.status)
    if status in ROUGH_DRAFT_STATUSES and status_order(item, pipeline) is PHASE_BATCHED_ORDER:
        return ItemStatus.COMPLETE
    return status


def migrate_work_items(
    items: Iterable[WorkItem],
    pipeline: PipelineMode = PipelineMode.PHASE_BATCHED,
) -> list[WorkItem]:
    """Rewrite legacy statuses for the given pipeline.

    `documented` becomes `brainstormed`. Rough-draft stage statuses collapse
    to `complete` wherever the item's ordering has no such stages. Idempotent.
    """
    migrated = []
    for item in items:
        status = _migrate_status(item, pipeline)
        migrated.append(item if status == item.status else replace(item, status=status))
    return migrated
