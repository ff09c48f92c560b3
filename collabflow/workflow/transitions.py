"""Transition resolution over the workflow graph.

Completing a skill state may advance a work item (a completion effect) and
then picks the next state from the node's ordered transitions. Routing nodes
are never "completed"; they are walked by `resolve_to_skill_state`, after
their item-selection hook has run, until an actionable state is reached.
"""

from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass
from types import MappingProxyType

from collabflow.constants import MAX_ROUTING_HOPS
from collabflow.logging import get_logger
from collabflow.workflow.errors import InvalidTransitionError, RoutingLoopError, TaskGraphError
from collabflow.workflow.graph import (
    WORKFLOW_STATES,
    Condition,
    ConditionType,
    StateId,
    StateNode,
    parse_state,
    phase_for_state,
)
from collabflow.workflow.lifecycle import find_next_pending_item, update_item_status
from collabflow.workflow.models import ItemStatus, ItemType, PipelineMode, SessionState, SessionType, WorkItem
from collabflow.workflow.task_graph import sync_task_graph

_logger = get_logger(__name__)

ALL_ITEM_TYPES = frozenset(ItemType)
ROUGH_DRAFT_ITEM_TYPES = frozenset({ItemType.CODE, ItemType.BUGFIX})


@dataclass(frozen=True)
class CompletionEffect:
    """Work item advancement applied when a skill state completes.

    `requires` is the status an item must have to be picked by defensive
    inference; `steps` are applied in order, each one validated.
    """

    requires: ItemStatus
    steps: tuple[ItemStatus, ...]
    item_types: frozenset[ItemType] = ALL_ITEM_TYPES
    next_item: bool = False


def _effect(
    requires: ItemStatus,
    *steps: ItemStatus,
    types: Iterable[ItemType] = ALL_ITEM_TYPES,
    next_item: bool = False,
) -> CompletionEffect:
    return CompletionEffect(requires=requires, steps=steps, item_types=frozenset(types), next_item=next_item)


# (state, pipeline) entries win over (state, None)
COMPLETION_EFFECTS: Mapping[tuple[StateId, PipelineMode | None], CompletionEffect] = MappingProxyType(
    {
        (StateId.BRAINSTORM_VALIDATING, None): _effect(ItemStatus.PENDING, ItemStatus.BRAINSTORMED),
        (StateId.ROUGH_DRAFT_BLUEPRINT, None): _effect(
            ItemStatus.BRAINSTORMED, ItemStatus.COMPLETE, types=ROUGH_DRAFT_ITEM_TYPES
        ),
        (StateId.ROUGH_DRAFT_INTERFACE, None): _effect(
            ItemStatus.BRAINSTORMED, ItemStatus.INTERFACE, types=[ItemType.CODE]
        ),
        (StateId.ROUGH_DRAFT_PSEUDOCODE, None): _effect(
            ItemStatus.INTERFACE, ItemStatus.PSEUDOCODE, types=[ItemType.CODE]
        ),
        (StateId.ROUGH_DRAFT_SKELETON, None): _effect(
            ItemStatus.PSEUDOCODE, ItemStatus.SKELETON, types=[ItemType.CODE]
        ),
        (StateId.BUILD_TASK_GRAPH, None): _effect(
            ItemStatus.SKELETON, ItemStatus.COMPLETE, types=[ItemType.CODE], next_item=True
        ),
        (StateId.TASK_PLANNING, None): _effect(ItemStatus.BRAINSTORMED, ItemStatus.COMPLETE, types=[ItemType.TASK]),
        (StateId.SYSTEMATIC_DEBUGGING, PipelineMode.PHASE_BATCHED): _effect(
            ItemStatus.PENDING, ItemStatus.BRAINSTORMED, types=[ItemType.BUGFIX]
        ),
        (StateId.SYSTEMATIC_DEBUGGING, PipelineMode.PER_ITEM): _effect(
            ItemStatus.PENDING, ItemStatus.BRAINSTORMED, ItemStatus.COMPLETE, types=[ItemType.BUGFIX]
        ),
    }
)


def completion_effect(state: StateId, pipeline: PipelineMode) -> CompletionEffect | None:
    return COMPLETION_EFFECTS.get((state, pipeline)) or COMPLETION_EFFECTS.get((state, None))


@dataclass(frozen=True)
class TransitionContext:
    item_type: ItemType | None
    session_type: SessionType
    pipeline: PipelineMode
    items_remaining: bool
    pending_brainstorm_items: bool
    pending_rough_draft_items: bool
    batches_remaining: bool

    @classmethod
    def from_session(cls, session: SessionState) -> "TransitionContext":
        current = session.get_item(session.current_item)
        return cls(
            item_type=current.type if current else None,
            session_type=session.session_type,
            pipeline=session.pipeline,
            items_remaining=session.current_item is not None,
            pending_brainstorm_items=any(w.status == ItemStatus.PENDING for w in session.work_items),
            pending_rough_draft_items=any(_needs_rough_draft(w) for w in session.work_items),
            batches_remaining=bool(session.pending_tasks),
        )


def _needs_rough_draft(item: WorkItem) -> bool:
    return item.type in ROUGH_DRAFT_ITEM_TYPES and item.status == ItemStatus.BRAINSTORMED


def evaluate_condition(condition: Condition | None, ctx: TransitionContext) -> bool:
    if condition is None:
        return True
    match condition.type:
        case ConditionType.ITEM_TYPE:
            return ctx.item_type is not None and ctx.item_type == condition.value
        case ConditionType.SESSION_TYPE:
            return ctx.session_type == condition.value
        case ConditionType.PIPELINE:
            return ctx.pipeline == condition.value
        case ConditionType.ITEMS_REMAINING:
            return ctx.items_remaining
        case ConditionType.NO_ITEMS_REMAINING:
            return not ctx.items_remaining
        case ConditionType.PENDING_BRAINSTORM_ITEMS:
            return ctx.pending_brainstorm_items
        case ConditionType.NO_PENDING_BRAINSTORM_ITEMS:
            return not ctx.pending_brainstorm_items
        case ConditionType.PENDING_ROUGH_DRAFT_ITEMS:
            return ctx.pending_rough_draft_items
        case ConditionType.NO_PENDING_ROUGH_DRAFT_ITEMS:
            return not ctx.pending_rough_draft_items
        case ConditionType.BATCHES_REMAINING:
            return ctx.batches_remaining
        case ConditionType.NO_BATCHES_REMAINING:
            return not ctx.batches_remaining
    raise ValueError(f"Unhandled condition type: {condition.type}")


def next_transition(node: StateNode, ctx: TransitionContext) -> StateId | None:
    for transition in node.transitions:
        if evaluate_condition(transition.condition, ctx):
            return transition.to
    return None


def infer_current_item(state: StateId, session: SessionState) -> WorkItem | None:
    """Guess the item a completed state acted on when current_item is unset."""
    effect = completion_effect(state, session.pipeline)
    if effect is None:
        return None
    return next(
        (w for w in session.work_items if w.status == effect.requires and w.type in effect.item_types),
        None,
    )


def _apply_effect(state: StateId, effect: CompletionEffect, session: SessionState) -> WorkItem | None:
    item = session.get_item(session.current_item)
    if item is None:
        if session.current_item is not None:
            _logger.warning("Current item %s not in work items, inferring", session.current_item)
        item = infer_current_item(state, session)
        if item is None:
            _logger.warning("No work item matches completion of %s, nothing updated", state)
            return None
        _logger.info("Inferred item %d for %s", item.number, state)

    if item.type not in effect.item_types:
        raise InvalidTransitionError(
            item.number, item.status, effect.steps[-1], f"{state} does not apply to {item.type} items"
        )

    updated = item
    for status in effect.steps:
        updated = update_item_status(updated, status, session.pipeline)
    session.replace_item(updated)
    _logger.info("Item %d: %s -> %s", item.number, item.status, updated.status)
    return updated


def _enter_next_item(session: SessionState) -> StateId | None:
    nxt = find_next_pending_item(session.work_items)
    session.current_item = nxt.number if nxt else None
    router = WORKFLOW_STATES[StateId.WORK_ITEM_ROUTER]
    return next_transition(router, TransitionContext.from_session(session))


def get_next_state(completed_state_id: str, session: SessionState) -> StateId | None:
    """Apply the completion effect of `completed_state_id` and return the next state.

    Returns None for routing nodes, for unknown state ids, and when the
    state's effect found no item to act on. Mutates `session` in place.
    """
    state = parse_state(completed_state_id)
    if state is None:
        _logger.debug("Ignoring completion of unknown state %s", completed_state_id)
        return None
    node = WORKFLOW_STATES[state]
    if node.is_routing:
        return None

    effect = completion_effect(state, session.pipeline)
    if effect is not None:
        item = _apply_effect(state, effect, session)
        if item is None:
            return None
        if item.status == ItemStatus.COMPLETE:
            if effect.next_item:
                return _enter_next_item(session)
            session.current_item = None
        else:
            session.current_item = item.number

    return next_transition(node, TransitionContext.from_session(session))


def _first(items: Iterable[WorkItem], predicate: Callable[[WorkItem], bool]) -> WorkItem | None:
    return next((w for w in items if predicate(w)), None)


ROUTER_ITEM_SELECTORS: Mapping[StateId, Callable[[list[WorkItem]], WorkItem | None]] = MappingProxyType(
    {
        StateId.WORK_ITEM_ROUTER: find_next_pending_item,
        StateId.BRAINSTORM_ITEM_ROUTER: lambda items: _first(items, lambda w: w.status == ItemStatus.PENDING),
        StateId.ROUGH_DRAFT_ITEM_ROUTER: lambda items: _first(items, _needs_rough_draft),
    }
)


def _enter_router(state: StateId, session: SessionState) -> None:
    selector = ROUTER_ITEM_SELECTORS.get(state)
    if selector is not None:
        item = selector(session.work_items)
        session.current_item = item.number if item else None

    if state == StateId.BATCH_ROUTER and not session.batches:
        try:
            sync_task_graph(session)
        except TaskGraphError as e:
            _logger.warning("Task sync skipped: %s", e)


def resolve_to_skill_state(
    state_id: str,
    session: SessionState,
    max_hops: int = MAX_ROUTING_HOPS,
) -> tuple[StateId, str | None]:
    """Walk routing nodes from `state_id` until a state with a skill is reached.

    A routing node with no matching transition (such as `done`) ends the
    walk with a None skill.
    """
    state = StateId(state_id)
    for _ in range(max_hops + 1):
        node = WORKFLOW_STATES[state]
        if not node.is_routing:
            return state, node.skill
        _enter_router(state, session)
        nxt = next_transition(node, TransitionContext.from_session(session))
        if nxt is None:
            return state, None
        state = nxt
    raise RoutingLoopError(str(state_id), max_hops)


@dataclass(frozen=True)
class Advance:
    completed: str
    state: StateId | None
    skill: str | None
    updated_item: WorkItem | None = None

    @property
    def advanced(self) -> bool:
        return self.state is not None


def advance_workflow(
    completed_state_id: str,
    session: SessionState,
    max_hops: int = MAX_ROUTING_HOPS,
) -> Advance:
    before = {w.number: w.status for w in session.work_items}
    nxt = get_next_state(completed_state_id, session)
    updated = next((w for w in session.work_items if before.get(w.number) != w.status), None)
    if nxt is None:
        return Advance(completed=completed_state_id, state=None, skill=None, updated_item=updated)

    state, skill = resolve_to_skill_state(nxt, session, max_hops)
    session.state = state.value
    session.phase = phase_for_state(state)
    _logger.info("Advanced %s -> %s (skill=%s)", completed_state_id, state, skill)
    return Advance(completed=completed_state_id, state=state, skill=skill, updated_item=updated)
