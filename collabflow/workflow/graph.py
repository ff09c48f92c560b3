"""Static workflow state graph.

The graph is a closed table keyed by `StateId`, built once at import and
never mutated. Every state either carries a skill (an actionable step an
agent runs) or is a routing node (skill None) that is resolved immediately
by walking its transitions.
"""

from collections.abc import Mapping
from dataclasses import dataclass
from enum import StrEnum
from types import MappingProxyType

from collabflow.workflow.models import ItemType, PipelineMode, SessionType


class StateId(StrEnum):
    COLLAB_START = "collab-start"
    GATHER_GOALS = "gather-goals"
    VIBE_ACTIVE = "vibe-active"
    CLEAR_PRE_ITEM = "clear-pre-item"
    WORK_ITEM_ROUTER = "work-item-router"
    BRAINSTORM_ITEM_ROUTER = "brainstorm-item-router"
    BRAINSTORM_EXPLORING = "brainstorm-exploring"
    CLEAR_BS1 = "clear-bs1"
    BRAINSTORM_CLARIFYING = "brainstorm-clarifying"
    CLEAR_BS2 = "clear-bs2"
    BRAINSTORM_DESIGNING = "brainstorm-designing"
    CLEAR_BS3 = "clear-bs3"
    BRAINSTORM_VALIDATING = "brainstorm-validating"
    ITEM_TYPE_ROUTER = "item-type-router"
    TASK_PLANNING = "task-planning"
    SYSTEMATIC_DEBUGGING = "systematic-debugging"
    CLEAR_POST_BRAINSTORM = "clear-post-brainstorm"
    ROUGH_DRAFT_INTERFACE = "rough-draft-interface"
    ROUGH_DRAFT_PSEUDOCODE = "rough-draft-pseudocode"
    ROUGH_DRAFT_SKELETON = "rough-draft-skeleton"
    BUILD_TASK_GRAPH = "build-task-graph"
    ROUGH_DRAFT_CONFIRM = "rough-draft-confirm"
    ROUGH_DRAFT_ITEM_ROUTER = "rough-draft-item-router"
    ROUGH_DRAFT_BLUEPRINT = "rough-draft-blueprint"
    CLEAR_POST_ROUGH = "clear-post-rough"
    READY_TO_IMPLEMENT = "ready-to-implement"
    CLEAR_PRE_EXECUTE = "clear-pre-execute"
    BATCH_ROUTER = "batch-router"
    EXECUTE_BATCH = "execute-batch"
    LOG_BATCH_COMPLETE = "log-batch-complete"
    CLEAR_POST_BATCH = "clear-post-batch"
    WORKFLOW_COMPLETE = "workflow-complete"
    CLEANUP = "cleanup"
    DONE = "done"


class ConditionType(StrEnum):
    ITEM_TYPE = "item_type"
    SESSION_TYPE = "session_type"
    PIPELINE = "pipeline"
    ITEMS_REMAINING = "items_remaining"
    NO_ITEMS_REMAINING = "no_items_remaining"
    PENDING_BRAINSTORM_ITEMS = "pending_brainstorm_items"
    NO_PENDING_BRAINSTORM_ITEMS = "no_pending_brainstorm_items"
    PENDING_ROUGH_DRAFT_ITEMS = "pending_rough_draft_items"
    NO_PENDING_ROUGH_DRAFT_ITEMS = "no_pending_rough_draft_items"
    BATCHES_REMAINING = "batches_remaining"
    NO_BATCHES_REMAINING = "no_batches_remaining"


@dataclass(frozen=True)
class Condition:
    type: ConditionType
    value: str | None = None


@dataclass(frozen=True)
class Transition:
    to: StateId
    condition: Condition | None = None


@dataclass(frozen=True)
class StateNode:
    id: StateId
    skill: str | None
    transitions: tuple[Transition, ...] = ()

    @property
    def is_routing(self) -> bool:
        return self.skill is None


CLEAR_SKILL = "collab-clear"


def _go(to: StateId, ctype: ConditionType | None = None, value: str | None = None) -> Transition:
    return Transition(to=to, condition=Condition(ctype, value) if ctype else None)


def _node(state: StateId, skill: str | None, *transitions: Transition) -> StateNode:
    return StateNode(id=state, skill=skill, transitions=tuple(transitions))


S = StateId
C = ConditionType

_NODES = (
    # entry
    _node(S.COLLAB_START, "collab-start", _go(S.GATHER_GOALS)),
    _node(
        S.GATHER_GOALS,
        "gather-session-goals",
        _go(S.VIBE_ACTIVE, C.SESSION_TYPE, SessionType.VIBE),
        _go(S.CLEAR_PRE_ITEM),
    ),
    _node(
        S.VIBE_ACTIVE,
        "vibe-active",
        _go(S.BRAINSTORM_ITEM_ROUTER, C.PENDING_BRAINSTORM_ITEMS),
        _go(S.CLEANUP),
    ),
    _node(
        S.CLEAR_PRE_ITEM,
        CLEAR_SKILL,
        _go(S.WORK_ITEM_ROUTER, C.PIPELINE, PipelineMode.PER_ITEM),
        _go(S.BRAINSTORM_ITEM_ROUTER),
    ),
    # item routers
    _node(
        S.WORK_ITEM_ROUTER,
        None,
        _go(S.BRAINSTORM_EXPLORING, C.ITEM_TYPE, ItemType.CODE),
        _go(S.BRAINSTORM_EXPLORING, C.ITEM_TYPE, ItemType.TASK),
        _go(S.SYSTEMATIC_DEBUGGING, C.ITEM_TYPE, ItemType.BUGFIX),
        _go(S.READY_TO_IMPLEMENT, C.NO_ITEMS_REMAINING),
    ),
    _node(
        S.BRAINSTORM_ITEM_ROUTER,
        None,
        _go(S.SYSTEMATIC_DEBUGGING, C.ITEM_TYPE, ItemType.BUGFIX),
        _go(S.BRAINSTORM_EXPLORING, C.PENDING_BRAINSTORM_ITEMS),
        _go(S.ROUGH_DRAFT_CONFIRM, C.NO_PENDING_BRAINSTORM_ITEMS),
    ),
    # brainstorming
    _node(S.BRAINSTORM_EXPLORING, "brainstorming-exploring", _go(S.CLEAR_BS1)),
    _node(S.CLEAR_BS1, CLEAR_SKILL, _go(S.BRAINSTORM_CLARIFYING)),
    _node(S.BRAINSTORM_CLARIFYING, "brainstorming-clarifying", _go(S.CLEAR_BS2)),
    _node(S.CLEAR_BS2, CLEAR_SKILL, _go(S.BRAINSTORM_DESIGNING)),
    _node(S.BRAINSTORM_DESIGNING, "brainstorming-designing", _go(S.CLEAR_BS3)),
    _node(S.CLEAR_BS3, CLEAR_SKILL, _go(S.BRAINSTORM_VALIDATING)),
    _node(
        S.BRAINSTORM_VALIDATING,
        "brainstorming-validating",
        _go(S.ITEM_TYPE_ROUTER, C.PIPELINE, PipelineMode.PHASE_BATCHED),
        _go(S.ROUGH_DRAFT_INTERFACE, C.ITEM_TYPE, ItemType.CODE),
        _go(S.ITEM_TYPE_ROUTER),
    ),
    _node(
        S.ITEM_TYPE_ROUTER,
        None,
        _go(S.TASK_PLANNING, C.ITEM_TYPE, ItemType.TASK),
        _go(S.CLEAR_POST_BRAINSTORM),
    ),
    _node(S.TASK_PLANNING, "task-planning", _go(S.CLEAR_POST_BRAINSTORM)),
    _node(S.SYSTEMATIC_DEBUGGING, "systematic-debugging", _go(S.CLEAR_POST_BRAINSTORM)),
    _node(
        S.CLEAR_POST_BRAINSTORM,
        CLEAR_SKILL,
        _go(S.WORK_ITEM_ROUTER, C.PIPELINE, PipelineMode.PER_ITEM),
        _go(S.BRAINSTORM_ITEM_ROUTER),
    ),
    # per-item rough draft
    _node(S.ROUGH_DRAFT_INTERFACE, "rough-draft-interface", _go(S.ROUGH_DRAFT_PSEUDOCODE)),
    _node(S.ROUGH_DRAFT_PSEUDOCODE, "rough-draft-pseudocode", _go(S.ROUGH_DRAFT_SKELETON)),
    _node(S.ROUGH_DRAFT_SKELETON, "rough-draft-skeleton", _go(S.BUILD_TASK_GRAPH)),
    _node(S.BUILD_TASK_GRAPH, "build-task-graph", _go(S.WORK_ITEM_ROUTER)),
    # phase-batched rough draft
    _node(S.ROUGH_DRAFT_CONFIRM, "rough-draft-confirm", _go(S.ROUGH_DRAFT_ITEM_ROUTER)),
    _node(
        S.ROUGH_DRAFT_ITEM_ROUTER,
        None,
        _go(S.ROUGH_DRAFT_BLUEPRINT, C.PENDING_ROUGH_DRAFT_ITEMS),
        _go(S.READY_TO_IMPLEMENT, C.NO_PENDING_ROUGH_DRAFT_ITEMS),
    ),
    _node(S.ROUGH_DRAFT_BLUEPRINT, "rough-draft-blueprint", _go(S.CLEAR_POST_ROUGH)),
    _node(S.CLEAR_POST_ROUGH, CLEAR_SKILL, _go(S.ROUGH_DRAFT_ITEM_ROUTER)),
    # execution
    _node(S.READY_TO_IMPLEMENT, "ready-to-implement", _go(S.CLEAR_PRE_EXECUTE)),
    _node(S.CLEAR_PRE_EXECUTE, CLEAR_SKILL, _go(S.BATCH_ROUTER)),
    _node(
        S.BATCH_ROUTER,
        None,
        _go(S.EXECUTE_BATCH, C.BATCHES_REMAINING),
        _go(S.WORKFLOW_COMPLETE, C.NO_BATCHES_REMAINING),
    ),
    _node(S.EXECUTE_BATCH, "executing-plans", _go(S.LOG_BATCH_COMPLETE)),
    _node(S.LOG_BATCH_COMPLETE, None, _go(S.CLEAR_POST_BATCH)),
    _node(S.CLEAR_POST_BATCH, CLEAR_SKILL, _go(S.BATCH_ROUTER)),
    # completion
    _node(S.WORKFLOW_COMPLETE, "finishing-a-development-branch", _go(S.CLEANUP)),
    _node(S.CLEANUP, "collab-cleanup", _go(S.DONE)),
    _node(S.DONE, None),
)


def _build(nodes: tuple[StateNode, ...]) -> Mapping[StateId, StateNode]:
    table = {node.id: node for node in nodes}
    if len(table) != len(nodes):
        raise RuntimeError("Duplicate state in workflow graph")
    missing = set(StateId) - table.keys()
    if missing:
        raise RuntimeError(f"Workflow graph has no node for: {', '.join(sorted(missing))}")
    return MappingProxyType(table)


WORKFLOW_STATES: Mapping[StateId, StateNode] = _build(_NODES)

# First state owning each skill; collab-clear is shared by every clear-* state
SKILL_TO_STATE: Mapping[str, StateId] = MappingProxyType(
    {skill: state for state, skill in reversed([(n.id, n.skill) for n in _NODES if n.skill])}
)

ROUTER_STATES = frozenset(state for state, node in WORKFLOW_STATES.items() if node.is_routing)

STATE_DISPLAY_NAMES: Mapping[StateId, str] = MappingProxyType(
    {
        S.COLLAB_START: "Starting",
        S.GATHER_GOALS: "Gathering Goals",
        S.VIBE_ACTIVE: "Vibing",
        S.BRAINSTORM_EXPLORING: "Exploring",
        S.BRAINSTORM_CLARIFYING: "Clarifying",
        S.BRAINSTORM_DESIGNING: "Designing",
        S.BRAINSTORM_VALIDATING: "Validating",
        S.SYSTEMATIC_DEBUGGING: "Investigating",
        S.TASK_PLANNING: "Planning Task",
        S.ROUGH_DRAFT_INTERFACE: "Defining Interfaces",
        S.ROUGH_DRAFT_PSEUDOCODE: "Writing Pseudocode",
        S.ROUGH_DRAFT_SKELETON: "Building Skeleton",
        S.BUILD_TASK_GRAPH: "Building Tasks",
        S.ROUGH_DRAFT_CONFIRM: "Confirming Rough Draft",
        S.ROUGH_DRAFT_BLUEPRINT: "Writing Blueprint",
        S.READY_TO_IMPLEMENT: "Ready",
        S.EXECUTE_BATCH: "Executing",
        S.LOG_BATCH_COMPLETE: "Logging",
        S.WORKFLOW_COMPLETE: "Finishing",
        S.CLEANUP: "Cleaning Up",
        S.DONE: "Done",
    }
)

_PHASE_OVERRIDES: Mapping[StateId, str] = MappingProxyType(
    {
        S.SYSTEMATIC_DEBUGGING: "brainstorming",
        S.TASK_PLANNING: "brainstorming",
        S.ITEM_TYPE_ROUTER: "brainstorming",
        S.WORK_ITEM_ROUTER: "brainstorming",
        S.ROUGH_DRAFT_CONFIRM: "rough-draft/confirm",
        S.BUILD_TASK_GRAPH: "rough-draft/task-graph",
        S.READY_TO_IMPLEMENT: "implementation",
        S.CLEAR_PRE_EXECUTE: "implementation",
        S.BATCH_ROUTER: "implementation",
        S.EXECUTE_BATCH: "implementation",
        S.LOG_BATCH_COMPLETE: "implementation",
        S.CLEAR_POST_BATCH: "implementation",
        S.WORKFLOW_COMPLETE: "complete",
        S.CLEANUP: "complete",
        S.DONE: "complete",
        S.VIBE_ACTIVE: "vibe",
    }
)


def parse_state(state_id: str) -> StateId | None:
    try:
        return StateId(state_id)
    except ValueError:
        return None


def get_state(state_id: str) -> StateNode | None:
    state = parse_state(state_id)
    return WORKFLOW_STATES[state] if state else None


def skill_for_state(state_id: str) -> str | None:
    node = get_state(state_id)
    return node.skill if node else None


def state_for_skill(skill: str) -> StateId | None:
    return SKILL_TO_STATE.get(skill)


def display_name(state_id: str) -> str:
    state = parse_state(state_id)
    if state is None:
        return state_id
    if state in STATE_DISPLAY_NAMES:
        return STATE_DISPLAY_NAMES[state]
    if state.value.startswith("clear-"):
        return "Context Check"
    if state in ROUTER_STATES:
        return "Routing"
    return state_id


def phase_for_state(state_id: str) -> str:
    state = parse_state(state_id)
    if state is None:
        return "brainstorming"
    if state in _PHASE_OVERRIDES:
        return _PHASE_OVERRIDES[state]
    if state.value.startswith("rough-draft-"):
        return f"rough-draft/{state.value.removeprefix('rough-draft-')}"
    if state == S.CLEAR_POST_ROUGH:
        return "rough-draft/blueprint"
    return "brainstorming"
