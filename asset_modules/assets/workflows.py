"""
Asset Lifecycle Workflow.

State machine for ``Asset.status``.  The machine holds no data: callers
pass the current and target status and receive an allow/deny decision
together with the side effects the caller must carry out.

    AVAILABLE <-> DEPLOYED <-> IN_MAINTENANCE <-> DAMAGED   (any pair)
         \\            |              |              /
          +----------> RETIRED <-----+--------------+
                          |
                          v
                       DISPOSED

RETIRED and DISPOSED are absorbing: nothing leads back to an operational
state.
"""

from dataclasses import dataclass
from enum import Enum
from itertools import permutations

from asset_kernel.exceptions import IllegalTransitionError
from asset_kernel.logging_config import get_logger
from asset_modules.assets.models import AssetStatus

logger = get_logger("modules.assets.workflows")


class SideEffect(Enum):
    """Work a caller must perform alongside a transition."""
    CLOSE_DEPLOYMENT = "close_deployment"
    CLEAR_ASSIGNMENT = "clear_assignment"
    RECORD_RETIREMENT = "record_retirement"
    RECORD_DISPOSAL = "record_disposal"


@dataclass(frozen=True)
class Guard:
    """A condition for a transition."""
    name: str
    description: str


@dataclass(frozen=True)
class Transition:
    """A valid state transition."""
    from_state: AssetStatus
    to_state: AssetStatus
    action: str
    guard: Guard | None = None
    side_effects: tuple[SideEffect, ...] = ()


@dataclass(frozen=True)
class Workflow:
    """A state machine definition."""
    name: str
    description: str
    initial_state: AssetStatus
    states: tuple[AssetStatus, ...]
    transitions: tuple[Transition, ...]

    def find(self, from_state: AssetStatus, to_state: AssetStatus) -> Transition | None:
        for transition in self.transitions:
            if transition.from_state is from_state and transition.to_state is to_state:
                return transition
        return None


@dataclass(frozen=True)
class TransitionDecision:
    allowed: bool
    from_state: AssetStatus
    to_state: AssetStatus
    transition: Transition | None = None
    reason: str | None = None

    @property
    def side_effects(self) -> tuple[SideEffect, ...]:
        return self.transition.side_effects if self.transition else ()


# -----------------------------------------------------------------------------
# Guards
# -----------------------------------------------------------------------------

NO_RETIREMENT_RECORD = Guard(
    name="no_retirement_record",
    description="Asset is not linked to a retirement record",
)

RETIREMENT_RECORDED = Guard(
    name="retirement_recorded",
    description="Asset has a retirement record",
)


# -----------------------------------------------------------------------------
# Transitions
# -----------------------------------------------------------------------------

_OPERATIONAL_ORDER = (
    AssetStatus.AVAILABLE,
    AssetStatus.DEPLOYED,
    AssetStatus.IN_MAINTENANCE,
    AssetStatus.DAMAGED,
)

_ACTIONS = {
    AssetStatus.AVAILABLE: "make_available",
    AssetStatus.DEPLOYED: "deploy",
    AssetStatus.IN_MAINTENANCE: "send_to_maintenance",
    AssetStatus.DAMAGED: "mark_damaged",
}

_OPERATIONAL_TRANSITIONS = tuple(
    Transition(from_state=src, to_state=dst, action=_ACTIONS[dst])
    for src, dst in permutations(_OPERATIONAL_ORDER, 2)
)

_RETIRE_TRANSITIONS = tuple(
    Transition(
        from_state=src,
        to_state=AssetStatus.RETIRED,
        action="retire",
        guard=NO_RETIREMENT_RECORD,
        # Maintenance and damage can leave a deployment row open.
        side_effects=(SideEffect.RECORD_RETIREMENT, SideEffect.CLEAR_ASSIGNMENT, SideEffect.CLOSE_DEPLOYMENT),
    )
    for src in _OPERATIONAL_ORDER
)

_DISPOSE_TRANSITION = Transition(
    from_state=AssetStatus.RETIRED,
    to_state=AssetStatus.DISPOSED,
    action="dispose",
    guard=RETIREMENT_RECORDED,
    side_effects=(SideEffect.RECORD_DISPOSAL,),
)

ASSET_LIFECYCLE = Workflow(
    name="asset_lifecycle",
    description="Operational cycle, retirement and disposal of a capital asset",
    initial_state=AssetStatus.AVAILABLE,
    states=tuple(AssetStatus),
    transitions=_OPERATIONAL_TRANSITIONS + _RETIRE_TRANSITIONS + (_DISPOSE_TRANSITION,),
)


# -----------------------------------------------------------------------------
# Evaluation
# -----------------------------------------------------------------------------


def evaluate_transition(
    current: AssetStatus,
    target: AssetStatus,
    workflow: Workflow = ASSET_LIFECYCLE,
) -> TransitionDecision:
    """Decide whether ``current -> target`` is legal and what it implies."""
    transition = workflow.find(current, target)
    if transition is not None:
        return TransitionDecision(True, current, target, transition)

    if current is target:
        reason = f"Asset is already {current.value}"
    elif current in (AssetStatus.RETIRED, AssetStatus.DISPOSED):
        reason = f"{current.value} is a terminal state"
    else:
        reason = f"No transition from {current.value} to {target.value}"
    return TransitionDecision(False, current, target, None, reason)


def require_transition(
    current: AssetStatus,
    target: AssetStatus,
    asset_id: object | None = None,
) -> TransitionDecision:
    """
    Like ``evaluate_transition`` but raises on denial.

    Raises:
        IllegalTransitionError: The transition is not in the workflow.
    """
    decision = evaluate_transition(current, target)
    if not decision.allowed:
        logger.info(
            "asset_transition_denied",
            extra={
                "asset_id": str(asset_id) if asset_id else None,
                "from_state": current.value,
                "to_state": target.value,
                "reason": decision.reason,
            },
        )
        raise IllegalTransitionError(current.value, target.value, asset_id)
    return decision
