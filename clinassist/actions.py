"""Typed executable actions and the executor that applies them.

Actions are built once by :mod:`clinassist.commands`, consumed once here and
never persisted.  Collaborator errors are caught at :meth:`ActionExecutor.execute`
and reported as ``ActionResult(success=False)``.
"""

from __future__ import annotations

import inspect
import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple, Union

import structlog

from clinassist.errors import ActionExecutionFailed
from clinassist.roster import ORDER_CATEGORIES
from clinassist.time_utils import utc_now


logger = structlog.get_logger(__name__)

ORDER_PRIORITIES = ("routine", "urgent", "STAT")

_VERBS = {"order": "create order", "note": "add note", "navigate": "navigate"}


@dataclass(frozen=True)
class OrderAction:
    patient_id: str
    category: str
    sub_type: str
    label: str
    priority: str = "routine"
    instructions: Optional[str] = None
    parameters: Optional[Dict[str, Any]] = None
    kind: str = field(default="order", init=False)


@dataclass(frozen=True)
class NoteAction:
    patient_id: str
    content: str
    note_type: str = "TeamNote"
    is_escalation: bool = False
    kind: str = field(default="note", init=False)


@dataclass(frozen=True)
class NavigateAction:
    route: str
    kind: str = field(default="navigate", init=False)


@dataclass(frozen=True)
class WorkflowAction:
    workflow_id: str
    patient_id: Optional[str] = None
    kind: str = field(default="workflow", init=False)


ExecutableAction = Union[OrderAction, NoteAction, NavigateAction, WorkflowAction]


@dataclass(frozen=True)
class WorkflowBundle:
    workflow_id: str
    title: str
    orders: Tuple[str, ...] = ()

    @property
    def message(self) -> str:
        if not self.orders:
            return f"{self.title} workflow started"
        listed = ", ".join(order.replace("_", " ").upper() for order in self.orders)
        return f"{self.title} initiated ({listed})"


WORKFLOW_BUNDLES: Dict[str, WorkflowBundle] = {
    "fever-workup": WorkflowBundle(
        "fever-workup", "Fever workup", ("cbc", "lft", "rft", "blood_culture", "dengue_ns1")
    ),
    "acs-protocol": WorkflowBundle("acs-protocol", "ACS protocol", ("ecg", "troponin", "cbc", "rft")),
    "discharge-prep": WorkflowBundle("discharge-prep", "Discharge preparation"),
}


@dataclass
class OrderDraft:
    order_id: str
    patient_id: str
    created_at: datetime
    category: str
    sub_type: str
    label: str
    priority: str
    instructions: Optional[str] = None
    payload: Dict[str, Any] = field(default_factory=dict)
    status: str = "draft"

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["created_at"] = self.created_at.isoformat()
        return data


@dataclass
class ActionResult:
    success: bool
    message: str
    data: Optional[Any] = None


MaybeAwaitable = Union[None, Awaitable[None]]


@dataclass
class ClinicalCollaborators:
    """External APIs the executor hands actions to.  Sync or async callables."""

    add_order: Callable[[str, OrderDraft], MaybeAwaitable]
    add_note: Callable[[str, str, bool], MaybeAwaitable]
    go_to: Callable[[str], MaybeAwaitable]


async def _maybe_await(value: Any) -> Any:
    if inspect.isawaitable(value):
        return await value
    return value


def new_order_id() -> str:
    return f"ORD-{uuid.uuid4().hex[:12].upper()}"


class ActionExecutor:
    """Apply one :data:`ExecutableAction` against the collaborators."""

    def __init__(
        self,
        collaborators: ClinicalCollaborators,
        *,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._collaborators = collaborators
        self._clock = clock

    def build_draft(self, action: OrderAction) -> OrderDraft:
        if not action.patient_id:
            raise ActionExecutionFailed("Order has no target patient")
        if action.category not in ORDER_CATEGORIES:
            raise ActionExecutionFailed(f"Unknown order category: {action.category}")
        priority = action.priority if action.priority in ORDER_PRIORITIES else "routine"
        payload: Dict[str, Any] = dict(action.parameters) if action.parameters else {}
        return OrderDraft(
            order_id=new_order_id(),
            patient_id=action.patient_id,
            created_at=self._clock(),
            category=action.category,
            sub_type=action.sub_type,
            label=action.label,
            priority=priority,
            instructions=action.instructions,
            payload=payload,
        )

    async def _execute_order(self, action: OrderAction) -> ActionResult:
        draft = self.build_draft(action)
        await _maybe_await(self._collaborators.add_order(action.patient_id, draft))
        return ActionResult(True, f"Created draft order: {action.label}", draft)

    async def _execute_note(self, action: NoteAction) -> ActionResult:
        content = action.content.strip()
        if not content:
            raise ActionExecutionFailed("Note text is empty")
        await _maybe_await(self._collaborators.add_note(action.patient_id, content, action.is_escalation))
        message = "Escalation note added" if action.is_escalation else "Added note to patient"
        return ActionResult(True, message, {"content": content, "noteType": action.note_type})

    async def _execute_navigate(self, action: NavigateAction) -> ActionResult:
        await _maybe_await(self._collaborators.go_to(action.route))
        return ActionResult(True, f"Navigating to {action.route}")

    @staticmethod
    def _execute_workflow(action: WorkflowAction) -> ActionResult:
        bundle = WORKFLOW_BUNDLES.get(action.workflow_id)
        if bundle is None:
            return ActionResult(False, f"Unknown workflow: {action.workflow_id}")
        data: Dict[str, Any] = {"orders": list(bundle.orders)} if bundle.orders else {}
        return ActionResult(True, bundle.message, data)

    async def execute(self, action: ExecutableAction) -> ActionResult:
        try:
            if isinstance(action, OrderAction):
                result = await self._execute_order(action)
            elif isinstance(action, NoteAction):
                result = await self._execute_note(action)
            elif isinstance(action, NavigateAction):
                result = await self._execute_navigate(action)
            elif isinstance(action, WorkflowAction):
                result = self._execute_workflow(action)
            else:
                return ActionResult(False, "Unknown action type")
        except ActionExecutionFailed as exc:
            logger.warning("action_rejected", kind=getattr(action, "kind", None), reason=str(exc))
            return ActionResult(False, str(exc))
        except Exception as exc:
            logger.error("action_collaborator_failed", kind=action.kind, exc_info=True)
            return ActionResult(False, f"Failed to {_VERBS.get(action.kind, action.kind)}: {exc}")
        logger.info("action_executed", kind=action.kind, success=result.success)
        return result


__all__ = [
    "OrderAction",
    "NoteAction",
    "NavigateAction",
    "WorkflowAction",
    "ExecutableAction",
    "WorkflowBundle",
    "WORKFLOW_BUNDLES",
    "OrderDraft",
    "ActionResult",
    "ClinicalCollaborators",
    "ActionExecutor",
]
