"""One stateful assistant session per signed-in operator.

The session owns the conversation tracker, the action executor and the live
transcription extractor, and borrows the model gateway and operator memory
it was handed.  The presentation layer drives it through the public
coroutine methods; nothing here is a module-level singleton.
"""

from __future__ import annotations

import inspect
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, List, Optional, Tuple, Union

import structlog

from clinassist import clinical_ai
from clinassist.actions import (
    ActionExecutor,
    ActionResult,
    ClinicalCollaborators,
    ExecutableAction,
    NavigateAction,
    NoteAction,
    OrderAction,
)
from clinassist.briefing import Briefing, generate_briefing
from clinassist.commands import describe_grammar, parse_command
from clinassist.config import AssistantSettings, get_settings
from clinassist.conversation import ConversationContextTracker
from clinassist.errors import AssistantError, RateLimited
from clinassist.extraction import LiveTranscriptExtractor
from clinassist.gateway import ModelGateway, RateLimitStatus, UsageStats
from clinassist.insights import aggregate
from clinassist.models import Message, OperatorProfile, Role, Suggestion
from clinassist.observability import bind_session_context, clear_session_context
from clinassist.operator_memory import OperatorMemory
from clinassist.palette import INTENT_TOGGLE_DARK_MODE, PaletteCommand, build_commands, search
from clinassist.procedures import get_procedure
from clinassist.prompts import build_system_context
from clinassist.roster import Patient, coerce_roster, find_patient
from clinassist.time_utils import utc_now
from clinassist.vocabulary import condition_keyword


logger = structlog.get_logger(__name__)

HELP_COMMANDS = {"help", "?", "commands"}
NKDA_NOTE = "No known drug allergies (NKDA)"

RosterProvider = Callable[[], Any]


@dataclass(frozen=True)
class OperatorIdentity:
    id: str
    name: str
    contact: str = ""


@dataclass
class SubmitOutcome:
    """What :meth:`AssistantSession.submit` did with the text."""

    action: Optional[ExecutableAction] = None
    result: Optional[ActionResult] = None
    reply: Optional[Message] = None


def _message_id() -> str:
    return uuid.uuid4().hex


def rate_limit_notice(exc: RateLimited) -> str:
    return f"Rate limit reached. Please wait {exc.wait_seconds}s before sending again."


class AssistantSession:
    def __init__(
        self,
        operator: OperatorIdentity,
        *,
        roster_provider: RosterProvider,
        collaborators: ClinicalCollaborators,
        gateway: ModelGateway,
        memory: OperatorMemory,
        settings: Optional[AssistantSettings] = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.operator = operator
        self._roster_provider = roster_provider
        self._gateway = gateway
        self._memory = memory
        self._settings = settings or get_settings()
        self._clock = clock
        self.tracker = ConversationContextTracker(self._settings, clock=clock)
        self.executor = ActionExecutor(collaborators, clock=clock)
        self.extractor = LiveTranscriptExtractor(gateway, self._settings, clock=clock)
        self.profile: Optional[OperatorProfile] = None
        self.roster: List[Patient] = []
        self.focused_patient: Optional[Patient] = None
        self.insights: List[Suggestion] = []
        self.palette_open = False
        self.opened = False
        self.closed = False
        self._in_flight = 0

    # -- lifecycle -------------------------------------------------------

    async def open(self) -> OperatorProfile:
        if self.closed:
            raise AssistantError("Session already closed")
        bind_session_context(operator_id=self.operator.id)
        self.profile = await self._memory.get_or_create(self.operator.id, self.operator.name, self.operator.contact)
        # Patients seen are counted per session, not per install.
        await self._memory.start_new_shift(self.profile)
        await self._gateway.restore_usage()
        await self.refresh_roster()
        self.opened = True
        logger.info("assistant_session_opened", patients=len(self.roster))
        return self.profile

    async def close(self) -> None:
        if self.closed:
            return
        self.extractor.close()
        self.tracker.reset()
        self.palette_open = False
        self.closed = True
        logger.info("assistant_session_closed", in_flight=self._in_flight)
        clear_session_context()

    def _require_open(self) -> OperatorProfile:
        if self.closed:
            raise AssistantError("Session is closed")
        if not self.opened or self.profile is None:
            raise AssistantError("Session has not been opened")
        return self.profile

    @property
    def is_busy(self) -> bool:
        """``True`` while a chat reply is outstanding."""

        return self._in_flight > 0

    async def refresh_roster(self) -> List[Patient]:
        snapshot = self._roster_provider()
        if inspect.isawaitable(snapshot):
            snapshot = await snapshot
        self.roster = coerce_roster(snapshot)
        if self.focused_patient is not None:
            self.focused_patient = find_patient(self.roster, self.focused_patient.id)
        return self.roster

    # -- conversation ----------------------------------------------------

    async def set_focused_patient(self, patient: Union[Patient, str, None]) -> Optional[Patient]:
        profile = self._require_open()
        if isinstance(patient, str):
            patient = find_patient(self.roster, patient)
        self.focused_patient = patient
        self.tracker.set_focused_patient(patient)
        if patient is not None:
            await self._memory.record_patient_seen(profile, patient.id)
        return patient

    def _focus_id(self) -> Optional[str]:
        return self.focused_patient.id if self.focused_patient is not None else None

    def _chat_history(self, resolved_text: str) -> List[dict]:
        turns = self.tracker.recent_messages(self._settings.chat_history_turns)
        history = []
        for index, message in enumerate(turns):
            if message.is_error:
                continue
            following = turns[index + 1] if index + 1 < len(turns) else None
            # A user turn answered only by an error never reached the model.
            if message.role == Role.USER and following is not None and following.is_error:
                continue
            history.append({"role": message.role.value, "content": message.text})
        history.append({"role": Role.USER.value, "content": resolved_text})
        return history

    def _record(self, role: Role, text: str, *, is_error: bool = False) -> Message:
        message = Message(
            id=_message_id(),
            role=role,
            text=text,
            created_at=self._clock(),
            focus_patient_id=self._focus_id(),
            is_error=is_error,
        )
        self.tracker.record_message(message, self.roster)
        return message

    async def send_message(self, text: str) -> Optional[Message]:
        """Send free text to the model; return the assistant reply.

        Returns ``None`` for blank input and when the session closed while the
        reply was outstanding.
        """

        self._require_open()
        text = (text or "").strip()
        if not text:
            return None
        if self.tracker.is_stale(self._clock()):
            self.tracker.reset()
            self.tracker.set_focused_patient(self.focused_patient)

        resolved = self.tracker.resolve_pronouns(text, self.roster)
        history = self._chat_history(resolved)
        self._record(Role.USER, text)
        system_context = build_system_context(
            self.operator.name,
            self.roster,
            self.focused_patient,
            self.tracker.build_context_summary(),
        )

        self._in_flight += 1
        try:
            response = await clinical_ai.chat(self._gateway, history, system_context)
            reply_text, failed = response.text, response.failed
        except RateLimited as exc:
            reply_text, failed = rate_limit_notice(exc), True
        finally:
            self._in_flight -= 1

        if self.closed:
            logger.info("chat_reply_discarded")
            return None
        return self._record(Role.ASSISTANT, reply_text, is_error=failed)

    async def submit(self, text: str) -> SubmitOutcome:
        """Run ``text`` as a command when it parses, otherwise chat."""

        self._require_open()
        if (text or "").strip().lower() in HELP_COMMANDS:
            self._record(Role.USER, text.strip())
            reply = self._record(Role.SYSTEM, "Try:\n" + "\n".join(f"- {line}" for line in describe_grammar()))
            return SubmitOutcome(reply=reply)

        await self.refresh_roster()
        action = self.parse_command(text)
        if action is None:
            return SubmitOutcome(reply=await self.send_message(text))
        result = await self.execute_action(action)
        return SubmitOutcome(action=action, result=result)

    # -- commands --------------------------------------------------------

    def parse_command(self, text: str) -> Optional[ExecutableAction]:
        return parse_command(text, self.focused_patient, self.roster)

    async def execute_action(self, action: ExecutableAction) -> ActionResult:
        profile = self._require_open()
        result = await self.executor.execute(action)
        if result.success and isinstance(action, OrderAction):
            patient = find_patient(self.roster, action.patient_id)
            complaint = patient.leading_complaint if patient is not None else None
            if complaint:
                await self._memory.learn_order_pattern(profile, condition_keyword(complaint), action.label)
        return result

    # -- insights --------------------------------------------------------

    async def refresh_insights(self, now: Optional[datetime] = None) -> List[Suggestion]:
        self._require_open()
        await self.refresh_roster()
        self.insights = aggregate(self.roster, self.profile, now or self._clock(), self._settings)
        return self.insights

    def action_for_suggestion(self, suggestion: Suggestion) -> Optional[ExecutableAction]:
        """Translate a suggestion shortcut into an executable action where one exists."""

        shortcut = suggestion.suggested_action
        if shortcut is None:
            return None
        payload = shortcut.payload or {}
        if shortcut.kind == "navigate" and payload.get("route"):
            return NavigateAction(route=str(payload["route"]))
        if shortcut.kind == "mark_nkda":
            return NoteAction(patient_id=suggestion.subject_patient_id, content=NKDA_NOTE)
        if shortcut.kind == "order" and payload.get("subType"):
            procedure = get_procedure(str(payload["subType"]))
            if procedure is None:
                return None
            return OrderAction(
                patient_id=suggestion.subject_patient_id,
                category=procedure.category,
                sub_type=procedure.sub_type,
                label=procedure.label,
                priority=str(payload.get("priority") or procedure.default_priority),
            )
        # Questions and personalised order lists stay with the clinician.
        return None

    async def accept_suggestion(self, suggestion: Suggestion) -> Optional[ActionResult]:
        profile = self._require_open()
        await self._memory.record_accepted(profile)
        action = self.action_for_suggestion(suggestion)
        if action is None:
            return None
        return await self.execute_action(action)

    async def dismiss_suggestion(self, suggestion: Suggestion, reason: Optional[str] = None) -> None:
        profile = self._require_open()
        await self._memory.record_rejected(profile, reason)
        logger.info("suggestion_dismissed", suggestion_id=suggestion.id, reason=reason)

    # -- palette ---------------------------------------------------------

    def open_palette(self) -> List[PaletteCommand]:
        self._require_open()
        self.palette_open = True
        return self.palette_commands()

    def close_palette(self) -> None:
        self.palette_open = False

    def palette_commands(self) -> List[PaletteCommand]:
        return build_commands(self.roster, self.focused_patient)

    def search_palette(self, query: str) -> List[PaletteCommand]:
        return search(self.palette_commands(), query)

    async def run_palette_command(self, command: PaletteCommand) -> Optional[ActionResult]:
        profile = self._require_open()
        self.palette_open = False
        if command.action is not None:
            return await self.execute_action(command.action)
        if command.intent == INTENT_TOGGLE_DARK_MODE:
            enabled = not bool(profile.ui_preferences.get("darkMode"))
            await self._memory.set_ui_preference(profile, "darkMode", enabled)
            return ActionResult(True, f"Dark mode {'on' if enabled else 'off'}", {"darkMode": enabled})
        # The presentation layer handles the remaining intents.
        return None

    # -- single-turn model calls -----------------------------------------

    async def classify_complaint(self, complaint: str) -> Tuple[clinical_ai.TriageSuggestion, bool]:
        """Suggest department and triage; raises ``ModelCallFailed`` or ``RateLimited``."""

        self._require_open()
        return await clinical_ai.classify_complaint(self._gateway, complaint)

    async def care_checklist(self, diagnosis: str) -> List[str]:
        self._require_open()
        try:
            items, _ = await clinical_ai.generate_checklist(self._gateway, diagnosis)
        except RateLimited as exc:
            return [rate_limit_notice(exc)]
        return items

    # -- live transcription ----------------------------------------------

    def feed_transcript(self, transcript: str) -> bool:
        self._require_open()
        return self.extractor.feed(transcript)

    # -- briefing & usage ------------------------------------------------

    async def briefing(self, now: Optional[datetime] = None) -> Briefing:
        self._require_open()
        await self.refresh_roster()
        return generate_briefing(self.operator.name, self.roster, now or self._clock(), self.profile)

    def usage_stats(self) -> UsageStats:
        return self._gateway.usage_stats()

    def check_rate_limit(self) -> RateLimitStatus:
        return self._gateway.check_rate_limit()


__all__ = ["AssistantSession", "OperatorIdentity", "SubmitOutcome", "rate_limit_notice", "RosterProvider"]
