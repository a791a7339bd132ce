"""Command palette entries and query ranking."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Tuple

from clinassist.actions import ExecutableAction, NavigateAction, OrderAction
from clinassist.procedures import all_procedures
from clinassist.roster import Patient

PALETTE_PATIENT_LIMIT = 10

INTENT_ASK = "ask_assistant"
INTENT_TOGGLE_DARK_MODE = "toggle_dark_mode"


@dataclass(frozen=True)
class PaletteCommand:
    id: str
    label: str
    category: str
    description: str = ""
    keywords: Tuple[str, ...] = field(default_factory=tuple)
    action: Optional[ExecutableAction] = None
    intent: Optional[str] = None


_STATIC_COMMANDS: Tuple[PaletteCommand, ...] = (
    PaletteCommand(
        "nav-dashboard",
        "Go to Dashboard",
        "navigation",
        "Patient queue overview",
        ("home", "queue"),
        action=NavigateAction("/"),
    ),
    PaletteCommand(
        "nav-beds",
        "Bed Manager",
        "navigation",
        "Ward and bed allocation",
        ("beds", "ward"),
        action=NavigateAction("/beds"),
    ),
    PaletteCommand(
        "nav-triage",
        "Triage",
        "navigation",
        "Register and triage a new patient",
        ("register", "new patient"),
        action=NavigateAction("/triage"),
    ),
    PaletteCommand(
        "ask-assistant",
        "Ask assistant",
        "assistant",
        "Open the assistant chat",
        ("chat", "help", "ai"),
        intent=INTENT_ASK,
    ),
    PaletteCommand(
        "toggle-dark-mode",
        "Toggle dark mode",
        "preferences",
        "Switch between light and dark theme",
        ("theme", "dark", "light"),
        intent=INTENT_TOGGLE_DARK_MODE,
    ),
)


def build_commands(roster: Sequence[Patient], focused_patient: Optional[Patient] = None) -> List[PaletteCommand]:
    """Return the palette entries available for the current roster and focus."""

    commands = list(_STATIC_COMMANDS)
    for patient in roster[:PALETTE_PATIENT_LIMIT]:
        commands.append(
            PaletteCommand(
                f"open-{patient.id}",
                f"Open {patient.name}",
                "patients",
                patient.leading_complaint or patient.status,
                (patient.id,),
                action=NavigateAction(f"/patient/{patient.id}/medview"),
            )
        )
    if focused_patient is not None:
        for procedure in all_procedures():
            commands.append(
                PaletteCommand(
                    f"order-{procedure.sub_type}",
                    procedure.label,
                    procedure.category,
                    f"Draft {procedure.category} order for {focused_patient.name}",
                    (procedure.sub_type.replace("_", " "),),
                    action=OrderAction(
                        patient_id=focused_patient.id,
                        category=procedure.category,
                        sub_type=procedure.sub_type,
                        label=procedure.label,
                        priority=procedure.default_priority,
                    ),
                )
            )
    return commands


def _rank(command: PaletteCommand, query: str) -> Optional[int]:
    label = command.label.lower()
    if label.startswith(query):
        return 0
    if query in label:
        return 1
    if query in command.description.lower() or any(query in keyword.lower() for keyword in command.keywords):
        return 2
    return None


def search(commands: Sequence[PaletteCommand], query: str) -> List[PaletteCommand]:
    needle = (query or "").strip().lower()
    if not needle:
        return list(commands)
    ranked = []
    for position, command in enumerate(commands):
        rank = _rank(command, needle)
        if rank is not None:
            ranked.append((rank, position, command))
    ranked.sort(key=lambda item: (item[0], item[1]))
    return [command for _, _, command in ranked]


__all__ = [
    "PaletteCommand",
    "PALETTE_PATIENT_LIMIT",
    "INTENT_ASK",
    "INTENT_TOGGLE_DARK_MODE",
    "build_commands",
    "search",
]
