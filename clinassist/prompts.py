"""
Prompt templates for the clinical assistant.

These functions build the system context and single-turn prompts handed to
the model gateway.  Instructions travel as the system context and the prompt
carries only the subject text, so cache signatures are keyed on the subject.
"""

from typing import List, Optional, Sequence

from clinassist.roster import Patient

PATIENT_SUMMARY_LIMIT = 10
RECENT_LAB_LIMIT = 5

DEPARTMENTS = (
    "Cardiology",
    "Orthopedics",
    "General Medicine",
    "Obstetrics",
    "Neurology",
    "Emergency",
    "Pulmonology",
    "Nephrology",
    "Pediatrics",
    "Surgery",
    "Gastroenterology",
    "Unknown",
)
TRIAGE_LEVELS = ("Red", "Yellow", "Green")

CHAT_RULES = (
    "- Be concise and helpful",
    '- Resolve pronouns ("her", "him") to the current or last mentioned patient',
    "- Suggest specific actions when appropriate",
    "- Use medical terminology appropriately",
)

CLASSIFICATION_INSTRUCTIONS = (
    "You are a medical expert system. Classify the chief complaint into the most likely "
    "medical department and suggest a triage level. Respond with JSON only: "
    '{"department": one of ' + ", ".join(DEPARTMENTS) + ', '
    '"suggested_triage": one of Red, Yellow, Green, "confidence": number between 0 and 1}.'
)

CHECKLIST_INSTRUCTIONS = (
    "Create a standard clinical care checklist with 5-7 key actions or monitoring points "
    'for the given assessment. Respond with JSON only: {"checklist": ["item", ...]}.'
)

EXTRACTION_INSTRUCTIONS = (
    "Extract ONLY what is clearly stated in this conversation snippet. Return JSON with found items only: "
    '{"complaints": [{"symptom": "string", "duration": "string or null"}], '
    '"vitals_mentioned": {"bp_sys": null, "bp_dia": null, "pulse": null, "spo2": null}, '
    '"keywords": ["any medical keywords found"]}. Return ONLY valid JSON, no explanation.'
)


def _value(value: Optional[float]) -> str:
    if value is None:
        return "?"
    return f"{value:g}"


def summarise_patient(patient: Patient) -> str:
    """Return a one-line roster summary for ``patient``."""

    gender = (patient.gender or "")[:1]
    age = f"{patient.age}{gender}" if patient.age is not None else gender or "?"
    return (
        f"- {patient.name} ({age}): Chief: {patient.leading_complaint or 'None'}, "
        f"Triage: {patient.triage_level or 'None'}, Status: {patient.status}"
    )


def describe_focused_patient(patient: Patient) -> str:
    vitals = patient.vitals
    if vitals is not None and (vitals.pulse is not None or vitals.bp_sys is not None):
        vitals_text = (
            f"HR {_value(vitals.pulse)}, BP {_value(vitals.bp_sys)}/{_value(vitals.bp_dia)}, "
            f"SpO2 {_value(vitals.spo2)}%, Temp {_value(vitals.temp_c)}°C"
        )
    else:
        vitals_text = "No recent vitals available."

    labs: List[str] = []
    for result in patient.results[:RECENT_LAB_LIMIT]:
        flag = "ABNORMAL" if result.is_abnormal else "Normal"
        unit = f" {result.unit}" if result.unit else ""
        labs.append(f"{result.name}: {result.value or '?'}{unit} ({flag})")
    labs_text = "; ".join(labs) if labs else "No recent labs"

    demographics = f"{patient.age if patient.age is not None else '?'} years, {patient.gender or 'unknown'}"
    return "\n".join(
        [
            f"Current Patient in Focus: {patient.name}",
            f"- Demographics: {demographics}",
            f"- Vitals: {vitals_text}",
            f"- Recent Labs: {labs_text}",
        ]
    )


def build_system_context(
    operator_name: str,
    roster: Sequence[Patient],
    focused_patient: Optional[Patient] = None,
    conversation_summary: str = "",
) -> str:
    """Compose the chat system prompt from roster, focus and conversation state."""

    summaries = "\n".join(summarise_patient(patient) for patient in roster[:PATIENT_SUMMARY_LIMIT])
    sections = [
        f"You are a clinical assistant for {operator_name or 'the attending clinician'}.",
        "",
        "Your patients today:",
        summaries or "- None",
    ]
    if focused_patient is not None:
        sections.extend(["", describe_focused_patient(focused_patient)])
    if conversation_summary:
        sections.extend(["", conversation_summary.rstrip("\n")])
    sections.extend(["", "Rules:", *CHAT_RULES])
    return "\n".join(sections)


def classification_prompt(complaint: str) -> str:
    return f'Complaint: "{complaint.strip()}"'


def checklist_prompt(diagnosis: str) -> str:
    return f'Assessment: "{diagnosis.strip()}"'


def extraction_prompt(transcript: str) -> str:
    return f'Conversation: "{transcript.strip()}"'
