import asyncio
import inspect
import os
import sys
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List

import pytest

# Ensure the repository root is on sys.path so tests can import the clinassist package
ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), '..'))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

from clinassist.config import AssistantSettings
from clinassist.storage import InMemoryKeyValueStore


try:
    import pytest_asyncio  # type: ignore  # noqa: F401
except ImportError:

    @pytest.hookimpl(tryfirst=True)
    def pytest_pyfunc_call(pyfuncitem):
        """Run ``async def`` tests via ``asyncio.run`` when pytest-asyncio is missing."""

        if inspect.iscoroutinefunction(pyfuncitem.obj):
            testargs = {
                name: pyfuncitem.funcargs[name]
                for name in pyfuncitem._fixtureinfo.argnames
            }
            asyncio.run(pyfuncitem.obj(**testargs))
            return True
        return None


NOW = datetime(2025, 3, 14, 9, 30, tzinfo=timezone.utc)


class ManualClock:
    """Settable clock usable as both a datetime and an epoch-seconds source."""

    def __init__(self, start: datetime = NOW) -> None:
        self.current = start

    def __call__(self) -> datetime:
        return self.current

    def epoch(self) -> float:
        return self.current.timestamp()

    def advance(self, **delta: float) -> None:
        self.current = self.current + timedelta(**delta)


class FakeGenerator:
    """Records prompts and replays queued replies; raises queued exceptions."""

    model = 'fake-model'

    def __init__(self, default: str = 'ok') -> None:
        self.default = default
        self.replies: List[Any] = []
        self.calls: List[Dict[str, Any]] = []

    def queue(self, *replies: Any) -> None:
        self.replies.extend(replies)

    async def __call__(self, prompt, system_context=''):
        self.calls.append({'prompt': prompt, 'context': system_context})
        reply = self.replies.pop(0) if self.replies else self.default
        if isinstance(reply, BaseException):
            raise reply
        return reply


class RecordingCollaborators:
    def __init__(self) -> None:
        self.orders: List[Any] = []
        self.notes: List[Any] = []
        self.routes: List[str] = []

    async def add_order(self, patient_id, draft):
        self.orders.append((patient_id, draft))

    def add_note(self, patient_id, text, is_escalation):
        self.notes.append((patient_id, text, is_escalation))

    def go_to(self, route):
        self.routes.append(route)


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture
def settings() -> AssistantSettings:
    return AssistantSettings(database_url='sqlite://', offline_model=True)


@pytest.fixture
def store() -> InMemoryKeyValueStore:
    return InMemoryKeyValueStore()


@pytest.fixture
def generator() -> FakeGenerator:
    return FakeGenerator()


@pytest.fixture
def recorder() -> RecordingCollaborators:
    return RecordingCollaborators()


@pytest.fixture
def collaborators(recorder):
    from clinassist.actions import ClinicalCollaborators

    return ClinicalCollaborators(add_order=recorder.add_order, add_note=recorder.add_note, go_to=recorder.go_to)


def make_patient(**overrides: Any) -> Dict[str, Any]:
    """Return a roster entry with everything documented and normal vitals."""

    patient: Dict[str, Any] = {
        'id': 'P-001',
        'name': 'Asha Verma',
        'age': 54,
        'gender': 'Female',
        'status': 'In Treatment',
        'registrationTime': (NOW - timedelta(minutes=10)).isoformat(),
        'triage': {'level': 'Yellow'},
        'vitals': {'spo2': 98, 'bpSys': 122, 'bpDia': 78, 'pulse': 84, 'temp': 37.0, 'rr': 16},
        'chiefComplaints': [{'complaint': 'Headache', 'durationValue': 2, 'durationUnit': 'days'}],
        'clinicalFile': {
            'sections': {
                'history': {
                    'complaints': [],
                    'drug_history': 'Amlodipine 5mg',
                    'allergy_history': [{'substance': 'Penicillin', 'reaction': 'Rash'}],
                }
            }
        },
        'orders': [],
        'results': [],
    }
    patient.update(overrides)
    return patient


@pytest.fixture
def roster():
    from clinassist.roster import coerce_roster

    return coerce_roster([
        make_patient(),
        make_patient(id='P-002', name='Ravi Kumar', gender='Male', triage={'level': 'Red'},
                     status='Waiting for Doctor', chiefComplaints=[{'complaint': 'Chest pain'}]),
        make_patient(id='P-003', name='Meera Nair', status='Waiting for Doctor',
                     registrationTime=(NOW - timedelta(minutes=30)).isoformat(),
                     chiefComplaints=[{'complaint': 'Fever with chills'}]),
    ])
