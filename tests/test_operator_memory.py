import pytest

from clinassist.errors import PersistenceFailure
from clinassist.models import OperatorProfile, OrderPattern
from clinassist.operator_memory import DISMISSAL_HISTORY_LIMIT, OperatorMemory
from clinassist.storage import PROFILE_NAMESPACE, InMemoryKeyValueStore


class BrokenStore(InMemoryKeyValueStore):
    async def load(self, namespace, key):
        raise PersistenceFailure('disk unavailable')

    async def save(self, namespace, key, value):
        raise PersistenceFailure('disk unavailable')


@pytest.mark.asyncio
async def test_get_or_create_persists_new_profile(store, clock):
    memory = OperatorMemory(store, clock=clock)
    profile = await memory.get_or_create('doc-1', 'Priya Shah', 'priya@example.org')

    assert profile.name == 'Priya Shah'
    saved = await store.load(PROFILE_NAMESPACE, 'doc-1')
    assert saved['id'] == 'doc-1'
    assert saved['preferences']['uiPrefs']['defaultView'] == 'queue'
    assert await memory.get_or_create('doc-1', 'ignored') is profile


@pytest.mark.asyncio
async def test_get_or_create_loads_existing_profile(store, clock):
    first = OperatorMemory(store, clock=clock)
    profile = await first.get_or_create('doc-1', 'Priya Shah')
    await first.learn_order_pattern(profile, 'fever', 'CBC')

    second = OperatorMemory(store, clock=clock)
    loaded = await second.get_or_create('doc-1', 'Priya Shah')
    assert [p.condition_keyword for p in loaded.order_patterns] == ['fever']
    assert loaded.order_patterns[0].usual_order_labels == ['CBC']


@pytest.mark.asyncio
async def test_pattern_learning_keeps_labels_unique(store, clock):
    memory = OperatorMemory(store, clock=clock)
    profile = await memory.get_or_create('doc-1', 'Priya Shah')
    await memory.learn_order_pattern(profile, 'fever', 'CBC')
    await memory.learn_order_pattern(profile, 'Fever', 'LFT')
    await memory.learn_order_pattern(profile, 'FEVER', 'CBC')

    pattern = OperatorMemory.match_pattern(profile, 'patient has fever')
    assert pattern is not None
    assert pattern.frequency_count == 3
    assert pattern.usual_order_labels == ['CBC', 'LFT']


@pytest.mark.asyncio
async def test_single_use_pattern_is_not_matched(store, clock):
    memory = OperatorMemory(store, clock=clock)
    profile = await memory.get_or_create('doc-1', 'Priya Shah')
    await memory.learn_order_pattern(profile, 'dengue', 'Dengue NS1')

    assert OperatorMemory.match_pattern(profile, 'suspected dengue') is None


def test_match_pattern_is_first_match_not_longest():
    profile = OperatorProfile(id='doc-1', name='Priya Shah')
    profile.order_patterns = [
        OrderPattern('pain', ['ECG'], frequency_count=2),
        OrderPattern('chest pain', ['Troponin I'], frequency_count=5),
    ]

    assert OperatorMemory.match_pattern(profile, 'Chest pain since morning').condition_keyword == 'pain'


@pytest.mark.asyncio
async def test_acceptance_rate_and_dismissal_reasons(store, clock):
    memory = OperatorMemory(store, clock=clock)
    profile = await memory.get_or_create('doc-1', 'Priya Shah')
    assert OperatorMemory.acceptance_rate(profile) == 0

    await memory.record_accepted(profile)
    await memory.record_rejected(profile, 'not relevant')
    await memory.record_rejected(profile, 'not relevant')
    assert OperatorMemory.acceptance_rate(profile) == 33
    assert profile.history.total_interactions == 3
    assert profile.history.dismissal_reasons == ['not relevant']

    for index in range(DISMISSAL_HISTORY_LIMIT + 5):
        await memory.record_rejected(profile, f'reason {index}')
    assert len(profile.history.dismissal_reasons) == DISMISSAL_HISTORY_LIMIT
    assert profile.history.dismissal_reasons[-1] == f'reason {DISMISSAL_HISTORY_LIMIT + 4}'


@pytest.mark.asyncio
async def test_mutations_update_timestamp(store, clock):
    memory = OperatorMemory(store, clock=clock)
    profile = await memory.get_or_create('doc-1', 'Priya Shah')
    created = profile.updated_at

    clock.advance(minutes=5)
    await memory.record_patient_seen(profile, 'P-001')
    assert profile.updated_at > created
    assert 'P-001' in profile.session.patients_seen
    saved = await store.load(PROFILE_NAMESPACE, 'doc-1')
    assert saved['session']['patientsSeen'] == ['P-001']


@pytest.mark.asyncio
async def test_persistence_failure_keeps_in_memory_profile(clock):
    memory = OperatorMemory(BrokenStore(), clock=clock)
    profile = await memory.get_or_create('doc-1', 'Priya Shah')
    await memory.learn_order_pattern(profile, 'fever', 'CBC')

    assert profile.order_patterns[0].usual_order_labels == ['CBC']
    assert await memory.get_or_create('doc-1', 'Priya Shah') is profile


@pytest.mark.asyncio
async def test_ui_preferences_and_new_shift(store, clock):
    memory = OperatorMemory(store, clock=clock)
    profile = await memory.get_or_create('doc-1', 'Priya Shah')
    await memory.record_patient_seen(profile, 'P-001')
    await memory.set_ui_preference(profile, 'darkMode', True)

    clock.advance(hours=12)
    await memory.start_new_shift(profile)
    assert profile.session.patients_seen == set()
    assert profile.session.started_at == clock()
    assert profile.ui_preferences['darkMode'] is True
