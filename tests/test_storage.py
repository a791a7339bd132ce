import sqlalchemy as sa
import pytest
from sqlalchemy.pool import StaticPool

from clinassist.config import AssistantSettings
from clinassist.db import KeyValueEntry, create_engine_from_settings, session_scope
from clinassist.errors import PersistenceFailure
from clinassist.operator_memory import OperatorMemory
from clinassist.storage import PROFILE_NAMESPACE, SQLAlchemyKeyValueStore


@pytest.fixture
def engine():
    engine = sa.create_engine(
        'sqlite+pysqlite:///:memory:',
        future=True,
        connect_args={'check_same_thread': False},
        poolclass=StaticPool,
    )
    yield engine
    engine.dispose()


@pytest.mark.asyncio
async def test_save_load_overwrite_delete(engine):
    store = SQLAlchemyKeyValueStore(engine)
    assert await store.load('ns', 'missing') is None

    await store.save('ns', 'k', {'value': 1})
    await store.save('ns', 'k', {'value': 2, 'nested': {'a': [1, 2]}})
    assert await store.load('ns', 'k') == {'value': 2, 'nested': {'a': [1, 2]}}

    with session_scope(engine) as session:
        assert session.query(KeyValueEntry).count() == 1
        entry = session.get(KeyValueEntry, ('ns', 'k'))
        assert entry.updated_at is not None

    await store.delete('ns', 'k')
    assert await store.load('ns', 'k') is None


@pytest.mark.asyncio
async def test_namespaces_are_independent(engine):
    store = SQLAlchemyKeyValueStore(engine)
    await store.save('a', 'k', {'side': 'a'})
    await store.save('b', 'k', {'side': 'b'})
    assert (await store.load('a', 'k'))['side'] == 'a'
    assert (await store.load('b', 'k'))['side'] == 'b'


@pytest.mark.asyncio
async def test_unserialisable_value_raises_persistence_failure(engine):
    store = SQLAlchemyKeyValueStore(engine)
    with pytest.raises(PersistenceFailure):
        await store.save('ns', 'k', {'when': object()})


@pytest.mark.asyncio
async def test_missing_table_raises_persistence_failure(engine):
    store = SQLAlchemyKeyValueStore(engine, create_tables=False)
    with pytest.raises(PersistenceFailure):
        await store.load('ns', 'k')


@pytest.mark.asyncio
async def test_operator_profile_round_trips_through_sqlite(engine, clock):
    store = SQLAlchemyKeyValueStore(engine)
    memory = OperatorMemory(store, clock=clock)
    profile = await memory.get_or_create('doc-7', 'Lena Ortiz')
    await memory.learn_order_pattern(profile, 'Dengue', 'Dengue NS1')

    reloaded = await OperatorMemory(store, clock=clock).get_or_create('doc-7', 'Lena Ortiz')
    assert reloaded.order_patterns[0].condition_keyword == 'dengue'
    assert (await store.load(PROFILE_NAMESPACE, 'doc-7'))['name'] == 'Lena Ortiz'


def test_engine_from_settings_uses_static_pool_for_memory():
    engine = create_engine_from_settings(AssistantSettings(database_url='sqlite://'))
    assert isinstance(engine.pool, StaticPool)
    engine.dispose()


def test_engine_from_settings_file_path(tmp_path):
    url = f"sqlite:///{tmp_path / 'assistant.db'}"
    engine = create_engine_from_settings(AssistantSettings(database_url=url))
    assert not isinstance(engine.pool, StaticPool)
    engine.dispose()
