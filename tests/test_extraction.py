import asyncio
from dataclasses import replace

import pytest

from clinassist.clinical_ai import ExtractedComplaint
from clinassist.extraction import LiveTranscriptExtractor
from clinassist.gateway import ModelGateway

LONG = 'The patient reports fever and body ache for three days with chills at night'
REPLY = (
    '{"complaints": [{"symptom": "Fever", "duration": "3 days"}], '
    '"vitals_mentioned": {"spo2": 95}, "keywords": ["fever"]}'
)


@pytest.fixture
def fast_settings(settings):
    return replace(settings, extraction_debounce_seconds=0.01)


async def _settle(extractor):
    await asyncio.sleep(0.03)
    await extractor.task.drain()


@pytest.mark.asyncio
async def test_extraction_merges_results(generator, fast_settings, clock):
    gateway = ModelGateway(generator, settings=fast_settings, clock=clock.epoch)
    extractor = LiveTranscriptExtractor(gateway, fast_settings, clock=clock)
    generator.queue(REPLY)

    assert extractor.feed(LONG)
    await _settle(extractor)

    state = extractor.state
    assert [(c.symptom, c.duration) for c in state.complaints] == [('Fever', '3 days')]
    assert state.vitals_mentioned == {'spo2': 95.0}
    assert state.keywords == ['fever']
    assert state.extraction_count == 1
    assert state.last_extracted_at == clock()
    assert not state.is_extracting


@pytest.mark.asyncio
async def test_small_growth_is_not_rescheduled(generator, fast_settings, clock):
    gateway = ModelGateway(generator, settings=fast_settings, clock=clock.epoch)
    extractor = LiveTranscriptExtractor(gateway, fast_settings, clock=clock)
    generator.queue(REPLY)
    extractor.feed(LONG)
    await _settle(extractor)

    assert not extractor.feed(LONG + ' and cough')
    assert extractor.feed(LONG + ' and cough' + ' today' * 10)
    extractor.close()


@pytest.mark.asyncio
async def test_short_transcript_does_not_call_model(generator, fast_settings, clock):
    gateway = ModelGateway(generator, settings=fast_settings, clock=clock.epoch)
    extractor = LiveTranscriptExtractor(gateway, fast_settings, clock=clock)

    extractor.feed('fever')
    await _settle(extractor)
    assert generator.calls == []
    assert extractor.state.extraction_count == 0


@pytest.mark.asyncio
async def test_burst_of_chunks_makes_one_call(generator, fast_settings, clock):
    gateway = ModelGateway(generator, settings=fast_settings, clock=clock.epoch)
    extractor = LiveTranscriptExtractor(gateway, fast_settings, clock=clock)
    generator.queue(REPLY)

    words = LONG.split()
    for end in range(5, len(words) + 1):
        extractor.feed(' '.join(words[:end]))
    await _settle(extractor)
    assert len(generator.calls) == 1


def test_merge_deduplicates_symptoms_case_insensitively(generator, settings, clock):
    extractor = LiveTranscriptExtractor(ModelGateway(generator, settings=settings), settings, clock=clock)
    extractor.merge([ExtractedComplaint(symptom='Fever')], {'pulse': 110.0}, ['Fever'])
    extractor.merge(
        [ExtractedComplaint(symptom='fever', duration='2 days'), ExtractedComplaint(symptom='Cough')],
        {'pulse': None, 'spo2': 93.0},
        ['fever', 'cough'],
    )

    assert [c.symptom for c in extractor.state.complaints] == ['Fever', 'Cough']
    assert extractor.state.vitals_mentioned == {'pulse': 110.0, 'spo2': 93.0}
    assert extractor.state.keywords == ['Fever', 'cough']
    assert extractor.state.extraction_count == 2


@pytest.mark.asyncio
async def test_rate_limited_extraction_is_recorded(generator, fast_settings, clock):
    limited = replace(fast_settings, rate_limit_per_window=1)
    gateway = ModelGateway(generator, settings=limited, clock=clock.epoch)
    await gateway.call('chat first', use_cache=False)
    extractor = LiveTranscriptExtractor(gateway, limited, clock=clock)

    extractor.feed(LONG)
    await _settle(extractor)
    assert extractor.state.rate_limited_wait_ms > 0
    assert extractor.state.extraction_count == 0
    assert not extractor.state.is_extracting


@pytest.mark.asyncio
async def test_rate_limited_transcript_is_retried_on_next_feed(generator, fast_settings, clock):
    limited = replace(fast_settings, rate_limit_per_window=1)
    gateway = ModelGateway(generator, settings=limited, clock=clock.epoch)
    await gateway.call('chat first', use_cache=False)
    extractor = LiveTranscriptExtractor(gateway, limited, clock=clock)
    extractor.feed(LONG)
    await _settle(extractor)
    assert extractor.state.extraction_count == 0

    clock.advance(seconds=61)
    generator.queue(REPLY)
    assert extractor.feed(LONG)
    await _settle(extractor)
    assert extractor.state.extraction_count == 1
    assert [c.symptom for c in extractor.state.complaints] == ['Fever']
    assert extractor.state.rate_limited_wait_ms == 0


@pytest.mark.asyncio
async def test_close_and_reset(generator, fast_settings, clock):
    gateway = ModelGateway(generator, settings=fast_settings, clock=clock.epoch)
    extractor = LiveTranscriptExtractor(gateway, fast_settings, clock=clock)
    extractor.feed(LONG)
    extractor.reset()
    assert not extractor.task.pending

    extractor.close()
    assert not extractor.feed(LONG)
    await asyncio.sleep(0.03)
    assert generator.calls == []
