import pytest

from clinassist.clinical_ai import (
    CHAT_FALLBACK,
    CHECKLIST_FALLBACK,
    chat,
    classify_complaint,
    generate_checklist,
    quick_extract,
)
from clinassist.errors import ModelCallFailed
from clinassist.gateway import ModelGateway


@pytest.fixture
def gateway(generator, settings, clock):
    return ModelGateway(generator, settings=settings, clock=clock.epoch)


@pytest.mark.asyncio
async def test_classification_parses_and_caches(gateway, generator):
    generator.queue('Sure: {"department": "cardiology", "suggested_triage": "red", "confidence": 0.9}')

    suggestion, cached = await classify_complaint(gateway, 'crushing chest pain')
    again, cached_again = await classify_complaint(gateway, 'Crushing chest  pain')

    assert (suggestion.department, suggestion.suggested_triage, suggestion.confidence) == ('Cardiology', 'Red', 0.9)
    assert cached is False
    assert cached_again is True
    assert again == suggestion
    assert generator.calls[0]['prompt'] == 'Complaint: "crushing chest pain"'


@pytest.mark.asyncio
async def test_unknown_department_is_normalised(gateway, generator):
    generator.queue('{"department": "Dermatology", "suggested_triage": "Green", "confidence": 0.4}')
    suggestion, _ = await classify_complaint(gateway, 'itchy rash')
    assert suggestion.department == 'Unknown'


@pytest.mark.asyncio
async def test_classification_failures_propagate(gateway, generator):
    generator.queue(RuntimeError('down'))
    with pytest.raises(ModelCallFailed):
        await classify_complaint(gateway, 'fever')

    generator.queue('not json at all')
    with pytest.raises(ModelCallFailed):
        await classify_complaint(gateway, 'cough')

    generator.queue('{"department": "Cardiology", "suggested_triage": "Purple", "confidence": 2}')
    with pytest.raises(ModelCallFailed):
        await classify_complaint(gateway, 'palpitations')


@pytest.mark.asyncio
async def test_chat_is_uncached_and_falls_back(gateway, generator):
    generator.queue('first', 'second', RuntimeError('down'))
    history = [{'role': 'user', 'content': 'same question'}]

    assert (await chat(gateway, history, 'ctx')).text == 'first'
    assert (await chat(gateway, history, 'ctx')).text == 'second'
    failed = await chat(gateway, history, 'ctx')
    assert failed.failed
    assert failed.text == CHAT_FALLBACK


@pytest.mark.asyncio
async def test_checklist(gateway, generator):
    generator.queue('{"checklist": ["Monitor vitals q1h", "", "Repeat lactate"]}')
    items, cached = await generate_checklist(gateway, 'Sepsis')
    assert items == ['Monitor vitals q1h', 'Repeat lactate']
    assert cached is False

    generator.queue(RuntimeError('down'))
    assert await generate_checklist(gateway, 'Asthma') == (CHECKLIST_FALLBACK, False)

    generator.queue('{"items": []}')
    assert await generate_checklist(gateway, 'COPD') == (CHECKLIST_FALLBACK, False)


@pytest.mark.asyncio
async def test_quick_extract(gateway, generator):
    generator.queue(
        '{"complaints": [{"symptom": "fever", "duration": 3}, {"symptom": " "}], '
        '"vitals_mentioned": {"spo2": "94", "pulse": null, "bp_sys": "high"}, "keywords": ["dengue"]}'
    )
    result = await quick_extract(gateway, 'patient says fever for 3 days, spo2 94')

    assert [(c.symptom, c.duration) for c in result.complaints] == [('fever', '3')]
    assert result.vitals_mentioned == {'spo2': 94.0, 'pulse': None, 'bp_sys': None}
    assert result.keywords == ['dengue']

    generator.queue('garbage')
    assert await quick_extract(gateway, 'patient says fever for 3 days, spo2 94') is None
    generator.queue(RuntimeError('down'))
    assert await quick_extract(gateway, 'patient says fever for 3 days, spo2 94') is None
