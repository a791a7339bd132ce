import pytest

from clinassist.actions import (
    WORKFLOW_BUNDLES,
    ActionExecutor,
    ClinicalCollaborators,
    NavigateAction,
    NoteAction,
    OrderAction,
    OrderDraft,
    WorkflowAction,
)


def _order(**overrides):
    values = dict(patient_id='P-001', category='investigation', sub_type='cbc', label='CBC')
    values.update(overrides)
    return OrderAction(**values)


@pytest.mark.asyncio
async def test_order_creates_draft(collaborators, recorder, clock):
    executor = ActionExecutor(collaborators, clock=clock)
    result = await executor.execute(_order(priority='STAT'))

    assert result.success
    assert result.message == 'Created draft order: CBC'
    patient_id, draft = recorder.orders[0]
    assert patient_id == 'P-001'
    assert isinstance(draft, OrderDraft)
    assert draft.status == 'draft'
    assert draft.priority == 'STAT'
    assert draft.created_at == clock()
    assert draft.order_id.startswith('ORD-')
    assert draft.to_dict()['created_at'] == clock().isoformat()


@pytest.mark.asyncio
async def test_unknown_priority_becomes_routine(collaborators, recorder, clock):
    executor = ActionExecutor(collaborators, clock=clock)
    await executor.execute(_order(priority='whenever'))
    assert recorder.orders[0][1].priority == 'routine'


@pytest.mark.asyncio
async def test_invalid_category_is_rejected_without_side_effects(collaborators, recorder, clock):
    executor = ActionExecutor(collaborators, clock=clock)
    result = await executor.execute(_order(category='astrology'))

    assert not result.success
    assert 'Unknown order category' in result.message
    assert recorder.orders == []


@pytest.mark.asyncio
async def test_note_and_escalation(collaborators, recorder, clock):
    executor = ActionExecutor(collaborators, clock=clock)
    note = await executor.execute(NoteAction(patient_id='P-001', content=' family updated '))
    escalation = await executor.execute(
        NoteAction(patient_id='P-001', content='needs ICU review', note_type='Escalation', is_escalation=True)
    )

    assert note.message == 'Added note to patient'
    assert escalation.message == 'Escalation note added'
    assert recorder.notes == [('P-001', 'family updated', False), ('P-001', 'needs ICU review', True)]


@pytest.mark.asyncio
async def test_empty_note_fails(collaborators, recorder, clock):
    result = await ActionExecutor(collaborators, clock=clock).execute(NoteAction(patient_id='P-001', content='  '))
    assert not result.success
    assert recorder.notes == []


@pytest.mark.asyncio
async def test_navigation(collaborators, recorder, clock):
    result = await ActionExecutor(collaborators, clock=clock).execute(NavigateAction(route='/beds'))
    assert result.success
    assert result.message == 'Navigating to /beds'
    assert recorder.routes == ['/beds']


@pytest.mark.asyncio
async def test_workflow_is_advisory_only(collaborators, recorder, clock):
    executor = ActionExecutor(collaborators, clock=clock)
    result = await executor.execute(WorkflowAction(workflow_id='fever-workup', patient_id='P-001'))

    assert result.success
    assert result.data == {'orders': list(WORKFLOW_BUNDLES['fever-workup'].orders)}
    assert recorder.orders == []

    unknown = await executor.execute(WorkflowAction(workflow_id='sepsis-six'))
    assert not unknown.success


@pytest.mark.asyncio
async def test_collaborator_failure_is_reported_not_raised(clock):
    def failing_order(patient_id, draft):
        raise ConnectionError('orders service down')

    collaborators = ClinicalCollaborators(add_order=failing_order, add_note=lambda *a: None, go_to=lambda r: None)
    result = await ActionExecutor(collaborators, clock=clock).execute(_order())

    assert not result.success
    assert result.message == 'Failed to create order: orders service down'


@pytest.mark.asyncio
async def test_async_collaborator_failure(clock):
    async def failing_route(route):
        raise RuntimeError('router unavailable')

    collaborators = ClinicalCollaborators(add_order=lambda *a: None, add_note=lambda *a: None, go_to=failing_route)
    result = await ActionExecutor(collaborators, clock=clock).execute(NavigateAction(route='/'))
    assert result.message == 'Failed to navigate: router unavailable'
