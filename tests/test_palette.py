from clinassist.actions import NavigateAction, OrderAction
from clinassist.palette import INTENT_TOGGLE_DARK_MODE, PALETTE_PATIENT_LIMIT, build_commands, search
from clinassist.procedures import all_procedures
from clinassist.roster import coerce_roster

from conftest import make_patient


def test_commands_without_focus(roster):
    commands = build_commands(roster)
    ids = [command.id for command in commands]

    assert ids[:5] == ['nav-dashboard', 'nav-beds', 'nav-triage', 'ask-assistant', 'toggle-dark-mode']
    assert ids[5:] == ['open-P-001', 'open-P-002', 'open-P-003']
    assert commands[5].action == NavigateAction('/patient/P-001/medview')
    assert not any(command.id.startswith('order-') for command in commands)


def test_patient_entries_are_capped():
    many = coerce_roster([make_patient(id=f'P-{index:03d}', name=f'Patient {index}') for index in range(15)])
    patients = [command for command in build_commands(many) if command.category == 'patients']
    assert len(patients) == PALETTE_PATIENT_LIMIT


def test_focus_adds_procedure_orders(roster):
    commands = build_commands(roster, roster[1])
    orders = [command for command in commands if command.id.startswith('order-')]

    assert len(orders) == len(all_procedures())
    cbc = next(command for command in orders if command.id == 'order-cbc')
    assert cbc.action == OrderAction(
        patient_id='P-002', category='investigation', sub_type='cbc', label='CBC', priority='routine'
    )


def test_empty_query_returns_everything(roster):
    commands = build_commands(roster)
    assert search(commands, '') == commands
    assert search(commands, '   ') == commands


def test_ranking_prefix_then_substring_then_description(roster):
    commands = build_commands(roster)
    assert [command.id for command in search(commands, 'open')] == [
        'open-P-001',
        'open-P-002',
        'open-P-003',
        'ask-assistant',
    ]
    assert [command.id for command in search(commands, 'DARK')] == ['toggle-dark-mode']
    assert search(commands, 'dark')[0].intent == INTENT_TOGGLE_DARK_MODE
    assert [command.id for command in search(commands, 'ward')] == ['nav-beds']


def test_substring_outranks_description_match(roster):
    commands = build_commands(roster, roster[0])
    results = [command.id for command in search(commands, 'ecg')]
    assert results[0] == 'order-ecg'


def test_no_match_returns_empty(roster):
    assert search(build_commands(roster), 'zzz') == []
