from clinassist.roster import coerce_patient, coerce_roster, find_patient

from conftest import make_patient


def test_nested_triage_and_history_are_lifted():
    patient = coerce_patient(make_patient())

    assert patient.triage_level == 'Yellow'
    assert patient.history.drug_history == 'Amlodipine 5mg'
    assert patient.history.allergy_history[0].substance == 'Penicillin'
    assert patient.registration_time.tzinfo is not None
    assert patient.first_name == 'Asha'


def test_vitals_accept_legacy_keys_and_blanks():
    patient = coerce_patient(make_patient(vitals={'hr': 112, 'temp': 38.9, 'spo2': '', 'bp_sys': 150}))
    vitals = patient.vitals

    assert vitals.pulse == 112
    assert vitals.temp_c == 38.9
    assert vitals.spo2 is None
    assert vitals.bp_sys == 150


def test_leading_complaint_prefers_chief_complaints():
    patient = coerce_patient(make_patient(
        chiefComplaints=['', 'Vomiting'],
        clinicalFile={'sections': {'history': {'complaints': 'Abdominal pain'}}},
    ))
    assert patient.leading_complaint == 'Vomiting'

    fallback = coerce_patient(make_patient(
        chiefComplaints=[],
        clinicalFile={'sections': {'history': {'complaints': 'Abdominal pain'}}},
    ))
    assert fallback.leading_complaint == 'Abdominal pain'
    assert fallback.has_documented('complaints')
    assert not fallback.has_documented('allergy_history')


def test_free_text_allergy_history_counts_as_documented():
    patient = coerce_patient(make_patient(clinicalFile={'sections': {'history': {'allergy_history': 'NKDA'}}}))
    assert patient.has_documented('allergy_history')


def test_roster_helpers(roster):
    assert coerce_roster(None) == []
    assert coerce_roster(roster) == roster
    assert find_patient(roster, 'P-003').name == 'Meera Nair'
    assert find_patient(roster, 'P-999') is None
    assert find_patient(roster, None) is None


def test_invalid_entries_are_dropped_from_the_roster():
    patients = coerce_roster([
        make_patient(id='P-010', vitals={'spo2': 80}),
        make_patient(id='P-011', vitals={'spo2': 'n/a'}),
        {'name': 'No identifier'},
    ])

    assert [patient.id for patient in patients] == ['P-010']
    assert patients[0].vitals.spo2 == 80.0
