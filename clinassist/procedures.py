"""Catalogue of orderable procedures and investigations."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Optional


@dataclass(frozen=True)
class Procedure:
    sub_type: str
    label: str
    category: str
    default_priority: str = "routine"


_CATALOGUE: List[Procedure] = [
    Procedure("cbc", "CBC", "investigation"),
    Procedure("lft", "LFT", "investigation"),
    Procedure("rft", "RFT", "investigation"),
    Procedure("electrolytes", "Serum Electrolytes", "investigation"),
    Procedure("blood_culture", "Blood Culture", "investigation"),
    Procedure("dengue_ns1", "Dengue NS1", "investigation"),
    Procedure("troponin", "Troponin I", "investigation", "urgent"),
    Procedure("abg", "ABG", "investigation", "urgent"),
    Procedure("ecg", "12-lead ECG", "investigation", "urgent"),
    Procedure("fever_workup", "Fever Workup Panel", "investigation"),
    Procedure("chest_xray", "Chest X-Ray", "radiology"),
    Procedure("ct_scan", "CT Scan", "radiology", "urgent"),
    Procedure("iv_fluid", "IV Fluid Bolus", "medication", "STAT"),
    Procedure("bp_management", "Antihypertensive Management", "medication", "urgent"),
    Procedure("o2_nasal_cannula", "O2 Therapy - Nasal Cannula", "procedure", "urgent"),
    Procedure("o2_simple_mask", "O2 Therapy - Simple Face Mask", "procedure", "urgent"),
    Procedure("o2_venturi", "O2 Therapy - Venturi Mask", "procedure", "urgent"),
    Procedure("o2_nrb", "O2 Therapy - Non-Rebreather Mask", "procedure", "STAT"),
    Procedure("bipap", "BiPAP", "procedure", "urgent"),
    Procedure("cpap", "CPAP", "procedure", "urgent"),
    Procedure("hfnc", "High Flow Nasal Cannula (HFNC)", "procedure", "urgent"),
    Procedure("nebulization", "Nebulization", "procedure"),
    Procedure("intubation", "Intubation & Mechanical Ventilation", "procedure", "STAT"),
    Procedure("iv_cannulation", "IV Cannulation", "procedure"),
    Procedure("central_line", "Central Venous Catheter (CVC)", "procedure", "urgent"),
    Procedure("arterial_line", "Arterial Line", "procedure", "urgent"),
    Procedure("foley_catheter", "Foley Catheter Insertion", "procedure"),
    Procedure("ng_tube", "Nasogastric (NG) Tube Insertion", "procedure"),
    Procedure("chest_tube", "Intercostal Drain (ICD) / Chest Tube", "procedure", "urgent"),
    Procedure("lumbar_puncture", "Lumbar Puncture", "procedure", "urgent"),
    Procedure("io_monitoring", "Strict I/O Monitoring", "nursing"),
    Procedure("hourly_vitals", "Hourly Vitals", "nursing", "urgent"),
    Procedure("spo2_monitoring", "Continuous SpO2 Monitoring", "nursing"),
    Procedure("blood_sugar_qid", "Blood Sugar Monitoring (QID)", "nursing"),
    Procedure("dvt_prophylaxis", "DVT Prophylaxis", "nursing"),
    Procedure("pressure_sore_care", "Pressure Sore Care", "nursing"),
]

PROCEDURES: Dict[str, Procedure] = {procedure.sub_type: procedure for procedure in _CATALOGUE}


def get_procedure(sub_type: str) -> Optional[Procedure]:
    return PROCEDURES.get(sub_type)


def all_procedures() -> List[Procedure]:
    return list(_CATALOGUE)


def label_for(sub_type: str) -> str:
    procedure = PROCEDURES.get(sub_type)
    return procedure.label if procedure else sub_type


__all__ = ["Procedure", "PROCEDURES", "get_procedure", "all_procedures", "label_for"]
