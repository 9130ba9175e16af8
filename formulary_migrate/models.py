from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional

from .delta import missing_document, placeholder_document

DEFAULT_UPDATE_SUMMARY = placeholder_document("Imported from spreadsheet")


@dataclass(frozen=True)
class RecordDefaults:
    pharmacy_id: int = 55
    created_by: int = -999
    edited_by: int = -999
    status: Optional[str] = None


@dataclass
class Medication:
    name: str
    medication_type: str
    pharmacy_id: int
    created_by: int
    edited_by: int
    status: str
    brand_name: str = ""
    notes: str = ""
    hazard_risk: Optional[str] = None
    references_data: str = "{}"
    vial_information: List[Dict[str, Any]] = field(default_factory=list)
    vial_compatible_diluent: Optional[str] = None
    update_summary: str = DEFAULT_UPDATE_SUMMARY

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class Formula:
    medication_id: int
    dosage_form: str
    pharmacy_id: int
    created_by: int
    edited_by: int
    status: str
    strength: str = ""
    container_closure_system: str = ""
    light_protect: str = ""
    type: Optional[List[str]] = None
    prime_with_active: bool = False
    special_instructions: str = field(default_factory=lambda: missing_document("special instructions"))
    compounding_procedure: str = field(default_factory=lambda: missing_document("procedure"))
    quality_review: str = field(default_factory=lambda: missing_document("quality review"))
    final_solution_information: List[Dict[str, Any]] = field(default_factory=list)
    equipment: str = "{}"
    disposable_supplies: str = "{}"
    waste_management: str = "{}"
    ingredients: List[Dict[str, str]] = field(default_factory=list)
    final_appearance: Optional[str] = None
    references_data: str = "{}"
    update_summary: str = DEFAULT_UPDATE_SUMMARY

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
