from __future__ import annotations

from typing import Dict, List, Optional

from .builder_adult import AdultRecordBuilder, final_diluent
from .builder_base import Row
from .canonicalize import CanonicalizeOptions
from .formatting import format_text_array, remove_newlines, safe_get_value
from .models import Formula, Medication

RECONSTITUTION_COLUMN = "Reconstitution Solution"
FINAL_CONCENTRATION_COLUMN = "Final Concentration"


def compatible_diluents(value: Optional[str]) -> Optional[str]:
    """Comma separated reconstitution solutions as an array literal, or None."""

    if not isinstance(value, str) or not value.strip() or value.strip() == "N/A":
        return None
    return format_text_array(value.split(","))


class NeonatalRecordBuilder(AdultRecordBuilder):
    """Same sheet layout as the adult formulary with neonatal BUD and dilution columns."""

    source_name = "neonatal"
    medication_type = "neonatal"
    default_canonicalize = CanonicalizeOptions(div_mode="strip", nbsp_mode="break")

    hazard_column = "Hazardous Risk"
    references_column = "Neonatal Text References"

    def medication_type_for(self, index: int) -> str:
        return self.medication_type

    def build_medication(self, row: Row, index: int) -> Optional[Medication]:
        medication = super().build_medication(row, index)
        if medication is None:
            return None
        medication.vial_information = []
        medication.vial_compatible_diluent = compatible_diluents(row.get(RECONSTITUTION_COLUMN))
        return medication

    def ingredient(self, value: Optional[str]) -> Optional[str]:
        return remove_newlines(safe_get_value(value)) or None

    def final_solution_information(self, row: Row) -> List[Dict[str, Optional[str]]]:
        return [
            {
                "room_temp_BUD": row.get("Neonatal Room Temp BUD"),
                "refrigerated_BUD": row.get("Neonatal Fridge BUD"),
                "product_final_concentration": row.get(FINAL_CONCENTRATION_COLUMN),
                "product_final_diluent": final_diluent(row.get("Dilution Solution")),
            }
        ]

    def build_formula(self, row: Row, medication_id: int) -> Optional[Formula]:
        formula = super().build_formula(row, medication_id)
        if formula is not None:
            formula.strength = row.get(FINAL_CONCENTRATION_COLUMN) or ""
        return formula
