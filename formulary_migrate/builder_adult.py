from __future__ import annotations

from typing import Dict, List, Optional

from .builder_base import RecordBuilder, Row
from .canonicalize import CanonicalizeOptions
from .formatting import (
    format_comma_string_to_array,
    format_newlines_to_array,
    safe_get_value,
)
from .models import Formula, Medication

OPHTHALMIC_START_INDEX = 250
PACKAGE_INSERT_REFERENCES = '{"Manufacturer Package Insert"}'

VIAL_BUD_COLUMN = "Vial BUD_*based on USP 797_"
VIAL_SIZE_COLUMN = "Vial Size_(M) = multiple dose vial; (S) = single dose"
VIAL_DILUENT_COLUMN = "Diluent Volume"
VIAL_CONCENTRATION_COLUMN = "Standard Vial Conc#*_* std Mfr conc or once reconstituted if app"
LIGHT_COLUMN = "Light Precautions 2,4:_PFL = protect from ambient/room light_NDS"
ROOM_BUD_COLUMN = "USP BUD_Room Temp_(max 48hr w/o sterility testing)"
FRIDGE_BUD_COLUMN = "USP BUD_Fridge_(max 14 days w/o sterility testing)"
CONCENTRATION_COLUMN = "Std Conc Range (final product) 5,8 unless otherwise noted"
DILUENT_COLUMN = "Compatibility (NS/D5W) - For compatibility in other solns refer"


def light_protection(value: Optional[str]) -> str:
    return "No Protection Required" if value == "NP" else "Protect From Light"


def final_diluent(value: Optional[str]) -> Optional[str]:
    return "Undiluted" if value == "N/A" else safe_get_value(value)


class AdultRecordBuilder(RecordBuilder):
    source_name = "adult"
    medication_type = "adult"
    name_column = "Product Name"
    dosage_form_column = "Modifier"
    default_status = "edit"
    default_canonicalize = CanonicalizeOptions(div_mode="strip", nbsp_mode="break")

    hazard_column = "USP 800 Hazardous"
    references_column = "Text References"
    procedure_column = "Procedure HTML"

    def medication_type_for(self, index: int) -> str:
        # The adult sheet lists ophthalmic products after the first 250 rows.
        return "ophthalmic" if index >= OPHTHALMIC_START_INDEX else self.medication_type

    def vial_information(self, row: Row) -> List[Dict[str, Optional[str]]]:
        return [
            {
                "vial_BUD": row.get(VIAL_BUD_COLUMN),
                "vial_size": row.get(VIAL_SIZE_COLUMN),
                "vial_diluent_amount": row.get(VIAL_DILUENT_COLUMN),
                "vial_final_concentration": row.get(VIAL_CONCENTRATION_COLUMN),
            }
        ]

    def build_medication(self, row: Row, index: int) -> Optional[Medication]:
        name = self.medication_name(row)
        if not name:
            return None
        medication = self.new_medication(row, name)
        medication.medication_type = self.medication_type_for(index)
        medication.hazard_risk = row.get(self.hazard_column)
        medication.references_data = PACKAGE_INSERT_REFERENCES
        medication.vial_information = self.vial_information(row)
        return medication

    def ingredient(self, value: Optional[str]) -> Optional[str]:
        return safe_get_value(value)

    def ingredients(self, row: Row) -> List[Dict[str, str]]:
        result: List[Dict[str, str]] = []
        for i in range(1, 4):
            name = self.ingredient(row.get(f"Ingredient {i}"))
            amount = self.ingredient(row.get(f"Amount {i}"))
            if name and amount:
                result.append({"name": name, "amount": amount})
        return result

    def final_solution_information(self, row: Row) -> List[Dict[str, Optional[str]]]:
        return [
            {
                "room_temp_BUD": row.get(ROOM_BUD_COLUMN),
                "refrigerated_BUD": row.get(FRIDGE_BUD_COLUMN),
                "product_final_concentration": row.get(CONCENTRATION_COLUMN),
                "product_final_diluent": final_diluent(row.get(DILUENT_COLUMN)),
            }
        ]

    def build_formula(self, row: Row, medication_id: int) -> Optional[Formula]:
        dosage_form = self.dosage_form(row)
        if not dosage_form:
            return None
        formula = self.new_formula(medication_id, dosage_form)
        formula.final_appearance = row.get("Appearance of Final Product")
        formula.compounding_procedure = self.converter.convert_field(row.get(self.procedure_column), "procedure")
        formula.ingredients = self.ingredients(row)
        formula.light_protect = light_protection(row.get(LIGHT_COLUMN))
        formula.final_solution_information = self.final_solution_information(row)
        formula.equipment = format_newlines_to_array(row.get("Equipment"))
        formula.disposable_supplies = format_newlines_to_array(row.get("Disposable Supplies"))
        formula.waste_management = format_newlines_to_array(row.get("Waste Management"))
        formula.references_data = format_comma_string_to_array(row.get(self.references_column), is_references=True)
        return formula
