"""
Chemotherapy formulary rows.

The chemo export is a query dump with one column per ingredient slot, several
equipment/supply slot columns and procedure HTML that embeds a FINAL
APPEARANCE section and a reference to a cleaning photo.
"""

from __future__ import annotations

import logging
import re
from typing import Dict, List, Optional, Tuple

from .builder_base import RecordBuilder, Row
from .canonicalize import CanonicalizeOptions
from .formatting import cell_text, format_text_array, safe_get_value, split_lines
from .image_hashes import resolve_image_hash
from .models import Formula, Medication

LOGGER = logging.getLogger(__name__)

INVALID_PAGE_NUMBER = "999"
PLACEHOLDER = "PLACEHOLDER"
DEFAULT_FORMULA_REFERENCE = "USP 797"

HAZARD_CATEGORIES = {
    "Hazardous - Antineoplastic": "Antineoplastic",
    "Hazardous - NonAntineoplastic": "Non-Antineoplastic",
    "Hazardous - Reproductive toxin": "Reproductive Toxin",
}
DISPENSE_DOSAGE_FORMS = {
    "Syringe - SQ": "Subcutaneous Injection",
    "Chemo Syringe - SQ": "Subcutaneous Injection",
    "Syringe - IV": "Intravenous Injection",
    "Chemo Syringe - IV": "Intravenous Injection",
    "Chemo Syringe - intraARTERIAL": "Intra-ARTERIAL",
}
DEFAULT_DOSAGE_FORM = "Infusion"

INFUSION_BAG_DILUENTS = {
    "0.9% Sodium Chloride Injection": "NS",
    "0.9% Sodium Chloride Injection (non-PVC)": "NS",
    "Dextrose 5% Water Injection": "D5W",
}
NS_QS_DILUENTS = frozenset(
    {
        "0.9% Sodium Chloride",
        "0.9% Sodium Chloride (PF)",
        "0.9% Sodium Chloride (PF) Injection",
        "0.9% Sodium Chloride (PF) Injection, USP",
        "0.9% Sodium Chloride for Injection",
        "0.9% Sodium Chloride Injection",
        "0.9% Sodium Chloride Injection (PF)",
    }
)

INGREDIENT_ORDER = (
    "Ing1", "Ing5", "Ing2", "Ing6", "Ing3", "Ing7", "Ing4", "Ing8",
    "Ing9", "Ing10", "Ing11", "Ing12", "Ing13", "Ing14", "Ing15",
)
STANDARD_INGREDIENTS = frozenset({"Ing2", "Ing3", "Ing4", "Ing9", "Ing11", "Ing13", "Ing14", "Ing15"})
VIAL_DILUENTS = frozenset({"Ing5", "Ing6", "Ing7", "Ing8", "Ing10", "Ing12"})
ALTERNATIVE_DILUENTS = (("AltDiluent", "AltDiluentVolume"), ("AltDiluent1", "AltDilutentVolume1"))

EQUIPMENT_COLUMNS = ("Equipment", "Equip1", "Equp2", "Equip3")
WASTE_COLUMNS = ("WasteManagement", "WasteManagement1", "WasteManagement2", "WasteManagement3")
SUPPLY_COLUMNS = tuple(f"DispSupply{i}" for i in range(1, 14))
SPECIAL_INSTRUCTION_COLUMNS = ("SpecialInstructions", "StorageHandling", "RecommendedContainer", "InfusionBagNote")
QUALITY_REVIEW_COLUMNS = ("QRInitial", "QualityControlReview")

FINAL_APPEARANCE = "FINAL APPEARANCE"
_FINAL_APPEARANCE_BLOCK_RE = re.compile(
    r"<div[^>]*>(?:(?!<div\b).)*?FINAL APPEARANCE.*?</div>[\s\S]*?<([a-z]+)[^>]*>.*?</\1>", re.IGNORECASE
)
_TAG_RE = re.compile(r"<[^>]+>")
_SPACES_RE = re.compile(r"\s+")
_SECTION_HEADER_RE = re.compile(r"\b([A-Z\s]{4,})\b")
_LEADING_NUMBER_RE = re.compile(r"^\d+[.)]\s*")
_REFERENCE_NUMBER_RE = re.compile(r"^\d+\.\s*")
_BRAND_RE = re.compile(r"\(([^)]+)\)")
_PRESCRIBING_MARKERS = ("prescribing information]", "product information", "product monograph")


def extract_brand_name(value: Optional[str]) -> str:
    match = _BRAND_RE.search(value or "")
    return match.group(1) if match else ""


def hazard_category(value: Optional[str]) -> str:
    return HAZARD_CATEGORIES.get(value or "", "Not Hazardous")


def light_protection(value: Optional[str]) -> str:
    value = (value or "").strip()
    if "Yes" not in value:
        return "No Protection Required"
    if "refrigerated" in value:
        if "Riabni" in value:
            return "Protect From Light If Riabni Refrigerated"
        return "Protect From Light If Refrigerated"
    if "storage" in value:
        return "Protect From Light During Storage"
    return "Protect From Light"


def final_diluent(row: Row) -> str:
    """Infusion bag wins over an NS quantity-sufficient diluent, then compatible solutions."""

    infusion_bag = cell_text(row.get("InfusionBag"))
    if infusion_bag in INFUSION_BAG_DILUENTS:
        return INFUSION_BAG_DILUENTS[infusion_bag]
    if cell_text(row.get("QSDiluent")) in NS_QS_DILUENTS:
        return "NS"
    return cell_text(row.get("CompatibleSolutions")) or PLACEHOLDER


def split_references(value: Optional[str]) -> Tuple[List[str], List[str]]:
    """
    Split the numbered reference list into (medication, formulation) references.

    The medication keeps the first reference plus every prescribing-information
    style reference; the formulation keeps the rest, or ``USP 797`` if nothing
    is left.
    """

    references = [_REFERENCE_NUMBER_RE.sub("", line).strip() for line in split_lines(value)]
    references = [ref for ref in references if ref]
    medication_refs: List[str] = references[:1]
    for ref in references:
        if any(marker in ref.lower() for marker in _PRESCRIBING_MARKERS) and ref not in medication_refs:
            medication_refs.append(ref)
    formula_refs = [ref for ref in references if ref not in medication_refs]
    return medication_refs, formula_refs or [DEFAULT_FORMULA_REFERENCE]


def remove_final_appearance(html: str) -> str:
    return _FINAL_APPEARANCE_BLOCK_RE.sub("", html, count=1)


def extract_final_appearance(html: Optional[str]) -> Optional[str]:
    """Text between the FINAL APPEARANCE heading and the next upper-case heading."""

    if not html:
        return None
    text = _SPACES_RE.sub(" ", _TAG_RE.sub("", html)).strip()
    start = text.upper().find(FINAL_APPEARANCE)
    if start == -1:
        return None
    remaining = text[start + len(FINAL_APPEARANCE):]
    section_end = _SECTION_HEADER_RE.search(remaining)
    end = section_end.start() if section_end else len(remaining)
    appearance = _LEADING_NUMBER_RE.sub("", remaining[:end].strip())
    return appearance or None


def ordered_ingredients(row: Row) -> List[Dict[str, str]]:
    """
    Ingredient slots in display order. A slot with an amount but no name reuses
    the last name of its group; vial diluent slots are labelled as such.
    """

    ingredients: List[Dict[str, str]] = []
    last_standard = ""
    last_vial_diluent = ""
    for key in INGREDIENT_ORDER:
        amount = cell_text(row.get(f"{key}supply"))
        name = cell_text(row.get(key))
        if not name and amount:
            if key in STANDARD_INGREDIENTS:
                name = last_standard
            elif key in VIAL_DILUENTS:
                name = last_vial_diluent
        if not name:
            continue
        if key in VIAL_DILUENTS:
            if not name.startswith("Vial Diluent: "):
                name = f"Vial Diluent: {name}"
            last_vial_diluent = name
        else:
            last_standard = name
        ingredients.append({"name": name, "amount": amount})

    for name_key, volume_key in ALTERNATIVE_DILUENTS:
        name = cell_text(row.get(name_key))
        if name:
            ingredients.append({"name": f"Alternative Diluent: {name}", "amount": cell_text(row.get(volume_key))})

    qs_diluent = cell_text(row.get("QSDiluent"))
    if qs_diluent:
        ingredients.append({"name": f"QS Diluent: {qs_diluent}", "amount": cell_text(row.get("QSDiluentVolume"))})

    infusion_bag = cell_text(row.get("InfusionBag"))
    if infusion_bag:
        ingredients.append(
            {"name": f"Infusion Bag: {infusion_bag}", "amount": cell_text(row.get("InfusionBagVolume"))}
        )
    return ingredients


def _joined_html(row: Row, columns) -> str:
    return "".join(str(row[column]) for column in columns if safe_get_value(row.get(column)))


class ChemoRecordBuilder(RecordBuilder):
    source_name = "chemo"
    medication_type = "chemo,-mab,-misc"
    name_column = "GenericName"
    dosage_form_column = "DosageForm"
    default_status = "publish"
    default_canonicalize = CanonicalizeOptions(div_mode="paragraph", nbsp_mode="break")

    def is_valid_row(self, row: Row) -> bool:
        if cell_text(row.get("PageNumber")) == INVALID_PAGE_NUMBER:
            return False
        name = cell_text(row.get(self.name_column)).lower()
        return "placeholder" not in name and "place holder" not in name

    def dosage_form(self, row: Row) -> Optional[str]:
        """Text after the brand's closing parenthesis, else a form implied by the dispense type."""

        fallback = DISPENSE_DOSAGE_FORMS.get(row.get("DispenseType") or "", DEFAULT_DOSAGE_FORM)
        brand = cell_text(row.get("BrandName"))
        if not brand:
            return fallback
        closing = brand.find(")")
        if closing == -1:
            return brand
        return brand[closing + 1:].strip() or fallback

    def build_medication(self, row: Row, index: int) -> Optional[Medication]:
        if not self.is_valid_row(row):
            return None
        name = self.medication_name(row)
        if not name:
            return None
        medication = self.new_medication(row, name)
        medication.brand_name = extract_brand_name(row.get("BrandName"))
        medication.hazard_risk = hazard_category(row.get("HazardousCategory"))
        medication.references_data = format_text_array(split_references(row.get("References"))[0])
        return medication

    def compounding_procedure(self, row: Row) -> str:
        html = row.get("Procedures")
        if isinstance(html, str) and html.strip():
            html = remove_final_appearance(html)
        image_hash = resolve_image_hash(row.get("Pic"))
        if row.get("Pic") and image_hash is None:
            LOGGER.debug("No uploaded image for picture path %r", row.get("Pic"))
        return self.converter.convert_field(html, "procedure", image_hash=image_hash)

    def build_formula(self, row: Row, medication_id: int) -> Optional[Formula]:
        if not self.is_valid_row(row):
            return None
        dosage_form = self.dosage_form(row)
        formula = self.new_formula(medication_id, dosage_form)
        formula.container_closure_system = row.get("DispenseType") or ""
        formula.light_protect = light_protection(row.get("ProtectFromLight"))
        formula.final_solution_information = [
            {
                "room_temp_BUD": row.get("BUDRoom"),
                "refrigerated_BUD": row.get("BUDFridge"),
                "product_final_concentration": row.get("FinalConcentration") or "Varies",
                "product_final_diluent": final_diluent(row),
            }
        ]
        formula.ingredients = ordered_ingredients(row)
        formula.equipment = format_text_array(row.get(column) for column in EQUIPMENT_COLUMNS)
        formula.waste_management = format_text_array(row.get(column) for column in WASTE_COLUMNS)
        formula.disposable_supplies = format_text_array(row.get(column) for column in SUPPLY_COLUMNS)
        formula.compounding_procedure = self.compounding_procedure(row)
        formula.special_instructions = self.converter.convert_field(
            _joined_html(row, SPECIAL_INSTRUCTION_COLUMNS), "special instructions"
        )
        formula.quality_review = self.converter.convert_field(
            _joined_html(row, QUALITY_REVIEW_COLUMNS), "quality review"
        )
        formula.final_appearance = extract_final_appearance(row.get("Procedures")) or PLACEHOLDER
        formula.references_data = format_text_array(split_references(row.get("References"))[1])
        return formula
