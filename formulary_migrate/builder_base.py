from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Dict, Optional, Tuple

from .canonicalize import CanonicalizeOptions
from .convert import DeltaConverter
from .formatting import cell_text
from .models import Formula, Medication, RecordDefaults

Row = Dict[str, Any]


class RecordBuilder(ABC):
    """Maps one spreadsheet row to a medication and its formulation."""

    source_name: str = ""
    medication_type: str = ""
    name_column: str = ""
    dosage_form_column: str = ""
    default_status: str = "edit"
    default_canonicalize = CanonicalizeOptions()

    def __init__(self, converter: DeltaConverter, defaults: Optional[RecordDefaults] = None) -> None:
        self.converter = converter
        self.defaults = defaults or RecordDefaults()

    @property
    def status(self) -> str:
        return self.defaults.status or self.default_status

    def is_valid_row(self, row: Row) -> bool:
        return True

    def medication_name(self, row: Row) -> Optional[str]:
        return cell_text(row.get(self.name_column)) or None

    def dosage_form(self, row: Row) -> Optional[str]:
        return cell_text(row.get(self.dosage_form_column)) or None

    def new_medication(self, row: Row, name: str) -> Medication:
        return Medication(
            name=name,
            medication_type=self.medication_type,
            pharmacy_id=self.defaults.pharmacy_id,
            created_by=self.defaults.created_by,
            edited_by=self.defaults.edited_by,
            status=self.status,
        )

    def new_formula(self, medication_id: int, dosage_form: str) -> Formula:
        return Formula(
            medication_id=medication_id,
            dosage_form=dosage_form,
            pharmacy_id=self.defaults.pharmacy_id,
            created_by=self.defaults.created_by,
            edited_by=self.defaults.edited_by,
            status=self.status,
        )

    @abstractmethod
    def build_medication(self, row: Row, index: int) -> Optional[Medication]:
        """Return None when the row cannot produce a medication."""
        raise NotImplementedError

    @abstractmethod
    def build_formula(self, row: Row, medication_id: int) -> Optional[Formula]:
        """Return None when the row has no dosage form. Compiles the rich-text columns."""
        raise NotImplementedError

    def map_row(self, row: Row, index: int, medication_id: int = 0) -> Tuple[Optional[Medication], Optional[Formula]]:
        medication = self.build_medication(row, index)
        if medication is None:
            return None, None
        return medication, self.build_formula(row, medication_id)
