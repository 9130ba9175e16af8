from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Dict, Optional, Tuple

from .models import Formula, Medication
from .store_base import RecordStore

LOGGER = logging.getLogger(__name__)


class JsonlRecordStore(RecordStore):
    """
    Dry-run store: appends each record as one JSON line and hands out
    sequential ids, using the same duplicate keys as the database.
    """

    def __init__(self, path: Path) -> None:
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._handle = self.path.open("w", encoding="utf-8")
        self._next_id = 1
        self._medications: Dict[Tuple[int, str, str, str], int] = {}
        self._formulas: Dict[Tuple[int, int, str], int] = {}

    def _write(self, table: str, record_id: int, record: Dict) -> None:
        self._handle.write(json.dumps({"table": table, "id": record_id, "record": record}, ensure_ascii=False) + "\n")
        self._handle.flush()

    def _allocate_id(self) -> int:
        record_id = self._next_id
        self._next_id += 1
        return record_id

    def find_medication_id(
        self,
        pharmacy_id: int,
        name: str,
        brand_name: str,
        medication_type: str,
    ) -> Optional[int]:
        return self._medications.get((pharmacy_id, name, brand_name, medication_type))

    def find_formula_id(self, pharmacy_id: int, medication_id: int, dosage_form: str) -> Optional[int]:
        return self._formulas.get((pharmacy_id, medication_id, dosage_form))

    def insert_medication(self, medication: Medication) -> int:
        record_id = self._allocate_id()
        key = (medication.pharmacy_id, medication.name, medication.brand_name, medication.medication_type)
        self._medications.setdefault(key, record_id)
        self._write("medication", record_id, medication.to_dict())
        return record_id

    def insert_formula(self, formula: Formula) -> int:
        record_id = self._allocate_id()
        key = (formula.pharmacy_id, formula.medication_id, formula.dosage_form)
        self._formulas.setdefault(key, record_id)
        self._write("formulation", record_id, formula.to_dict())
        return record_id

    def close(self) -> None:
        if not self._handle.closed:
            self._handle.close()
            LOGGER.info("Wrote dry-run records to %s", self.path)
