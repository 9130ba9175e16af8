"""Insert-if-missing migration loop over spreadsheet rows."""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Tuple

from .builder_base import RecordBuilder
from .models import Formula, Medication
from .store_base import RecordStore

LOGGER = logging.getLogger(__name__)

Row = Dict[str, Any]


@dataclass
class MigrationStats:
    rows: int = 0
    skipped: int = 0
    failed: int = 0
    medications_inserted: int = 0
    medications_existing: int = 0
    formulas_inserted: int = 0
    formulas_existing: int = 0
    formulas_skipped: int = 0

    @property
    def ok(self) -> bool:
        return self.failed == 0

    def summary(self) -> str:
        return (
            f"{self.rows} row(s): {self.medications_inserted} medication(s) inserted, "
            f"{self.medications_existing} existing; {self.formulas_inserted} formulation(s) inserted, "
            f"{self.formulas_existing} existing, {self.formulas_skipped} without dosage form; "
            f"{self.skipped} skipped, {self.failed} failed"
        )


@dataclass
class PendingFormula:
    index: int
    row: Row
    medication_id: int
    dosage_form: str
    label: str


class MigrationPipeline:
    """
    Runs a :class:`RecordBuilder` over rows and writes through a :class:`RecordStore`.

    With ``workers > 1`` the formulation documents (the expensive part) are
    built in a thread pool; every write still happens in row order.
    """

    def __init__(self, builder: RecordBuilder, store: RecordStore, workers: int = 1) -> None:
        self.builder = builder
        self.store = store
        self.workers = max(1, int(workers))

    def run(self, rows: Sequence[Row]) -> MigrationStats:
        stats = MigrationStats(rows=len(rows))
        LOGGER.info("Starting to process %d row(s) with the %s builder", len(rows), self.builder.source_name)
        pending: List[PendingFormula] = []
        for index, row in enumerate(rows):
            item = self._prepare_row(index, row, stats)
            if item is None:
                continue
            if self.workers == 1:
                self._persist_formula(item, self._build_formula(item), stats)
            else:
                pending.append(item)

        if pending:
            with ThreadPoolExecutor(max_workers=self.workers) as executor:
                built = list(executor.map(self._build_formula, pending))
            for item, result in zip(pending, built):
                self._persist_formula(item, result, stats)

        LOGGER.info("Data processing complete: %s", stats.summary())
        return stats

    def _prepare_row(self, index: int, row: Row, stats: MigrationStats) -> Optional[PendingFormula]:
        """Resolve the medication id and decide whether the row still needs a formulation."""

        row_number = index + 1
        try:
            medication = self.builder.build_medication(row, index)
            if medication is None:
                LOGGER.warning("Row %d skipped: missing or invalid %s.", row_number, self.builder.name_column)
                stats.skipped += 1
                return None
            medication_id = self._ensure_medication(row_number, medication, stats)

            dosage_form = self.builder.dosage_form(row)
            label = f"{medication.name} {dosage_form}"
            if not dosage_form:
                LOGGER.warning("Row %d: Missing Dosage Form. Skipping formula insertion.", row_number)
                stats.formulas_skipped += 1
                return None
            existing = self.store.find_formula_id(medication.pharmacy_id, medication_id, dosage_form)
            if existing is not None:
                LOGGER.info("Row %d: Formula '%s' already exists.", row_number, label)
                stats.formulas_existing += 1
                return None
        except Exception as exc:
            LOGGER.error("Row %d: Error processing medication: %s", row_number, exc)
            stats.failed += 1
            return None
        LOGGER.info("Row %d: Processing '%s'...", row_number, label)
        return PendingFormula(index, row, medication_id, dosage_form, label)

    def _ensure_medication(self, row_number: int, medication: Medication, stats: MigrationStats) -> int:
        existing = self.store.find_medication_id(
            medication.pharmacy_id,
            medication.name,
            medication.brand_name,
            medication.medication_type,
        )
        if existing is not None:
            LOGGER.info("Row %d: Medication '%s' already exists with ID %s.", row_number, medication.name, existing)
            stats.medications_existing += 1
            return existing
        medication_id = self.store.insert_medication(medication)
        LOGGER.info("Row %d: Medication '%s' inserted successfully with ID: %s", row_number, medication.name, medication_id)
        stats.medications_inserted += 1
        return medication_id

    def _build_formula(self, item: PendingFormula) -> Tuple[Optional[Formula], Optional[Exception]]:
        try:
            return self.builder.build_formula(item.row, item.medication_id), None
        except Exception as exc:
            return None, exc

    def _persist_formula(
        self,
        item: PendingFormula,
        result: Tuple[Optional[Formula], Optional[Exception]],
        stats: MigrationStats,
    ) -> None:
        row_number = item.index + 1
        formula, error = result
        if error is not None:
            LOGGER.error("Row %d: Error building formula for '%s': %s", row_number, item.label, error)
            stats.failed += 1
            return
        if formula is None:
            stats.formulas_skipped += 1
            return
        try:
            # Two rows of one batch can map to the same formulation.
            if self.store.find_formula_id(formula.pharmacy_id, formula.medication_id, formula.dosage_form) is not None:
                LOGGER.info("Row %d: Formula '%s' already exists.", row_number, item.label)
                stats.formulas_existing += 1
                return
            self.store.insert_formula(formula)
        except Exception as exc:
            LOGGER.error("Row %d: Error inserting formula for '%s': %s", row_number, item.label, exc)
            stats.failed += 1
            return
        LOGGER.info("Row %d: Formula for '%s' inserted successfully.", row_number, item.label)
        stats.formulas_inserted += 1
