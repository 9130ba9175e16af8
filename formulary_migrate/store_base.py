from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Optional

from .models import Formula, Medication


class RecordStoreError(RuntimeError):
    """Raised when a record cannot be looked up or written."""


class RecordStore(ABC):
    @abstractmethod
    def find_medication_id(
        self,
        pharmacy_id: int,
        name: str,
        brand_name: str,
        medication_type: str,
    ) -> Optional[int]:
        raise NotImplementedError

    @abstractmethod
    def find_formula_id(self, pharmacy_id: int, medication_id: int, dosage_form: str) -> Optional[int]:
        raise NotImplementedError

    @abstractmethod
    def insert_medication(self, medication: Medication) -> int:
        raise NotImplementedError

    @abstractmethod
    def insert_formula(self, formula: Formula) -> int:
        raise NotImplementedError

    def close(self) -> None:
        return None

    def __enter__(self) -> "RecordStore":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()
