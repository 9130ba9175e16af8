from __future__ import annotations

import json
import logging
from typing import Any, Dict, List, Optional

from sqlalchemy import create_engine, text
from sqlalchemy.engine import URL, Connection, Engine
from sqlalchemy.exc import SQLAlchemyError

from .config import Settings, validate_identifier
from .models import Formula, Medication
from .store_base import RecordStore, RecordStoreError

LOGGER = logging.getLogger(__name__)

MEDICATION_LOOKUP_SQL = """
SELECT id, live_id
FROM {schema}.medication
WHERE pharmacy_id = :pharmacy_id AND name = :name AND brand_name = :brand_name
  AND medication_type = :medication_type
ORDER BY id ASC
LIMIT 1
"""

FORMULA_LOOKUP_SQL = """
SELECT id, live_id
FROM {schema}.formulation
WHERE pharmacy_id = :pharmacy_id AND medication_id = :medication_id AND dosage_form = :dosage_form
ORDER BY id ASC
LIMIT 1
"""

INSERT_MEDICATION_SQL = """
INSERT INTO {schema}.medication (
  name, brand_name, notes, hazard_risk, references_data,
  vial_information, status, pharmacy_id, created_by,
  edited_by, medication_type, vial_compatible_diluent, update_summary
)
VALUES (
  :name, :brand_name, :notes, :hazard_risk, :references_data,
  CAST(:vial_information AS jsonb[]), :status, :pharmacy_id, :created_by,
  :edited_by, :medication_type, :vial_compatible_diluent, :update_summary
)
RETURNING id
"""

INSERT_FORMULA_SQL = """
INSERT INTO {schema}.formulation (
  dosage_form, strength, container_closure_system, light_protect, type, prime_with_active,
  special_instructions, final_solution_information, equipment,
  disposable_supplies, waste_management, ingredients, compounding_procedure,
  quality_review, final_appearance, references_data, created_by,
  edited_by, pharmacy_id, medication_id, status, update_summary
)
VALUES (
  :dosage_form, :strength, :container_closure_system, :light_protect, :type, :prime_with_active,
  :special_instructions, CAST(:final_solution_information AS jsonb[]), :equipment,
  :disposable_supplies, :waste_management, CAST(:ingredients AS jsonb[]), :compounding_procedure,
  :quality_review, :final_appearance, :references_data, :created_by,
  :edited_by, :pharmacy_id, :medication_id, :status, :update_summary
)
RETURNING id
"""


def create_db_engine(settings: Settings) -> Engine:
    url = URL.create(
        "postgresql+psycopg2",
        username=settings.db_user or None,
        password=settings.db_password or None,
        host=settings.db_host,
        port=settings.db_port,
        database=settings.db_name or None,
        query={"sslmode": settings.db_sslmode} if settings.db_sslmode else {},
    )
    return create_engine(url, pool_pre_ping=True)


def _json_array(items: List[Dict[str, Any]]) -> List[str]:
    return [json.dumps(item, ensure_ascii=False) for item in items]


def _resolved_id(row) -> Optional[int]:
    if row is None:
        return None
    record_id, live_id = row[0], row[1]
    return live_id if live_id is not None else record_id


class PostgresRecordStore(RecordStore):
    """
    Writes through one explicitly passed SQLAlchemy connection.

    Every insert is committed on its own; a failed statement is rolled back so
    the connection stays usable for the next row.
    """

    def __init__(self, connection: Connection, schema: str = "phormulary_dev") -> None:
        self.connection = connection
        self.schema = validate_identifier(schema)

    def _sql(self, template: str):
        return text(template.format(schema=self.schema))

    def _execute(self, template: str, params: Dict[str, Any], commit: bool = False):
        try:
            result = self.connection.execute(self._sql(template), params)
            row = result.fetchone()
            if commit:
                self.connection.commit()
            return row
        except SQLAlchemyError as exc:
            self.connection.rollback()
            raise RecordStoreError(str(exc)) from exc

    def find_medication_id(
        self,
        pharmacy_id: int,
        name: str,
        brand_name: str,
        medication_type: str,
    ) -> Optional[int]:
        row = self._execute(
            MEDICATION_LOOKUP_SQL,
            {
                "pharmacy_id": pharmacy_id,
                "name": name,
                "brand_name": brand_name,
                "medication_type": medication_type,
            },
        )
        return _resolved_id(row)

    def find_formula_id(self, pharmacy_id: int, medication_id: int, dosage_form: str) -> Optional[int]:
        row = self._execute(
            FORMULA_LOOKUP_SQL,
            {"pharmacy_id": pharmacy_id, "medication_id": medication_id, "dosage_form": dosage_form},
        )
        return _resolved_id(row)

    def insert_medication(self, medication: Medication) -> int:
        params = medication.to_dict()
        params["vial_information"] = _json_array(medication.vial_information)
        row = self._execute(INSERT_MEDICATION_SQL, params, commit=True)
        if row is None:
            raise RecordStoreError(f"Insert of medication '{medication.name}' returned no id")
        return row[0]

    def insert_formula(self, formula: Formula) -> int:
        params = formula.to_dict()
        params["final_solution_information"] = _json_array(formula.final_solution_information)
        params["ingredients"] = _json_array(formula.ingredients)
        row = self._execute(INSERT_FORMULA_SQL, params, commit=True)
        if row is None:
            raise RecordStoreError(f"Insert of formulation '{formula.dosage_form}' returned no id")
        return row[0]

    def close(self) -> None:
        self.connection.close()
