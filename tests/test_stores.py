import json

import pytest
from sqlalchemy.exc import OperationalError

from formulary_migrate.config import ConfigError
from formulary_migrate.models import Formula, Medication
from formulary_migrate.store_base import RecordStoreError
from formulary_migrate.store_jsonl import JsonlRecordStore
from formulary_migrate.store_postgres import PostgresRecordStore


class FakeResult:
    def __init__(self, row):
        self.row = row

    def fetchone(self):
        return self.row


class FakeConnection:
    def __init__(self, rows=None, error=None):
        self.rows = list(rows or [])
        self.error = error
        self.statements = []
        self.commits = 0
        self.rollbacks = 0
        self.closed = False

    def execute(self, clause, params):
        self.statements.append((str(clause), params))
        if self.error is not None:
            raise self.error
        return FakeResult(self.rows.pop(0) if self.rows else None)

    def commit(self):
        self.commits += 1

    def rollback(self):
        self.rollbacks += 1

    def close(self):
        self.closed = True


def medication(**overrides):
    values = dict(
        name="Acyclovir",
        medication_type="adult",
        pharmacy_id=55,
        created_by=-999,
        edited_by=-999,
        status="edit",
        vial_information=[{"vial_size": "500 mg (S)"}],
    )
    values.update(overrides)
    return Medication(**values)


def formula(**overrides):
    values = dict(
        medication_id=1,
        dosage_form="IV Syringe",
        pharmacy_id=55,
        created_by=-999,
        edited_by=-999,
        status="edit",
        ingredients=[{"name": "Acyclovir", "amount": "500 mg"}],
        final_solution_information=[{"product_final_diluent": "NS"}],
    )
    values.update(overrides)
    return Formula(**values)


def test_lookup_prefers_live_id():
    connection = FakeConnection(rows=[(10, 4), (11, None), None])
    store = PostgresRecordStore(connection, schema="phormulary_test")

    assert store.find_medication_id(55, "Acyclovir", "", "adult") == 4
    assert store.find_formula_id(55, 4, "IV Syringe") == 11
    assert store.find_formula_id(55, 4, "Vial") is None

    sql, params = connection.statements[0]
    assert "FROM phormulary_test.medication" in sql
    assert "ORDER BY id ASC" in sql
    assert params == {"pharmacy_id": 55, "name": "Acyclovir", "brand_name": "", "medication_type": "adult"}
    assert connection.commits == 0


def test_inserts_serialize_jsonb_arrays_and_commit():
    connection = FakeConnection(rows=[(21,), (22,)])
    store = PostgresRecordStore(connection)

    assert store.insert_medication(medication()) == 21
    assert store.insert_formula(formula()) == 22
    assert connection.commits == 2

    sql, params = connection.statements[0]
    assert "INSERT INTO phormulary_dev.medication" in sql
    assert "CAST(:vial_information AS jsonb[])" in sql
    assert params["vial_information"] == ['{"vial_size": "500 mg (S)"}']

    _, params = connection.statements[1]
    assert params["ingredients"] == ['{"name": "Acyclovir", "amount": "500 mg"}']
    assert params["final_solution_information"] == ['{"product_final_diluent": "NS"}']
    assert json.loads(params["compounding_procedure"]) == {"ops": [{"insert": "No procedure provided\n"}]}


def test_database_errors_roll_back_and_raise():
    connection = FakeConnection(error=OperationalError("INSERT", {}, Exception("connection reset")))
    store = PostgresRecordStore(connection)
    with pytest.raises(RecordStoreError):
        store.insert_medication(medication())
    assert connection.rollbacks == 1
    assert connection.commits == 0


def test_insert_without_returned_id_is_an_error():
    store = PostgresRecordStore(FakeConnection(rows=[None]))
    with pytest.raises(RecordStoreError):
        store.insert_formula(formula())


def test_schema_must_be_an_identifier():
    with pytest.raises(ConfigError):
        PostgresRecordStore(FakeConnection(), schema="dev; DROP TABLE medication")


def test_context_manager_closes_connection():
    connection = FakeConnection()
    with PostgresRecordStore(connection):
        pass
    assert connection.closed


def test_jsonl_store_assigns_ids_and_deduplicates(tmp_path):
    path = tmp_path / "out" / "records.jsonl"
    with JsonlRecordStore(path) as store:
        assert store.find_medication_id(55, "Acyclovir", "", "adult") is None
        medication_id = store.insert_medication(medication())
        assert store.find_medication_id(55, "Acyclovir", "", "adult") == medication_id
        assert store.find_medication_id(55, "Acyclovir", "Zovirax", "adult") is None

        formula_id = store.insert_formula(formula(medication_id=medication_id))
        assert store.find_formula_id(55, medication_id, "IV Syringe") == formula_id
        assert store.find_formula_id(55, medication_id, "Vial") is None

    lines = [json.loads(line) for line in path.read_text(encoding="utf-8").splitlines()]
    assert [(line["table"], line["id"]) for line in lines] == [("medication", 1), ("formulation", 2)]
    assert lines[1]["record"]["medication_id"] == 1
