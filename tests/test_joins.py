import uuid

import pytest
from sqlalchemy import event
from sqlalchemy.exc import OperationalError

from autonostalgia.models.models import AssessmentRequest, Profile
from autonostalgia.services import joins
from autonostalgia.services.assessments import ALL_REFERENCES, ASSESSOR, CUSTOMER, VEHICLE
from autonostalgia.services.errors import JoinError
from autonostalgia.services.joins import fetch_by_ids, hydrate, unique_ids
from autonostalgia.services.serializers import serialize_hydrated_assessment


class _Row:
    def __init__(self, **kw):
        self.__dict__.update(kw)


def test_unique_ids_skips_nulls_and_keeps_first_seen_order():
    a, b = uuid.uuid4(), uuid.uuid4()
    rows = [_Row(fk=b), _Row(fk=None), _Row(fk=a), _Row(fk=b)]
    assert unique_ids(rows, "fk") == [b, a]


def test_hydrate_empty_rows_runs_no_query(db, engine):
    statements = []
    event.listen(engine, "before_cursor_execute", lambda *args: statements.append(args[2]))
    assert hydrate(db, [], *ALL_REFERENCES) == []
    assert statements == []


def test_fetch_by_ids_empty_is_empty(db):
    assert fetch_by_ids(db, Profile, []) == {}


def test_hydrate_attaches_references_in_primary_order(db, customer, assessor, make_vehicle, make_request):
    v1 = make_vehicle(customer, "AAA111")
    v2 = make_vehicle(customer, "BBB222", make="Ford", model="Mustang", year=1968)
    r1 = make_request(v2, status="approved", assigned_assessor_id=assessor.id)
    r2 = make_request(v1)

    items = hydrate(db, [r1, r2], *ALL_REFERENCES)

    assert [i.row.id for i in items] == [r1.id, r2.id]
    assert items[0]["vehicle"].registration_number == "BBB222"
    assert items[0]["customer"].id == customer.id
    assert items[0]["assessor"].id == assessor.id
    assert items[1]["vehicle"].registration_number == "AAA111"
    assert items[1]["assessor"] is None


def test_dangling_reference_hydrates_to_none(db, customer, make_vehicle, make_request):
    vehicle = make_vehicle(customer)
    request = make_request(vehicle)
    db.delete(vehicle)
    db.commit()

    item = hydrate(db, [request], VEHICLE, CUSTOMER)[0]

    assert item["vehicle"] is None
    assert item["customer"].id == customer.id
    assert serialize_hydrated_assessment(hydrate(db, [request], *ALL_REFERENCES)[0])["vehicle"] is None


def test_one_query_per_model(db, engine, customer, assessor, make_vehicle, make_request):
    vehicles = [make_vehicle(customer, f"REG{n}") for n in range(3)]
    rows = [make_request(v, status="approved", assigned_assessor_id=assessor.id) for v in vehicles]

    statements = []
    event.listen(engine, "before_cursor_execute", lambda *args: statements.append(args[2]))
    hydrate(db, rows, VEHICLE, CUSTOMER, ASSESSOR)

    # customer and assessor both resolve against profiles: one query for them, one for vehicles
    assert len([s for s in statements if "FROM profiles" in s]) == 1
    assert len([s for s in statements if "FROM vehicles" in s]) == 1


def test_rehydrating_from_fresh_queries_is_identical(db, customer, assessor, make_vehicle, make_request):
    vehicle = make_vehicle(customer, vin="VIN123", mileage=1000)
    request = make_request(vehicle, status="approved", assigned_assessor_id=assessor.id, scheduled_time="10:00")

    first = serialize_hydrated_assessment(hydrate(db, [request], *ALL_REFERENCES)[0])
    db.expire_all()
    again = db.query(AssessmentRequest).filter(AssessmentRequest.id == request.id).one()
    second = serialize_hydrated_assessment(hydrate(db, [again], *ALL_REFERENCES)[0])

    assert first == second
    assert first["customer"]["email"] == customer.email
    assert first["assessor"]["email"] == assessor.email


def test_sub_query_failure_aborts_the_whole_hydration(db, customer, make_vehicle, make_request, monkeypatch):
    request = make_request(make_vehicle(customer))

    def broken(*args, **kwargs):
        raise OperationalError("SELECT", {}, Exception("connection lost"))

    monkeypatch.setattr(db, "query", broken)
    with pytest.raises(JoinError):
        joins.hydrate(db, [request], VEHICLE)


def test_null_foreign_keys_hydrate_to_none(db):
    # references only ever read the fk attribute
    rows = [_Row(vehicle_id=None)]
    item = hydrate(db, rows, VEHICLE)[0]
    assert item["vehicle"] is None
    assert isinstance(item.row, _Row)
