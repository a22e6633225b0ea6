from datetime import date, datetime, timezone
from decimal import Decimal

import pytest

from backend.core.errors import NotFoundError, ValidationError
from backend.models.models import Fee
from backend.services import fees as fee_service
from backend.services import fines as fine_service
from backend.services import payments as payment_service


def _annual_payment(db_session, resident, now, status="succeeded", payment_date=None):
    payment = payment_service.record_payment(
        db_session,
        resident_id=resident.id,
        amount=Decimal("300.00"),
        payment_method="stripe",
        status=status,
        fee_type="Annual HOA Fee",
        payment_date=payment_date,
        now=now,
    )
    db_session.commit()
    return payment


def test_user_fees_for_homeowner_and_board_member(now):
    for user_type in ("homeowner", "board-member"):
        fees = fee_service.get_user_fees("7", user_type, has_paid=False, now=now)
        assert len(fees) == 1
        fee = fees[0]
        assert fee.id == "annual-2025-7"
        assert fee.name == "Annual HOA Fee"
        assert fee.amount == Decimal("300.00")
        assert fee.due_date == date(2025, 12, 31)
        assert fee.frequency == "Annually"
        assert fee.status == "Pending"
        assert fee.is_late is False
        assert "2025" in fee.description


@pytest.mark.parametrize("user_type", ["renter", "non-resident", "unknown"])
def test_user_fees_empty_for_non_fee_bearing_types(now, user_type):
    assert fee_service.get_user_fees("7", user_type, has_paid=False, now=now) == []


def test_synthetic_fee_reflects_payment_and_lateness():
    new_years_eve = datetime(2025, 12, 31, 23, 0, tzinfo=timezone.utc)
    paid = fee_service.get_user_fees("1", "homeowner", has_paid=True, now=new_years_eve)[0]
    assert paid.status == "Paid"
    assert paid.is_late is False

    # due_date is the last day of the year, so nothing is late within the year
    unpaid = fee_service.get_user_fees("1", "homeowner", has_paid=False, now=new_years_eve)[0]
    assert unpaid.is_late is False


def test_has_paid_annual_fee_requires_success_in_current_year(db_session, create_resident, now):
    owner = create_resident()
    assert fee_service.has_paid_annual_fee(db_session, owner.id, now=now) is False

    _annual_payment(db_session, owner, now, status="pending")
    _annual_payment(db_session, owner, now, payment_date=date(2024, 6, 1))
    assert fee_service.has_paid_annual_fee(db_session, owner.id, now=now) is False

    _annual_payment(db_session, owner, now, status="Paid")
    assert fee_service.has_paid_annual_fee(db_session, owner.id, now=now) is True


def test_fees_for_renter_are_empty_even_with_payments(db_session, create_resident, now):
    renter = create_resident(is_renter=True)
    _annual_payment(db_session, renter, now)
    assert fee_service.get_fees_for_resident(db_session, renter, now=now) == []


def test_homeowner_status_excludes_renters_and_marks_payment(db_session, create_resident, now):
    paid = create_resident(last_name="Adams")
    unpaid = create_resident(last_name="Baker", is_board_member=True)
    create_resident(last_name="Carter", is_renter=True)
    create_resident(last_name="Dunn", is_resident=False)
    _annual_payment(db_session, paid, now)

    statuses = fee_service.get_all_homeowners_payment_status(db_session, now=now)

    assert [row["last_name"] for row in statuses] == ["Adams", "Baker"]
    assert statuses[0]["has_paid"] is True
    assert statuses[0]["payment_status"] == "Paid"
    assert statuses[1]["id"] == unpaid.id
    assert statuses[1]["has_paid"] is False
    assert statuses[1]["user_type"] == "board-member"
    assert statuses[1]["annual_fee_amount"] == Decimal("300.00")


def test_year_fee_generation_duplicates_unless_skipping(db_session, create_resident, now):
    create_resident()
    create_resident(is_board_member=True)
    create_resident(is_renter=True)

    first = fee_service.create_year_fees_for_all_homeowners(db_session, 2026, now=now)
    assert first["count"] == 2
    assert first["total_amount"] == Decimal("600.00")

    again = fee_service.create_year_fees_for_all_homeowners(db_session, 2026, now=now)
    assert again["count"] == 2
    assert len(fee_service.get_yearly_fees(db_session, 2026)) == 4

    skipped = fee_service.create_year_fees_for_all_homeowners(db_session, 2026, skip_existing=True, now=now)
    assert skipped["count"] == 0
    assert len(fee_service.get_yearly_fees(db_session, 2026)) == 4

    fee = fee_service.get_yearly_fees(db_session, 2026)[0]
    assert fee.name == "Annual HOA Fee 2026"
    assert fee.year == 2026
    assert fee.due_date == date(2026, 12, 31)
    assert fee.status == "Pending"


def test_skip_existing_fills_in_new_homeowners(db_session, create_resident, now):
    create_resident()
    fee_service.create_year_fees_for_all_homeowners(db_session, 2026, amount=Decimal("250"), now=now)
    newcomer = create_resident()

    result = fee_service.create_year_fees_for_all_homeowners(db_session, 2026, skip_existing=True, now=now)

    assert result["count"] == 1
    assert db_session.get(Fee, result["fee_ids"][0]).resident_id == newcomer.id


def test_year_fee_generation_rejects_non_positive_amount(db_session, create_resident, now):
    create_resident()
    with pytest.raises(ValidationError):
        fee_service.create_year_fees_for_all_homeowners(db_session, 2026, amount=Decimal("0"), now=now)
    assert fee_service.get_all_yearly_fees(db_session) == []


def test_remove_yearly_fees_leaves_fines_and_other_years(db_session, create_resident, now):
    owner = create_resident()
    fee_service.create_year_fees_for_all_homeowners(db_session, 2025, now=now)
    fee_service.create_year_fees_for_all_homeowners(db_session, 2026, now=now)
    fine = fine_service.add_fine_to_property(
        db_session, address=owner.address, homeowner_id=owner.id, amount=Decimal("50"), reason="Trash", now=now
    )
    db_session.commit()

    assert fee_service.remove_yearly_fees(db_session, 2025) == 1
    db_session.commit()
    assert [fee.year for fee in fee_service.get_all_yearly_fees(db_session)] == [2026]

    assert fee_service.remove_all_yearly_fees(db_session) == 1
    db_session.commit()
    assert db_session.get(Fee, fine.id) is not None


def test_fee_queries_never_return_fines(db_session, create_resident, now):
    owner = create_resident()
    fee = fee_service.create_fee(
        db_session,
        name="Pool key",
        amount=Decimal("25"),
        frequency="One-time",
        due_date=date(2025, 7, 1),
        resident_id=owner.id,
        now=now,
    )
    fine = fine_service.add_fine_to_property(
        db_session, address=owner.address, homeowner_id=owner.id, amount=Decimal("75"), reason="Noise", now=now
    )
    db_session.commit()

    assert [row.id for row in fee_service.get_all_fees_from_database(db_session)] == [fee.id]
    assert [row.id for row in fee_service.get_fees_for_homeowner_from_database(db_session, owner.id)] == [fee.id]
    with pytest.raises(NotFoundError):
        fee_service.update_fee(db_session, fine.id, now=now, name="Sneaky")
    with pytest.raises(NotFoundError):
        fee_service.delete_fee(db_session, fine.id)


def test_unpaid_and_overdue_fees(db_session, create_resident, now):
    owner = create_resident()
    past_due = fee_service.create_fee(
        db_session, name="Late", amount=Decimal("10"), frequency="One-time", due_date=date(2025, 5, 1),
        resident_id=owner.id, now=now,
    )
    upcoming = fee_service.create_fee(
        db_session, name="Upcoming", amount=Decimal("10"), frequency="One-time", due_date=date(2025, 9, 1),
        resident_id=owner.id, now=now,
    )
    settled = fee_service.create_fee(
        db_session, name="Settled", amount=Decimal("10"), frequency="One-time", due_date=date(2025, 4, 1),
        resident_id=owner.id, now=now,
    )
    fee_service.mark_fee_paid(db_session, settled.id, payment_method="check", now=now)
    db_session.commit()

    assert {fee.id for fee in fee_service.get_unpaid_fees_for_resident(db_session, owner.id)} == {past_due.id, upcoming.id}
    assert [fee.id for fee in fee_service.get_overdue_fees_for_resident(db_session, owner.id, now=now)] == [past_due.id]


def test_update_fee_rejects_unknown_fields_and_stamps_paid_at(db_session, now):
    fee = fee_service.create_fee(
        db_session, name="Gate remote", amount=Decimal("40"), frequency="One-time", due_date=date(2025, 8, 1), now=now
    )
    with pytest.raises(ValidationError):
        fee_service.update_fee(db_session, fee.id, now=now, type="Fine")

    updated = fee_service.update_fee(db_session, fee.id, now=now, status="Paid")
    assert updated.paid_at == now


def test_create_fee_for_unknown_resident(db_session, now):
    with pytest.raises(NotFoundError):
        fee_service.create_fee(
            db_session, name="Orphan", amount=Decimal("5"), frequency="Monthly", due_date=date(2025, 7, 1),
            resident_id=404, now=now,
        )


def test_fee_endpoints_for_residents(api_client, create_resident, db_session, now):
    owner = create_resident()
    renter = create_resident(is_renter=True)
    _annual_payment(db_session, owner, now)

    owner_client = api_client(owner)
    fees = owner_client.get("/fees/me").json()
    assert len(fees) == 1
    assert fees[0]["status"] == "Paid"
    assert fees[0]["due_date"] == "2025-12-31"
    assert owner_client.get("/fees/me/annual-status").json() == {"has_paid": True}
    assert owner_client.get(f"/fees/resident/{renter.id}").status_code == 403
    assert owner_client.get("/fees/homeowners/status").status_code == 403

    assert api_client(renter).get("/fees/me").json() == []


def test_board_generates_and_exports_year_fees(api_client, create_resident, db_session):
    board = create_resident(is_board_member=True, last_name="Zimmer")
    create_resident(last_name="Abbott")
    client = api_client(board)

    created = client.post("/fees/yearly", json={"year": 2026, "amount": "275.00"})
    assert created.status_code == 201, created.text
    assert created.json()["count"] == 2
    assert len(client.get("/fees/yearly/2026").json()) == 2

    skipped = client.post("/fees/yearly", json={"year": 2026, "skip_existing": True})
    assert skipped.json()["count"] == 0

    status_rows = client.get("/fees/homeowners/status").json()
    assert [row["last_name"] for row in status_rows] == ["Abbott", "Zimmer"]

    export = client.get("/fees/homeowners/status.csv")
    assert export.status_code == 200
    assert export.headers["content-type"].startswith("text/csv")
    lines = export.text.strip().splitlines()
    assert lines[0].startswith("id,")
    assert len(lines) == 3

    removed = client.delete("/fees/yearly/2026")
    assert removed.json() == {"deleted_count": 2, "year": 2026}


def test_board_fee_crud(api_client, create_resident):
    board = create_resident(is_board_member=True)
    owner = create_resident()
    client = api_client(board)

    created = client.post(
        "/fees/",
        json={
            "name": "Clubhouse rental",
            "amount": "120.00",
            "frequency": "One-time",
            "due_date": "2025-07-01",
            "resident_id": owner.id,
        },
    )
    assert created.status_code == 201, created.text
    fee_id = created.json()["id"]
    assert created.json()["type"] == "Fee"

    patched = client.patch(f"/fees/{fee_id}", json={"amount": "100.00"})
    assert patched.json()["amount"] in ("100.00", "100.0", "100")

    paid = client.post(f"/fees/{fee_id}/pay", json={"payment_method": "check"})
    assert paid.json()["status"] == "Paid"
    assert paid.json()["is_paid"] is True

    assert client.post("/fees/", json={"name": "Bad", "amount": "-1", "frequency": "Monthly", "due_date": "2025-07-01"}).status_code == 422
    assert client.delete(f"/fees/{fee_id}").status_code == 204
    assert client.get("/fees/").json() == []


def test_patch_fee_with_null_name_is_a_client_error(api_client, create_resident):
    client = api_client(create_resident(is_board_member=True))
    fee_id = client.post(
        "/fees/",
        json={"name": "Pool key", "amount": "15.00", "frequency": "One-time", "due_date": "2025-07-01"},
    ).json()["id"]

    response = client.patch(f"/fees/{fee_id}", json={"name": None, "amount": None})

    assert response.status_code == 400
    assert response.json()["detail"] == "Fields cannot be null: amount, name"
    assert client.patch(f"/fees/{fee_id}", json={"payment_method": None}).status_code == 200


def test_homeowner_status_csv_leaves_missing_cells_empty():
    from backend.utils.csv_utils import homeowner_status_to_csv

    export = homeowner_status_to_csv(
        [{"id": 7, "first_name": "Ada", "last_name": "Byrne", "email": "ada@example.com", "unit_number": None}]
    )

    header, row = export.strip().splitlines()
    assert header.split(",")[0] == "id"
    assert row == "7,Ada,Byrne,ada@example.com,,,,,"
