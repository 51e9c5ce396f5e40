"""Tests for the loan checkout/return workflow and its stock bookkeeping."""

import sys
from pathlib import Path

import pytest
from sqlalchemy import create_engine, func, select
from sqlalchemy.orm import sessionmaker

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from toolcrib.core.errors import (
    AlreadyReturned,
    DuplicateTicket,
    InsufficientStock,
    LoanNotFound,
    ToolNotFound,
    ValidationFailed,
)
from toolcrib.crud import loans as loans_crud
from toolcrib.crud import tools as tools_crud
from toolcrib.crud.loans import create_loan, get_loan, list_loans, return_loan
from toolcrib.crud.tools import create_tool, get_tool
from toolcrib.crud.users import create_user
from toolcrib.db.session import Base
from toolcrib.models.loan import Loan
from toolcrib.models.tool import Tool

# Ensure models are registered so metadata tables are created
from toolcrib.models import user as user_model  # noqa: F401


@pytest.fixture()
def db_session():
    engine = create_engine("sqlite://", connect_args={"check_same_thread": False})
    TestingSessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)
    Base.metadata.create_all(bind=engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def admin(db_session):
    return create_user(
        db_session,
        {
            "document_number": "1001",
            "full_name": "Carla Admin",
            "email": "carla@example.com",
            "role": "Administrator",
            "password": "pw",
        },
    )


def _counts(db, tool_id):
    tool = get_tool(db, tool_id)
    db.refresh(tool)
    return (tool.quantity_total, tool.quantity_available, tool.quantity_on_loan)


def _loan_payload(tool_id, quantity=1, ticket="TICKET-20241018-0001", **overrides):
    payload = {
        "ticket_number": ticket,
        "tool_id": tool_id,
        "quantity": quantity,
        "responsible": "Luis Perez",
        "usage_location": "Building 7",
    }
    payload.update(overrides)
    return payload


def _loan_count(db):
    return db.execute(select(func.count(Loan.id))).scalar_one()


def test_checkout_and_return_round_trip(db_session, admin):
    tool = create_tool(db_session, {"name": "Impact driver", "responsible": "Ana", "quantity_total": 10})
    assert _counts(db_session, tool.id) == (10, 10, 0)

    loan = create_loan(db_session, _loan_payload(tool.id, quantity=4), issuer_id=admin.id)
    assert loan.status == "Active"
    assert loan.tool_name == "Impact driver"
    assert loan.issued_by_name == "Carla Admin"
    assert loan.tool_quantity_available == 6
    assert loan.returned_at is None
    assert _counts(db_session, tool.id) == (10, 6, 4)

    returned = return_loan(db_session, loan.id, returner_id=admin.id, notes="  all good ")
    assert returned.status == "Returned"
    assert returned.returned_at is not None
    assert returned.return_notes == "all good"
    assert returned.returned_by_name == "Carla Admin"
    assert returned.quantity == 4
    assert _counts(db_session, tool.id) == (10, 10, 0)


def test_insufficient_stock_leaves_everything_unchanged(db_session, admin):
    tool = create_tool(db_session, {"name": "Generator", "responsible": "Ana", "quantity_total": 3})

    with pytest.raises(InsufficientStock):
        create_loan(db_session, _loan_payload(tool.id, quantity=4), issuer_id=admin.id)

    assert _counts(db_session, tool.id) == (3, 3, 0)
    assert _loan_count(db_session) == 0


def test_second_return_is_rejected(db_session, admin):
    tool = create_tool(db_session, {"name": "Generator", "responsible": "Ana", "quantity_total": 3})
    loan = create_loan(db_session, _loan_payload(tool.id, quantity=2), issuer_id=admin.id)
    return_loan(db_session, loan.id, returner_id=admin.id)
    assert _counts(db_session, tool.id) == (3, 3, 0)

    with pytest.raises(AlreadyReturned):
        return_loan(db_session, loan.id, returner_id=admin.id, notes="again")

    assert _counts(db_session, tool.id) == (3, 3, 0)
    assert get_loan(db_session, loan.id).return_notes is None


def test_return_unknown_loan(db_session, admin):
    with pytest.raises(LoanNotFound):
        return_loan(db_session, 404, returner_id=admin.id)


def test_duplicate_ticket_is_rejected_without_touching_stock(db_session, admin):
    tool = create_tool(db_session, {"name": "Welder", "responsible": "Ana", "quantity_total": 5})
    create_loan(db_session, _loan_payload(tool.id, quantity=1), issuer_id=admin.id)

    with pytest.raises(DuplicateTicket):
        create_loan(db_session, _loan_payload(tool.id, quantity=2), issuer_id=admin.id)

    assert _counts(db_session, tool.id) == (5, 4, 1)
    assert _loan_count(db_session) == 1


def test_duplicate_ticket_race_on_insert_rolls_back_reservation(db_session, admin, monkeypatch):
    tool = create_tool(db_session, {"name": "Welder", "responsible": "Ana", "quantity_total": 5})
    create_loan(db_session, _loan_payload(tool.id, quantity=1), issuer_id=admin.id)

    # Simulate a competing request inserting the ticket after our pre-check.
    original = loans_crud.ticket_exists
    calls = {"n": 0}

    def racing_ticket_exists(db, ticket_number):
        calls["n"] += 1
        if calls["n"] == 1:
            return False
        return original(db, ticket_number)

    monkeypatch.setattr(loans_crud, "ticket_exists", racing_ticket_exists)

    with pytest.raises(DuplicateTicket):
        create_loan(db_session, _loan_payload(tool.id, quantity=2), issuer_id=admin.id)

    assert _counts(db_session, tool.id) == (5, 4, 1)
    assert _loan_count(db_session) == 1


def test_unknown_tool(db_session, admin):
    with pytest.raises(ToolNotFound):
        create_loan(db_session, _loan_payload(9999), issuer_id=admin.id)
    assert _loan_count(db_session) == 0


@pytest.mark.parametrize(
    "overrides",
    [
        {"ticket_number": ""},
        {"ticket_number": "TICKET-2024-0001"},
        {"ticket_number": "LOAN-20241018-0001"},
        {"ticket_number": "TICKET-20241018-\uff10\uff10\uff10\uff15"},
        {"quantity": 0},
        {"quantity": -2},
        {"responsible": "   "},
        {"usage_location": ""},
        {"tool_id": None},
    ],
)
def test_invalid_payloads_are_rejected_before_any_change(db_session, admin, overrides):
    tool = create_tool(db_session, {"name": "Welder", "responsible": "Ana", "quantity_total": 5})
    payload = _loan_payload(tool.id)
    payload.update(overrides)

    with pytest.raises(ValidationFailed):
        create_loan(db_session, payload, issuer_id=admin.id)

    assert _counts(db_session, tool.id) == (5, 5, 0)
    assert _loan_count(db_session) == 0


def test_list_loans_filters_and_paginates(db_session, admin):
    drill = create_tool(db_session, {"name": "Drill", "responsible": "Ana", "quantity_total": 10})
    saw = create_tool(db_session, {"name": "Circular saw", "responsible": "Ana", "quantity_total": 10})
    first = create_loan(db_session, _loan_payload(drill.id, ticket="TICKET-20241018-0001"), issuer_id=admin.id)
    create_loan(
        db_session,
        _loan_payload(saw.id, ticket="TICKET-20241018-0002", responsible="Marta Ruiz"),
        issuer_id=admin.id,
    )
    third = create_loan(db_session, _loan_payload(drill.id, ticket="TICKET-20241018-0003"), issuer_id=admin.id)
    return_loan(db_session, first.id, returner_id=admin.id)

    page = list_loans(db_session, page=1, limit=2)
    assert page["pagination"] == {"total": 3, "pages": 2, "current_page": 1, "limit": 2}
    # Newest first.
    assert [loan.id for loan in page["loans"]][0] == third.id

    second_page = list_loans(db_session, page=2, limit=2)
    assert len(second_page["loans"]) == 1

    by_tool = list_loans(db_session, search="circular")
    assert [loan.ticket_number for loan in by_tool["loans"]] == ["TICKET-20241018-0002"]

    by_person = list_loans(db_session, search="marta")
    assert by_person["pagination"]["total"] == 1

    by_ticket = list_loans(db_session, search="0003")
    assert [loan.id for loan in by_ticket["loans"]] == [third.id]

    returned = list_loans(db_session, status="Returned")
    assert [loan.id for loan in returned["loans"]] == [first.id]
    assert list_loans(db_session, status="Active")["pagination"]["total"] == 2


def test_list_loans_empty(db_session):
    page = list_loans(db_session)
    assert page["loans"] == []
    assert page["pagination"] == {"total": 0, "pages": 0, "current_page": 1, "limit": 10}


@pytest.fixture()
def file_engine(tmp_path):
    engine = create_engine(f"sqlite:///{tmp_path / 'race.db'}", connect_args={"check_same_thread": False})
    Base.metadata.create_all(bind=engine)
    try:
        yield engine
    finally:
        engine.dispose()


def _seed_last_unit(session):
    admin = create_user(
        session,
        {
            "document_number": "1001",
            "full_name": "Carla Admin",
            "email": "carla@example.com",
            "role": "Administrator",
            "password": "pw",
        },
    )
    tool = create_tool(session, {"name": "Laser level", "responsible": "Ana", "quantity_total": 1})
    return admin.id, tool.id


def test_concurrent_checkouts_for_last_unit_only_one_commits(file_engine):
    Session = sessionmaker(bind=file_engine, autocommit=False, autoflush=False)
    first, second = Session(), Session()
    try:
        admin_id, tool_id = _seed_last_unit(first)
        # The second request has already looked at the tool and seen one unit.
        assert second.get(Tool, tool_id).quantity_available == 1

        create_loan(first, _loan_payload(tool_id, ticket="TICKET-20241018-0001"), issuer_id=admin_id)
        with pytest.raises(InsufficientStock):
            create_loan(second, _loan_payload(tool_id, ticket="TICKET-20241018-0002"), issuer_id=admin_id)

        assert _counts(second, tool_id) == (1, 0, 1)
        assert _loan_count(second) == 1
    finally:
        first.close()
        second.close()


def test_guarded_update_stops_a_stale_reservation(file_engine, monkeypatch):
    Session = sessionmaker(bind=file_engine, autocommit=False, autoflush=False)
    first, second = Session(), Session()
    try:
        admin_id, tool_id = _seed_last_unit(first)
        stale = second.get(Tool, tool_id)

        create_loan(first, _loan_payload(tool_id, ticket="TICKET-20241018-0001"), issuer_id=admin_id)

        # Skip the re-read so only the conditional UPDATE stands in the way.
        monkeypatch.setattr(tools_crud, "_lock_tool", lambda db, tid: stale)
        with pytest.raises(InsufficientStock):
            create_loan(second, _loan_payload(tool_id, ticket="TICKET-20241018-0002"), issuer_id=admin_id)
        monkeypatch.undo()

        assert _counts(second, tool_id) == (1, 0, 1)
        assert _loan_count(second) == 1
    finally:
        first.close()
        second.close()


def test_list_loans_search_treats_wildcards_literally(db_session, admin):
    tool = create_tool(db_session, {"name": "Drill", "responsible": "Ana", "quantity_total": 5})
    create_loan(db_session, _loan_payload(tool.id, ticket="TICKET-20241018-0001"), issuer_id=admin.id)
    create_loan(
        db_session,
        _loan_payload(tool.id, ticket="TICKET-20241018-0002", responsible="crew_b"),
        issuer_id=admin.id,
    )

    underscored = list_loans(db_session, search="_")
    assert [loan.responsible for loan in underscored["loans"]] == ["crew_b"]
    assert list_loans(db_session, search="%")["pagination"]["total"] == 0
