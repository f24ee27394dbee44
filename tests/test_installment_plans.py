from datetime import date, datetime
from decimal import Decimal

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import OperationalError

from database import Base, build_engine, make_sessionmaker
from errors import AccessDenied, InvalidArgument, NotFound, StorageFailure
from models import InstallmentPlan, Transaction, TransactionType
from schemas import InstallmentPlanIn, TransactionIn
from services import InstallmentPlanService, TransactionService


def make_session():
    engine = build_engine("sqlite://")
    Base.metadata.create_all(engine)
    return make_sessionmaker(engine)()


def plan_in(**overrides) -> InstallmentPlanIn:
    data = {
        "total_installments": 3,
        "installment_value": Decimal("100.00"),
        "category": "Electronics",
        "description": "Laptop",
        "start_date": date(2024, 1, 15),
    }
    data.update(overrides)
    return InstallmentPlanIn(**data)


def count_rows(session, model) -> int:
    return session.scalar(select(func.count(model.id)))


def test_create_plan_generates_monthly_installments() -> None:
    session = make_session()

    plan = InstallmentPlanService(session, owner_id=1).create(plan_in())

    assert plan.total_installments == 3
    assert plan.installment_value == Decimal("100.00")
    assert plan.total_amount == Decimal("300.00")
    assert [t.date for t in plan.transactions] == [
        date(2024, 1, 15),
        date(2024, 2, 15),
        date(2024, 3, 15),
    ]
    assert [t.description for t in plan.transactions] == [
        "Laptop (Installment 1/3)",
        "Laptop (Installment 2/3)",
        "Laptop (Installment 3/3)",
    ]
    assert [t.installment_number for t in plan.transactions] == [1, 2, 3]
    assert all(t.amount == Decimal("100.00") for t in plan.transactions)
    assert all(t.category == "Electronics" for t in plan.transactions)

    stored = session.scalars(
        select(Transaction).order_by(Transaction.installment_number)
    ).all()
    assert len(stored) == 3
    assert all(t.plan_id == plan.id for t in stored)
    assert all(t.owner_id == 1 for t in stored)
    assert all(t.type == TransactionType.expense for t in stored)
    assert [t.installment_number for t in stored] == [1, 2, 3]
    assert stored[0].occurred_at == datetime(2024, 1, 15, 0, 0)


def test_create_plan_spacing_is_one_month_per_installment() -> None:
    session = make_session()

    plan = InstallmentPlanService(session, owner_id=1).create(
        plan_in(total_installments=14, installment_value=Decimal("19.99"))
    )

    dates = [t.date for t in plan.transactions]
    assert len(dates) == 14
    assert dates == sorted(set(dates))
    assert dates[-1] == date(2025, 2, 15)
    assert plan.total_amount == Decimal("279.86")


def test_create_plan_defaults_start_to_today(monkeypatch) -> None:
    monkeypatch.setattr("services.local_today", lambda: date(2024, 5, 5))
    session = make_session()

    plan = InstallmentPlanService(session, owner_id=1).create(
        plan_in(total_installments=2, start_date=None)
    )

    assert [t.date for t in plan.transactions] == [date(2024, 5, 5), date(2024, 6, 5)]


@pytest.mark.parametrize(
    "overrides",
    [
        {"total_installments": 0},
        {"total_installments": -2},
        {"installment_value": Decimal("0")},
        {"installment_value": Decimal("-10.00")},
        {"installment_value": Decimal("0.001")},
    ],
)
def test_create_plan_rejects_invalid_arguments_without_writing(overrides) -> None:
    session = make_session()

    with pytest.raises(InvalidArgument):
        InstallmentPlanService(session, owner_id=1).create(plan_in(**overrides))

    assert count_rows(session, InstallmentPlan) == 0
    assert count_rows(session, Transaction) == 0


def test_create_plan_rolls_back_on_storage_failure(monkeypatch) -> None:
    session = make_session()

    def failing_commit():
        raise OperationalError("COMMIT", {}, Exception("database is locked"))

    monkeypatch.setattr(session, "commit", failing_commit)

    with pytest.raises(StorageFailure):
        InstallmentPlanService(session, owner_id=1).create(plan_in())

    assert count_rows(session, InstallmentPlan) == 0
    assert count_rows(session, Transaction) == 0


def test_list_plans_newest_first_and_scoped_to_owner() -> None:
    session = make_session()
    service = InstallmentPlanService(session, owner_id=1)
    first = service.create(plan_in(description="Phone"))
    second = service.create(plan_in(description="Bike"))
    InstallmentPlanService(session, owner_id=2).create(plan_in(description="Other"))

    plans = service.list_all()

    assert [p.id for p in plans] == [second.id, first.id]
    assert plans[0].transactions[0].description == "Bike (Installment 1/3)"


def test_get_plan_checks_existence_and_owner() -> None:
    session = make_session()
    created = InstallmentPlanService(session, owner_id=1).create(plan_in())

    fetched = InstallmentPlanService(session, owner_id=1).get(created.id)
    assert fetched == created

    with pytest.raises(AccessDenied):
        InstallmentPlanService(session, owner_id=2).get(created.id)

    with pytest.raises(NotFound) as excinfo:
        InstallmentPlanService(session, owner_id=1).get(created.id + 100)
    assert not isinstance(excinfo.value, AccessDenied)


def test_plan_display_number_is_read_from_description() -> None:
    session = make_session()
    created = InstallmentPlanService(session, owner_id=1).create(plan_in())
    first, second, third = session.scalars(
        select(Transaction).order_by(Transaction.installment_number)
    ).all()
    first.installment_number = 3
    second.description = "Laptop"
    session.commit()

    numbers = [
        t.installment_number
        for t in InstallmentPlanService(session, owner_id=1).get(created.id).transactions
    ]

    # marker wins over the stored column; the column backs a missing marker
    assert sorted(numbers) == [1, 2, 3]


def test_delete_plan_cascades_to_all_installments() -> None:
    session = make_session()
    service = InstallmentPlanService(session, owner_id=1)
    doomed = service.create(plan_in(total_installments=5))
    kept = service.create(plan_in(total_installments=2))
    TransactionService(session, owner_id=1).create(
        TransactionIn(
            type=TransactionType.income,
            category="Salary",
            description="March",
            amount=Decimal("2500.00"),
            occurred_at=datetime(2024, 3, 1, 9, 0),
        )
    )

    service.delete(doomed.id)

    assert [p.id for p in service.list_all()] == [kept.id]
    remaining = session.scalars(select(Transaction)).all()
    assert len(remaining) == 3
    assert {t.plan_id for t in remaining} == {kept.id, None}
    with pytest.raises(NotFound):
        service.get(doomed.id)


def test_delete_plan_by_other_owner_is_denied_and_keeps_rows() -> None:
    session = make_session()
    created = InstallmentPlanService(session, owner_id=1).create(plan_in())

    with pytest.raises(AccessDenied):
        InstallmentPlanService(session, owner_id=2).delete(created.id)

    assert count_rows(session, InstallmentPlan) == 1
    assert count_rows(session, Transaction) == 3


def test_delete_missing_plan_raises_not_found() -> None:
    session = make_session()

    with pytest.raises(NotFound):
        InstallmentPlanService(session, owner_id=1).delete(42)


def test_failed_delete_leaves_plan_and_installments(monkeypatch) -> None:
    session = make_session()
    created = InstallmentPlanService(session, owner_id=1).create(plan_in())

    def failing_commit():
        raise OperationalError("COMMIT", {}, Exception("disk I/O error"))

    monkeypatch.setattr(session, "commit", failing_commit)

    with pytest.raises(StorageFailure):
        InstallmentPlanService(session, owner_id=1).delete(created.id)

    assert count_rows(session, InstallmentPlan) == 1
    assert count_rows(session, Transaction) == 3


def test_create_plan_rejects_schedule_past_year_9999() -> None:
    session = make_session()
    service = InstallmentPlanService(session, owner_id=1)

    with pytest.raises(InvalidArgument):
        service.create(
            plan_in(total_installments=100000, installment_value=Decimal("1.00"))
        )
    with pytest.raises(InvalidArgument):
        service.create(plan_in(total_installments=13, start_date=date(9999, 1, 15)))

    assert count_rows(session, InstallmentPlan) == 0
    assert count_rows(session, Transaction) == 0

    last_year = service.create(
        plan_in(total_installments=12, start_date=date(9999, 1, 31))
    )
    assert last_year.transactions[-1].date == date(9999, 12, 31)
    assert count_rows(session, InstallmentPlan) == 1


@pytest.mark.parametrize(
    "overrides",
    [
        {"installment_value": Decimal("1e16"), "total_installments": 1000},
        {"installment_value": Decimal("1e30"), "total_installments": 1},
        {"installment_value": Decimal("92233720368547758.08"), "total_installments": 1},
    ],
)
def test_create_plan_rejects_amounts_beyond_integer_storage(overrides) -> None:
    session = make_session()
    service = InstallmentPlanService(session, owner_id=1)

    with pytest.raises(InvalidArgument):
        service.create(plan_in(**overrides))

    assert count_rows(session, InstallmentPlan) == 0
    # the session is still usable afterwards
    assert service.create(plan_in()).total_amount == Decimal("300.00")


def test_create_plan_discards_header_when_generation_fails(monkeypatch) -> None:
    session = make_session()

    def broken_builder(plan, **kwargs):
        raise RuntimeError("generator crashed")

    monkeypatch.setattr("services.build_installments", broken_builder)

    with pytest.raises(RuntimeError):
        InstallmentPlanService(session, owner_id=1).create(plan_in())

    session.commit()
    assert count_rows(session, InstallmentPlan) == 0
    assert count_rows(session, Transaction) == 0


def test_plan_reads_report_storage_failure(monkeypatch) -> None:
    session = make_session()
    created = InstallmentPlanService(session, owner_id=1).create(plan_in())

    def unavailable(*args, **kwargs):
        raise OperationalError("SELECT", {}, Exception("unable to open database file"))

    monkeypatch.setattr(session, "get", unavailable)
    monkeypatch.setattr(session, "scalars", unavailable)

    service = InstallmentPlanService(session, owner_id=1)
    with pytest.raises(StorageFailure):
        service.get(created.id)
    with pytest.raises(StorageFailure):
        service.list_all()
    with pytest.raises(StorageFailure):
        service.delete(created.id)
