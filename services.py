from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy import case, delete, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, selectinload
from sqlalchemy.sql.elements import ColumnElement

from errors import AccessDenied, InvalidArgument, NotFound, StorageFailure
from installments import build_installments, last_due_date, parse_installment_number
from models import InstallmentPlan, Transaction, TransactionType
from money import amount_to_cents, cents_to_amount, check_cents
from periods import day_end, day_start, local_now, local_today, month_period, parse_day
from schemas import (
    CategoryAggregateOut,
    InstallmentPlanIn,
    InstallmentPlanOut,
    InstallmentTransactionOut,
    MonthlySummaryOut,
    TransactionIn,
    TransactionOut,
    TransactionSearchOut,
)

logger = logging.getLogger(__name__)


def parse_transaction_type(value: Optional[str]) -> Optional[TransactionType]:
    """Case-insensitive 'income'/'expense'; anything else means no type."""
    if not value:
        return None
    try:
        return TransactionType(value.strip().lower())
    except ValueError:
        return None


def to_transaction_out(txn: Transaction) -> TransactionOut:
    return TransactionOut(
        id=txn.id,
        occurred_at=txn.occurred_at,
        type=txn.type,
        category=txn.category,
        description=txn.description,
        amount=cents_to_amount(txn.amount_cents),
        plan_id=txn.plan_id,
        installment_number=txn.installment_number,
    )


def to_search_out(txn: Transaction) -> TransactionSearchOut:
    return TransactionSearchOut(
        id=txn.id,
        description=txn.description,
        type=txn.type,
        category=txn.category,
        amount=cents_to_amount(txn.amount_cents),
        date=txn.occurred_at.date(),
        plan_id=txn.plan_id,
        is_installment=txn.plan_id is not None,
    )


def to_plan_out(plan: InstallmentPlan) -> InstallmentPlanOut:
    items = []
    for txn in plan.transactions:
        # display number comes from the description marker; the stored column
        # is only used when the marker is missing
        number = parse_installment_number(txn.description)
        if number is None:
            number = txn.installment_number or 0
        items.append(
            InstallmentTransactionOut(
                id=txn.id,
                description=txn.description,
                amount=cents_to_amount(txn.amount_cents),
                category=txn.category,
                date=txn.occurred_at.date(),
                installment_number=number,
            )
        )
    return InstallmentPlanOut(
        id=plan.id,
        total_installments=plan.total_installments,
        total_amount=cents_to_amount(plan.total_amount_cents),
        installment_value=cents_to_amount(plan.installment_value_cents),
        transactions=items,
    )


@dataclass
class TransactionFilters:
    text: Optional[str] = None
    type: Optional[str] = None
    category: Optional[str] = None
    start_date: Optional[str] = None
    end_date: Optional[str] = None


def _present(value: Optional[str]) -> bool:
    return value is not None and bool(value.strip())


class TransactionService:
    def __init__(self, session: Session, owner_id: int) -> None:
        self.session = session
        self.owner_id = owner_id

    def create(self, data: TransactionIn) -> Transaction:
        amount_cents = amount_to_cents(data.amount)
        if amount_cents < 0:
            raise InvalidArgument("Amount must not be negative")
        txn = Transaction(
            owner_id=self.owner_id,
            occurred_at=data.occurred_at or local_now(),
            type=data.type,
            category=data.category.strip(),
            description=data.description,
            amount_cents=amount_cents,
        )
        self.session.add(txn)
        try:
            self.session.commit()
        except SQLAlchemyError as exc:
            self.session.rollback()
            logger.error(f"transaction_create_failed: owner={self.owner_id}")
            raise StorageFailure("Could not store transaction") from exc
        self.session.refresh(txn)
        return txn

    def list_all(self) -> list[Transaction]:
        stmt = (
            select(Transaction)
            .where(Transaction.owner_id == self.owner_id)
            .order_by(Transaction.occurred_at.desc(), Transaction.id.desc())
        )
        return self._fetch_all(stmt, "transaction_list_failed")

    def _fetch_all(self, stmt, event: str) -> list[Transaction]:
        try:
            return list(self.session.scalars(stmt).all())
        except SQLAlchemyError as exc:
            self.session.rollback()
            logger.error(f"{event}: owner={self.owner_id}")
            raise StorageFailure("Could not read transactions") from exc

    def get(self, transaction_id: int) -> Transaction:
        try:
            txn = self.session.get(Transaction, transaction_id)
        except SQLAlchemyError as exc:
            self.session.rollback()
            logger.error(
                f"transaction_get_failed: owner={self.owner_id} id={transaction_id}"
            )
            raise StorageFailure("Could not read transaction") from exc
        if not txn:
            raise NotFound("Transaction not found")
        if txn.owner_id != self.owner_id:
            raise AccessDenied("Transaction not found")
        return txn

    def delete(self, transaction_id: int) -> None:
        txn = self.get(transaction_id)
        if txn.plan_id is not None:
            raise InvalidArgument(
                "Installment transactions can only be removed by deleting their plan"
            )
        self.session.delete(txn)
        try:
            self.session.commit()
        except SQLAlchemyError as exc:
            self.session.rollback()
            logger.error(
                f"transaction_delete_failed: owner={self.owner_id} id={transaction_id}"
            )
            raise StorageFailure("Could not delete transaction") from exc

    def search_clauses(self, filters: TransactionFilters) -> list[ColumnElement[bool]]:
        clauses: list[ColumnElement[bool]] = [Transaction.owner_id == self.owner_id]
        if _present(filters.text):
            clauses.append(
                func.lower(func.coalesce(Transaction.description, "")).contains(
                    filters.text.strip().lower(), autoescape=True
                )
            )
        txn_type = parse_transaction_type(filters.type)
        if txn_type:
            clauses.append(Transaction.type == txn_type)
        if _present(filters.category):
            clauses.append(
                func.lower(Transaction.category).contains(
                    filters.category.strip().lower(), autoescape=True
                )
            )
        start = parse_day(filters.start_date)
        if start:
            clauses.append(Transaction.occurred_at >= day_start(start))
        end = parse_day(filters.end_date)
        if end:
            clauses.append(Transaction.occurred_at <= day_end(end))
        return clauses

    def search(self, filters: TransactionFilters) -> list[Transaction]:
        clauses = self.search_clauses(filters)
        stmt = (
            select(Transaction)
            .where(*clauses)
            .order_by(Transaction.occurred_at.desc(), Transaction.id.desc())
        )
        return self._fetch_all(stmt, "transaction_search_failed")


class InstallmentPlanService:
    def __init__(self, session: Session, owner_id: int) -> None:
        self.session = session
        self.owner_id = owner_id

    def create(self, data: InstallmentPlanIn) -> InstallmentPlanOut:
        if data.total_installments <= 0:
            raise InvalidArgument("Number of installments must be greater than zero")
        value_cents = amount_to_cents(data.installment_value)
        if value_cents <= 0:
            raise InvalidArgument("Installment value must be greater than zero")
        total_cents = check_cents(value_cents * data.total_installments)

        start = data.start_date or local_today()
        last_due_date(start, data.total_installments)
        plan = InstallmentPlan(
            owner_id=self.owner_id,
            total_installments=data.total_installments,
            installment_value_cents=value_cents,
            total_amount_cents=total_cents,
        )
        try:
            self.session.add(plan)
            self.session.flush()
            transactions = build_installments(
                plan,
                category=data.category.strip(),
                description=data.description,
                start=start,
            )
            self.session.add_all(transactions)
            self.session.commit()
        except SQLAlchemyError as exc:
            self.session.rollback()
            logger.error(
                f"installment_plan_create_failed: owner={self.owner_id} "
                f"installments={data.total_installments}"
            )
            raise StorageFailure("Could not store installment plan") from exc
        except Exception:
            # never leave a flushed plan header behind
            self.session.rollback()
            raise

        self.session.refresh(plan)
        logger.info(
            f"installment_plan_created: owner={self.owner_id} plan={plan.id} "
            f"installments={plan.total_installments} start={start.isoformat()}"
        )
        return to_plan_out(plan)

    def list_all(self) -> list[InstallmentPlanOut]:
        stmt = (
            select(InstallmentPlan)
            .options(selectinload(InstallmentPlan.transactions))
            .where(InstallmentPlan.owner_id == self.owner_id)
            .order_by(InstallmentPlan.id.desc())
        )
        try:
            return [to_plan_out(plan) for plan in self.session.scalars(stmt).all()]
        except SQLAlchemyError as exc:
            self._read_failed("installment_plan_list_failed")
            raise StorageFailure("Could not read installment plans") from exc

    def _read_failed(self, event: str, plan_id: Optional[int] = None) -> None:
        self.session.rollback()
        suffix = f" plan={plan_id}" if plan_id is not None else ""
        logger.error(f"{event}: owner={self.owner_id}{suffix}")

    def _get_owned(self, plan_id: int) -> InstallmentPlan:
        try:
            plan = self.session.get(InstallmentPlan, plan_id)
        except SQLAlchemyError as exc:
            self._read_failed("installment_plan_get_failed", plan_id)
            raise StorageFailure("Could not read installment plan") from exc
        if not plan:
            raise NotFound("Installment plan not found")
        if plan.owner_id != self.owner_id:
            raise AccessDenied("Installment plan not found")
        return plan

    def get(self, plan_id: int) -> InstallmentPlanOut:
        plan = self._get_owned(plan_id)
        try:
            # the installments collection loads lazily here
            return to_plan_out(plan)
        except SQLAlchemyError as exc:
            self._read_failed("installment_plan_get_failed", plan_id)
            raise StorageFailure("Could not read installment plan") from exc

    def delete(self, plan_id: int) -> None:
        plan = self._get_owned(plan_id)
        try:
            removed = self.session.execute(
                delete(Transaction).where(Transaction.plan_id == plan.id)
            ).rowcount
            deleted = self.session.execute(
                delete(InstallmentPlan).where(
                    InstallmentPlan.id == plan.id,
                    InstallmentPlan.owner_id == self.owner_id,
                )
            ).rowcount
            if deleted != 1:
                # removed concurrently; keep the child rows as they were
                self.session.rollback()
                raise NotFound("Installment plan not found")
            self.session.commit()
        except SQLAlchemyError as exc:
            self.session.rollback()
            logger.error(
                f"installment_plan_delete_failed: owner={self.owner_id} plan={plan_id}"
            )
            raise StorageFailure("Could not delete installment plan") from exc
        logger.info(
            f"installment_plan_deleted: owner={self.owner_id} plan={plan_id} "
            f"transactions={removed}"
        )


class SummaryService:
    def __init__(self, session: Session, owner_id: int) -> None:
        self.session = session
        self.owner_id = owner_id

    def _total_for_type(
        self, start: datetime, end: datetime, txn_type: TransactionType
    ) -> int:
        return int(
            self.session.execute(
                select(func.coalesce(func.sum(Transaction.amount_cents), 0)).where(
                    Transaction.owner_id == self.owner_id,
                    Transaction.type == txn_type,
                    Transaction.occurred_at.between(start, end),
                )
            ).scalar_one()
            or 0
        )

    def category_totals(
        self, start: datetime, end: datetime
    ) -> list[CategoryAggregateOut]:
        income = func.coalesce(
            func.sum(
                case(
                    (Transaction.type == TransactionType.income, Transaction.amount_cents),
                    else_=0,
                )
            ),
            0,
        ).label("income")
        expense = func.coalesce(
            func.sum(
                case(
                    (Transaction.type == TransactionType.expense, Transaction.amount_cents),
                    else_=0,
                )
            ),
            0,
        ).label("expense")
        stmt = (
            select(Transaction.category, income, expense)
            .where(
                Transaction.owner_id == self.owner_id,
                Transaction.occurred_at.between(start, end),
            )
            .group_by(Transaction.category)
            .order_by(Transaction.category)
        )
        breakdown = []
        for row in self.session.execute(stmt).all():
            income_cents = int(row.income or 0)
            expense_cents = int(row.expense or 0)
            if not income_cents and not expense_cents:
                continue
            breakdown.append(
                CategoryAggregateOut(
                    category=row.category,
                    income=cents_to_amount(income_cents),
                    expense=cents_to_amount(expense_cents),
                )
            )
        return breakdown

    def monthly_summary(self, year: int, month: int) -> MonthlySummaryOut:
        period = month_period(year, month)
        try:
            income = self._total_for_type(
                period.start, period.end, TransactionType.income
            )
            expense = self._total_for_type(
                period.start, period.end, TransactionType.expense
            )
            by_category = self.category_totals(period.start, period.end)
        except SQLAlchemyError as exc:
            self.session.rollback()
            logger.error(
                f"monthly_summary_failed: owner={self.owner_id} "
                f"period={period.slug}"
            )
            raise StorageFailure("Could not read monthly summary") from exc
        return MonthlySummaryOut(
            year=year,
            month=month,
            total_income=cents_to_amount(income),
            total_expense=cents_to_amount(expense),
            balance=cents_to_amount(income - expense),
            by_category=by_category,
        )
