from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    Enum as SAEnum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from database import Base


class TransactionType(str, Enum):
    income = "income"
    expense = "expense"


class TimestampMixin:
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False
    )


class Transaction(Base, TimestampMixin):
    __tablename__ = "transactions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    owner_id: Mapped[int] = mapped_column(Integer, nullable=False)
    occurred_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    type: Mapped[TransactionType] = mapped_column(
        SAEnum(TransactionType), nullable=False
    )
    category: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)
    amount_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    plan_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("installment_plans.id")
    )
    installment_number: Mapped[Optional[int]] = mapped_column(Integer)

    plan: Mapped[Optional["InstallmentPlan"]] = relationship(
        "InstallmentPlan", back_populates="transactions"
    )

    __table_args__ = (
        Index("ix_transactions_owner_occurred", "owner_id", "occurred_at"),
        Index(
            "ix_transactions_owner_type_occurred", "owner_id", "type", "occurred_at"
        ),
        Index("ix_transactions_plan", "plan_id"),
        CheckConstraint("amount_cents >= 0", name="ck_transactions_amount_positive"),
        CheckConstraint(
            "installment_number IS NULL OR installment_number >= 1",
            name="ck_transactions_installment_number",
        ),
    )


class InstallmentPlan(Base, TimestampMixin):
    __tablename__ = "installment_plans"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    owner_id: Mapped[int] = mapped_column(Integer, nullable=False)
    total_installments: Mapped[int] = mapped_column(Integer, nullable=False)
    installment_value_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    total_amount_cents: Mapped[int] = mapped_column(Integer, nullable=False)

    transactions: Mapped[list["Transaction"]] = relationship(
        "Transaction",
        back_populates="plan",
        order_by=[Transaction.installment_number, Transaction.id],
    )

    __table_args__ = (
        Index("ix_installment_plans_owner", "owner_id", "id"),
        CheckConstraint("total_installments > 0", name="ck_plan_installments_positive"),
        CheckConstraint(
            "installment_value_cents > 0", name="ck_plan_installment_value_positive"
        ),
    )
