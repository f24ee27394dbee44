import datetime as dt
from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from models import TransactionType


class TransactionIn(BaseModel):
    type: TransactionType
    category: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = Field(default=None, max_length=500)
    amount: Decimal
    occurred_at: Optional[datetime] = None


class TransactionOut(BaseModel):
    model_config = ConfigDict(extra="forbid")

    id: int
    occurred_at: datetime
    type: TransactionType
    category: str
    description: Optional[str]
    amount: Decimal
    plan_id: Optional[int]
    installment_number: Optional[int]


class TransactionSearchOut(BaseModel):
    model_config = ConfigDict(extra="forbid")

    id: int
    description: Optional[str]
    type: TransactionType
    category: str
    amount: Decimal
    date: dt.date
    plan_id: Optional[int]
    is_installment: bool


class InstallmentPlanIn(BaseModel):
    # counts and values are range-checked by InstallmentPlanService
    total_installments: int
    installment_value: Decimal
    category: str = Field(..., min_length=1, max_length=100)
    description: str = Field(..., max_length=500)
    start_date: Optional[date] = None


class InstallmentTransactionOut(BaseModel):
    id: int
    description: Optional[str]
    amount: Decimal
    category: str
    date: dt.date
    installment_number: int


class InstallmentPlanOut(BaseModel):
    id: int
    total_installments: int
    total_amount: Decimal
    installment_value: Decimal
    transactions: list[InstallmentTransactionOut] = Field(default_factory=list)


class CategoryAggregateOut(BaseModel):
    category: str
    income: Decimal
    expense: Decimal


class MonthlySummaryOut(BaseModel):
    year: int
    month: int
    total_income: Decimal
    total_expense: Decimal
    balance: Decimal
    by_category: list[CategoryAggregateOut] = Field(default_factory=list)
