import logging
from typing import Optional

from fastapi import Depends, FastAPI, Header, HTTPException, Request, Response
from sqlalchemy.orm import Session

from config import get_settings
from database import get_session
from errors import InvalidArgument, NotFound, StorageFailure
from schemas import (
    InstallmentPlanIn,
    InstallmentPlanOut,
    MonthlySummaryOut,
    TransactionIn,
    TransactionOut,
    TransactionSearchOut,
)
from services import (
    InstallmentPlanService,
    SummaryService,
    TransactionFilters,
    TransactionService,
    to_search_out,
    to_transaction_out,
)

logging.basicConfig(level=get_settings().log_level)

app = FastAPI(title="Ledger")


def get_db():
    yield from get_session()


def get_owner_id(x_owner_id: Optional[int] = Header(default=None)) -> int:
    # resolved by the authentication layer in front of this service
    if x_owner_id is None:
        raise HTTPException(status_code=401, detail="Missing owner")
    return x_owner_id


def filters_from_request(request: Request) -> TransactionFilters:
    params = request.query_params
    return TransactionFilters(
        text=params.get("text"),
        type=params.get("type"),
        category=params.get("category"),
        start_date=params.get("startDate"),
        end_date=params.get("endDate"),
    )


@app.get("/api/transactions", response_model=list[TransactionOut])
def list_transactions(
    db: Session = Depends(get_db), owner_id: int = Depends(get_owner_id)
):
    try:
        txns = TransactionService(db, owner_id).list_all()
    except StorageFailure as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc
    return [to_transaction_out(txn) for txn in txns]


@app.post("/api/transactions", response_model=TransactionOut, status_code=201)
def create_transaction(
    data: TransactionIn,
    db: Session = Depends(get_db),
    owner_id: int = Depends(get_owner_id),
):
    try:
        txn = TransactionService(db, owner_id).create(data)
    except InvalidArgument as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except StorageFailure as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc
    return to_transaction_out(txn)


@app.get("/api/transactions/search", response_model=list[TransactionSearchOut])
def search_transactions(
    request: Request,
    db: Session = Depends(get_db),
    owner_id: int = Depends(get_owner_id),
):
    filters = filters_from_request(request)
    try:
        txns = TransactionService(db, owner_id).search(filters)
    except InvalidArgument as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except StorageFailure as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc
    return [to_search_out(txn) for txn in txns]


@app.delete("/api/transactions/{transaction_id}", status_code=204)
def delete_transaction(
    transaction_id: int,
    db: Session = Depends(get_db),
    owner_id: int = Depends(get_owner_id),
):
    try:
        TransactionService(db, owner_id).delete(transaction_id)
    except NotFound as exc:
        raise HTTPException(status_code=404, detail="Transaction not found") from exc
    except InvalidArgument as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except StorageFailure as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc
    return Response(status_code=204)


@app.get("/api/summary/month", response_model=MonthlySummaryOut)
def month_summary(
    year: int,
    month: int,
    db: Session = Depends(get_db),
    owner_id: int = Depends(get_owner_id),
):
    try:
        return SummaryService(db, owner_id).monthly_summary(year, month)
    except InvalidArgument as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except StorageFailure as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc


@app.get("/api/installment-plans", response_model=list[InstallmentPlanOut])
def list_installment_plans(
    db: Session = Depends(get_db), owner_id: int = Depends(get_owner_id)
):
    try:
        return InstallmentPlanService(db, owner_id).list_all()
    except StorageFailure as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc


@app.post("/api/installment-plans", response_model=InstallmentPlanOut, status_code=201)
def create_installment_plan(
    data: InstallmentPlanIn,
    db: Session = Depends(get_db),
    owner_id: int = Depends(get_owner_id),
):
    try:
        return InstallmentPlanService(db, owner_id).create(data)
    except InvalidArgument as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except StorageFailure as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc


@app.get("/api/installment-plans/{plan_id}", response_model=InstallmentPlanOut)
def get_installment_plan(
    plan_id: int,
    db: Session = Depends(get_db),
    owner_id: int = Depends(get_owner_id),
):
    try:
        return InstallmentPlanService(db, owner_id).get(plan_id)
    except NotFound as exc:
        # AccessDenied is a NotFound; both answer the same
        raise HTTPException(
            status_code=404, detail="Installment plan not found"
        ) from exc
    except StorageFailure as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc


@app.delete("/api/installment-plans/{plan_id}", status_code=204)
def delete_installment_plan(
    plan_id: int,
    db: Session = Depends(get_db),
    owner_id: int = Depends(get_owner_id),
):
    try:
        InstallmentPlanService(db, owner_id).delete(plan_id)
    except NotFound as exc:
        raise HTTPException(
            status_code=404, detail="Installment plan not found"
        ) from exc
    except StorageFailure as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc
    return Response(status_code=204)


def main():
    import uvicorn

    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=False)


if __name__ == "__main__":
    main()
