import logging
from datetime import date
from typing import Optional

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, StreamingResponse
from sqlalchemy.orm import Session
from starlette.exceptions import HTTPException as StarletteHTTPException

from config import get_settings
from csv_utils import export_budgets, export_occurrences, parse_amount
from database import SessionLocal, StorageFailure, create_schema
from models import TransactionType
from periods import MonthWindow, current_month, parse_month
from recurrence import Occurrence
from schemas import (
    BudgetComparisonOut,
    BudgetIn,
    BudgetOut,
    CategoryTotalOut,
    InsightsOut,
    MonthlySavingsOut,
    MonthlyTotalOut,
    SuccessOut,
    SummaryOut,
    TotalsOut,
    TransactionDeleteIn,
    TransactionIn,
    TransactionOut,
    TransactionUpdateIn,
    cents_to_amount,
)
from services import (
    BudgetService,
    RecordNotFound,
    ReportService,
    TransactionFilters,
    TransactionService,
    ValidationFailed,
    resolve_category,
)

settings = get_settings()
logging.basicConfig(level=settings.log_level)
logger = logging.getLogger(__name__)

app = FastAPI(title="Finance Tracker")


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@app.on_event("startup")
def startup_event():
    create_schema()
    logger.info(f"startup: database_url={settings.database_url}")


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse({"error": str(exc.detail)}, status_code=exc.status_code)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    if any(err.get("type") == "missing" for err in errors):
        message = "All fields are required."
    elif errors:
        first = errors[0]
        loc = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
        message = f"Invalid {loc}: {first.get('msg')}" if loc else str(first.get("msg"))
    else:
        message = "Invalid request."
    return JSONResponse({"error": message}, status_code=400)


@app.exception_handler(StorageFailure)
async def storage_failure_handler(request: Request, exc: StorageFailure):
    return JSONResponse(
        {"error": "Storage is unavailable, please try again later."}, status_code=500
    )


def month_from_request(request: Request, *, required: bool = False) -> MonthWindow:
    raw = request.query_params.get("month")
    if not raw and not required:
        return current_month()
    try:
        return parse_month(raw)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


def _date_param(request: Request, name: str) -> Optional[date]:
    raw = request.query_params.get(name)
    if not raw:
        return None
    try:
        return date.fromisoformat(raw)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=f"Invalid {name} date") from exc


def _amount_param(request: Request, name: str) -> Optional[int]:
    raw = request.query_params.get(name)
    if not raw:
        return None
    try:
        return parse_amount(raw)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


def filters_from_request(request: Request) -> TransactionFilters:
    type_param = request.query_params.get("type")
    txn_type = None
    if type_param:
        try:
            txn_type = TransactionType(type_param)
        except ValueError as exc:
            raise HTTPException(status_code=400, detail="Invalid type") from exc
    try:
        categories = [
            resolve_category(label)
            for label in request.query_params.getlist("category")
            if label
        ]
    except ValidationFailed as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return TransactionFilters(
        start=_date_param(request, "start"),
        end=_date_param(request, "end"),
        categories=categories,
        min_amount_cents=_amount_param(request, "minAmount"),
        max_amount_cents=_amount_param(request, "maxAmount"),
        description=request.query_params.get("description") or None,
        query=request.query_params.get("q") or None,
        type=txn_type,
    )


def _out(txn) -> TransactionOut:
    return TransactionOut.from_occurrence(Occurrence.from_template(txn))


@app.get("/api/transactions", response_model=list[TransactionOut])
def list_transactions(request: Request, db: Session = Depends(get_db)):
    service = TransactionService(db)
    if request.query_params.get("expand", "true").lower() in {"false", "0", "no"}:
        templates = sorted(service.find(), key=lambda t: t.date, reverse=True)
        return [_out(txn) for txn in templates]
    window = month_from_request(request)
    filters = filters_from_request(request)
    occurrences = service.occurrences(window, all_time=True, filters=filters)
    return [TransactionOut.from_occurrence(occ) for occ in occurrences]


@app.get("/api/transactions/export.csv")
def export_transactions_endpoint(request: Request, db: Session = Depends(get_db)):
    window = month_from_request(request)
    filters = filters_from_request(request)
    occurrences = TransactionService(db).occurrences(
        window, all_time=True, filters=filters
    )
    return StreamingResponse(
        iter([export_occurrences(occurrences)]),
        media_type="text/csv",
        headers={"Content-Disposition": 'attachment; filename="transactions.csv"'},
    )


@app.post("/api/transactions", response_model=TransactionOut, status_code=201)
def create_transaction(data: TransactionIn, db: Session = Depends(get_db)):
    try:
        txn = TransactionService(db).create(data)
    except ValidationFailed as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return _out(txn)


def _update(transaction_id: int, data: TransactionIn, db: Session) -> TransactionOut:
    try:
        txn = TransactionService(db).update(transaction_id, data)
    except ValidationFailed as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except RecordNotFound as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return _out(txn)


def _delete(transaction_id: int, db: Session) -> SuccessOut:
    try:
        TransactionService(db).delete(transaction_id)
    except RecordNotFound as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return SuccessOut()


@app.put("/api/transactions", response_model=TransactionOut)
def update_transaction_by_body(
    data: TransactionUpdateIn, db: Session = Depends(get_db)
):
    return _update(data.id, data, db)


@app.put("/api/transactions/{transaction_id}", response_model=TransactionOut)
def update_transaction(
    transaction_id: int, data: TransactionIn, db: Session = Depends(get_db)
):
    return _update(transaction_id, data, db)


@app.delete("/api/transactions", response_model=SuccessOut)
def delete_transaction_by_body(
    data: TransactionDeleteIn, db: Session = Depends(get_db)
):
    return _delete(data.id, db)


@app.delete("/api/transactions/{transaction_id}", response_model=SuccessOut)
def delete_transaction(transaction_id: int, db: Session = Depends(get_db)):
    return _delete(transaction_id, db)


@app.get("/api/budgets", response_model=list[BudgetOut])
def list_budgets(request: Request, db: Session = Depends(get_db)):
    window = month_from_request(request, required=True)
    return [BudgetOut.from_model(b) for b in BudgetService(db).find(window)]


@app.get("/api/budgets/export.csv")
def export_budgets_endpoint(request: Request, db: Session = Depends(get_db)):
    window = month_from_request(request, required=True)
    budgets = BudgetService(db).find(window)
    filename = f"budgets-{window.key}.csv"
    return StreamingResponse(
        iter([export_budgets(budgets)]),
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@app.get("/api/budgets/comparison", response_model=list[BudgetComparisonOut])
def budget_comparison(request: Request, db: Session = Depends(get_db)):
    window = month_from_request(request)
    filters = filters_from_request(request)
    report = ReportService(db).build(window, filters)
    return [BudgetComparisonOut.from_comparison(row) for row in report.comparisons]


@app.post("/api/budgets", response_model=BudgetOut)
def upsert_budget(data: BudgetIn, db: Session = Depends(get_db)):
    try:
        budget = BudgetService(db).upsert(data)
    except ValidationFailed as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return BudgetOut.from_model(budget)


@app.delete("/api/budgets/{budget_id}", response_model=SuccessOut)
def delete_budget(budget_id: int, db: Session = Depends(get_db)):
    try:
        BudgetService(db).delete(budget_id)
    except RecordNotFound as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return SuccessOut()


@app.get("/api/summary", response_model=SummaryOut)
def summary(request: Request, db: Session = Depends(get_db)):
    window = month_from_request(request)
    filters = filters_from_request(request)
    report = ReportService(db).build(window, filters)
    overview = report.overview
    return SummaryOut(
        month=window.key,
        totals=TotalsOut(
            income=cents_to_amount(overview.income_cents),
            expense=cents_to_amount(overview.expense_cents),
            net_savings=cents_to_amount(overview.net_savings_cents),
        ),
        category_totals=[
            CategoryTotalOut.from_total(row) for row in overview.category_totals
        ],
        monthly_series=[
            MonthlyTotalOut.from_total(row) for row in overview.monthly_series
        ],
        savings_series=[
            MonthlySavingsOut.from_savings(row) for row in overview.savings_series
        ],
        recent=[TransactionOut.from_occurrence(occ) for occ in report.recent],
    )


@app.get("/api/insights", response_model=InsightsOut)
def insights(request: Request, db: Session = Depends(get_db)):
    window = month_from_request(request)
    filters = filters_from_request(request)
    report = ReportService(db).build(window, filters)
    return InsightsOut(month=window.key, insights=report.insights)


def main():
    import uvicorn

    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=False)


if __name__ == "__main__":
    main()
