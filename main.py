import logging
from typing import Iterator, Optional

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.responses import StreamingResponse

from config import get_log_level, get_settings
from csv_utils import export_budget_items
from errors import (
    BudgetError,
    ConflictError,
    InvalidArgumentError,
    NotFoundError,
)
from periods import Period, resolve_period
from schemas import CategoryIn, CategoryOut, TransactionIn, TransactionOut
from services import ReportService

logger = logging.getLogger(__name__)

app = FastAPI(title="Home Budget")


def get_budget() -> Iterator[ReportService]:
    budget = ReportService.open(get_settings().database_path)
    try:
        yield budget
    finally:
        budget.close()


@app.on_event("startup")
def startup_event():
    logging.basicConfig(level=get_log_level())
    settings = get_settings()
    if not settings.database_path.exists():
        ReportService.open(settings.database_path, is_new=True).close()
        logger.info(f"startup_database_created: path={settings.database_path}")


def http_error(exc: BudgetError) -> HTTPException:
    if isinstance(exc, NotFoundError):
        return HTTPException(status_code=404, detail=str(exc))
    if isinstance(exc, InvalidArgumentError):
        return HTTPException(status_code=400, detail=str(exc))
    if isinstance(exc, ConflictError):
        return HTTPException(status_code=409, detail=str(exc))
    logger.error(f"request_failed: error={exc}")
    return HTTPException(status_code=500, detail=str(exc))


def period_from_request(request: Request) -> Period:
    period_slug = request.query_params.get("period")
    start = request.query_params.get("start")
    end = request.query_params.get("end")
    try:
        return resolve_period(period_slug, start, end)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


def report_args(request: Request) -> dict:
    period = period_from_request(request)
    args = {"start": period.start, "end": period.end}
    category_param = request.query_params.get("category_id")
    if category_param:
        try:
            args["category_id"] = int(category_param)
        except ValueError as exc:
            raise HTTPException(status_code=400, detail="Invalid category_id") from exc
        args["filter_by_category"] = True
    return args


@app.get("/api/categories")
def list_categories(
    type: Optional[str] = None, budget: ReportService = Depends(get_budget)
):
    try:
        if type:
            categories = budget.categories.list_by_type(type)
        else:
            categories = budget.categories.list_all()
    except BudgetError as exc:
        raise http_error(exc) from exc
    return [CategoryOut.model_validate(c) for c in categories]


@app.post("/api/categories", status_code=201)
def create_category(data: CategoryIn, budget: ReportService = Depends(get_budget)):
    try:
        category_id = budget.categories.add(data.name, data.type)
        category = budget.categories.get(category_id)
    except BudgetError as exc:
        raise http_error(exc) from exc
    return CategoryOut.model_validate(category)


@app.get("/api/categories/{category_id}")
def get_category(category_id: int, budget: ReportService = Depends(get_budget)):
    try:
        category = budget.categories.get(category_id)
    except BudgetError as exc:
        raise http_error(exc) from exc
    if category is None:
        raise HTTPException(status_code=404, detail="Category not found")
    return CategoryOut.model_validate(category)


@app.put("/api/categories/{category_id}")
def update_category(
    category_id: int, data: CategoryIn, budget: ReportService = Depends(get_budget)
):
    try:
        budget.categories.update(category_id, data.name, data.type)
        category = budget.categories.get(category_id)
    except BudgetError as exc:
        raise http_error(exc) from exc
    return CategoryOut.model_validate(category)


@app.delete("/api/categories/{category_id}", status_code=204)
def delete_category(category_id: int, budget: ReportService = Depends(get_budget)):
    try:
        budget.categories.delete(category_id)
    except BudgetError as exc:
        raise http_error(exc) from exc


@app.get("/api/transactions")
def list_transactions(
    request: Request,
    created_by: Optional[str] = None,
    budget: ReportService = Depends(get_budget),
):
    period = period_from_request(request)
    try:
        if created_by:
            transactions = budget.transactions.list_by_created_by(created_by)
        elif period.slug == "all":
            transactions = budget.transactions.list_all()
        else:
            transactions = budget.transactions.list_by_date_range(
                period.start, period.end
            )
    except BudgetError as exc:
        raise http_error(exc) from exc
    return [TransactionOut.model_validate(t) for t in transactions]


@app.post("/api/transactions", status_code=201)
def create_transaction(
    data: TransactionIn, budget: ReportService = Depends(get_budget)
):
    try:
        transaction_id = budget.transactions.add(
            data.transaction_date,
            data.category_id,
            data.amount,
            data.description,
            data.created_by,
            created_at=data.created_at,
        )
        transaction = budget.transactions.get(transaction_id)
    except BudgetError as exc:
        raise http_error(exc) from exc
    return TransactionOut.model_validate(transaction)


@app.get("/api/transactions/{transaction_id}")
def get_transaction(transaction_id: int, budget: ReportService = Depends(get_budget)):
    try:
        transaction = budget.transactions.get(transaction_id)
    except BudgetError as exc:
        raise http_error(exc) from exc
    if transaction is None:
        raise HTTPException(status_code=404, detail="Transaction not found")
    return TransactionOut.model_validate(transaction)


@app.put("/api/transactions/{transaction_id}")
def update_transaction(
    transaction_id: int,
    data: TransactionIn,
    budget: ReportService = Depends(get_budget),
):
    try:
        budget.transactions.update(
            transaction_id,
            data.transaction_date,
            data.description,
            data.amount,
            data.category_id,
            data.created_by,
        )
        transaction = budget.transactions.get(transaction_id)
    except BudgetError as exc:
        raise http_error(exc) from exc
    return TransactionOut.model_validate(transaction)


@app.delete("/api/transactions/{transaction_id}", status_code=204)
def delete_transaction(
    transaction_id: int, budget: ReportService = Depends(get_budget)
):
    try:
        budget.transactions.delete(transaction_id)
    except BudgetError as exc:
        raise http_error(exc) from exc


@app.get("/api/reports/items")
def report_items(request: Request, budget: ReportService = Depends(get_budget)):
    args = report_args(request)
    try:
        return budget.get_budget_items(**args)
    except BudgetError as exc:
        raise http_error(exc) from exc


@app.get("/api/reports/by-month")
def report_by_month(request: Request, budget: ReportService = Depends(get_budget)):
    args = report_args(request)
    try:
        return budget.get_budget_items_by_month(**args)
    except BudgetError as exc:
        raise http_error(exc) from exc


@app.get("/api/reports/by-category")
def report_by_category(request: Request, budget: ReportService = Depends(get_budget)):
    args = report_args(request)
    try:
        return budget.get_budget_items_by_category(**args)
    except BudgetError as exc:
        raise http_error(exc) from exc


@app.get("/api/reports/by-category-and-month")
def report_by_category_and_month(
    request: Request, budget: ReportService = Depends(get_budget)
):
    args = report_args(request)
    try:
        return budget.get_budget_by_category_and_month(**args)
    except BudgetError as exc:
        raise http_error(exc) from exc


@app.get("/api/reports/creators")
def report_creators(request: Request, budget: ReportService = Depends(get_budget)):
    period = period_from_request(request)
    try:
        return budget.get_created_by_statistics(period.start, period.end)
    except BudgetError as exc:
        raise http_error(exc) from exc


@app.get("/api/reports/creators/{created_by}")
def report_creator_items(
    created_by: str, request: Request, budget: ReportService = Depends(get_budget)
):
    period = period_from_request(request)
    try:
        return budget.get_budget_items_by_created_by(
            created_by, period.start, period.end
        )
    except BudgetError as exc:
        raise http_error(exc) from exc


@app.get("/api/reports/items.csv")
def export_items_endpoint(request: Request, budget: ReportService = Depends(get_budget)):
    period = period_from_request(request)
    args = report_args(request)
    try:
        items = budget.get_budget_items(**args)
    except BudgetError as exc:
        raise http_error(exc) from exc
    csv_text = export_budget_items(items)
    filename = f"budget_{period.slug}.csv"
    return StreamingResponse(
        iter([csv_text]),
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


def main():
    import uvicorn

    settings = get_settings()
    uvicorn.run("main:app", host=settings.host, port=settings.port, reload=False)


if __name__ == "__main__":
    main()
