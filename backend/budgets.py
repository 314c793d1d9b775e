import logging

from sqlalchemy import delete, extract, func, insert, select, update
from sqlalchemy.engine import Connection
from sqlalchemy.exc import IntegrityError

from backend.access import Principal, require_super_admin
from backend.budget_owners import accessible_ids_query, find_budget_owner
from backend.db import budget_owners, budgets, exists, fetch_page, new_id, transactions
from backend.errors import DuplicateError, NotFoundError
from backend.pagination import PageRequest, PaginationMeta
from backend.schemas import (
    BudgetCreatePayload,
    BudgetResponse,
    BudgetSummaryResponse,
    BudgetUpdatePayload,
)
from backend.utilization import BudgetFigures, calculate_utilization, summarize, to_money

logger = logging.getLogger(__name__)


def spent_column():
    """Sum of the owner's transactions dated within the budget year."""
    return (
        select(func.coalesce(func.sum(transactions.c.amount), 0))
        .where(
            transactions.c.budget_owner_id == budgets.c.budget_owner_id,
            extract("year", transactions.c.date) == budgets.c.year,
        )
        .correlate(budgets)
        .scalar_subquery()
        .label("amount_spent")
    )


def enriched_query(principal: Principal):
    query = select(
        budgets,
        budget_owners.c.name.label("budget_owner_name"),
        spent_column(),
    ).join(budget_owners, budget_owners.c.id == budgets.c.budget_owner_id)
    if not principal.is_super_admin:
        query = query.where(budgets.c.budget_owner_id.in_(accessible_ids_query(principal.user_id)))
    return query


def to_response(row) -> BudgetResponse:
    spent = to_money(row["amount_spent"])
    result = calculate_utilization(row["amount_planned"], row["amount_revised"], spent)
    return BudgetResponse(
        id=row["id"],
        budget_owner_id=row["budget_owner_id"],
        budget_owner_name=row["budget_owner_name"],
        year=row["year"],
        amount_planned=to_money(row["amount_planned"]),
        amount_revised=(
            to_money(row["amount_revised"]) if row["amount_revised"] is not None else None
        ),
        amount_spent=spent,
        amount_remaining=to_money(result.remaining),
        utilization_percentage=result.utilization_percentage,
        created_by=row["created_by"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


def list_budgets(
    conn: Connection,
    principal: Principal,
    page: PageRequest,
    budget_owner_id: str | None = None,
    year: int | None = None,
) -> tuple[list[BudgetResponse], PaginationMeta]:
    query = enriched_query(principal)
    if budget_owner_id:
        query = query.where(budgets.c.budget_owner_id == budget_owner_id)
    if year is not None:
        query = query.where(budgets.c.year == year)
    query = query.order_by(
        budgets.c.year.desc(), budget_owners.c.name.asc(), budgets.c.id.asc()
    )
    rows, meta = fetch_page(conn, query, page)
    return [to_response(row) for row in rows], meta


def get_budget(conn: Connection, principal: Principal, budget_id: str) -> BudgetResponse:
    row = conn.execute(
        enriched_query(principal).where(budgets.c.id == budget_id)
    ).mappings().first()
    if not row:
        raise NotFoundError(f"Budget '{budget_id}' not found.")
    return to_response(row)


def budget_summary(
    conn: Connection, principal: Principal, year: int | None = None
) -> BudgetSummaryResponse:
    query = enriched_query(principal)
    if year is not None:
        query = query.where(budgets.c.year == year)
    rows = conn.execute(query).mappings().all()
    summary = summarize(
        BudgetFigures(
            amount_planned=row["amount_planned"],
            amount_spent=to_money(row["amount_spent"]),
            amount_revised=row["amount_revised"],
        )
        for row in rows
    )
    return BudgetSummaryResponse(
        year=year,
        budget_count=summary.budget_count,
        total_planned=to_money(summary.total_planned),
        total_revised=to_money(summary.total_revised),
        total_spent=to_money(summary.total_spent),
        total_remaining=to_money(summary.total_remaining),
        average_utilization=summary.average_utilization,
    )


def create_budget(
    conn: Connection, principal: Principal, payload: BudgetCreatePayload
) -> BudgetResponse:
    require_super_admin(principal)
    budget_owner_id = str(payload.budget_owner_id)
    if not find_budget_owner(conn, budget_owner_id):
        raise NotFoundError(f"Budget owner '{budget_owner_id}' not found.")
    duplicate = exists(
        conn,
        select(budgets.c.id).where(
            budgets.c.budget_owner_id == budget_owner_id,
            budgets.c.year == payload.year,
        ),
    )
    if duplicate:
        raise DuplicateError(
            f"A budget for this owner already exists for year {payload.year}."
        )
    stmt = (
        insert(budgets)
        .values(
            id=new_id(),
            budget_owner_id=budget_owner_id,
            year=payload.year,
            amount_planned=payload.amount_planned,
            amount_revised=payload.amount_revised,
            created_by=principal.user_id,
        )
        .returning(budgets.c.id)
    )
    try:
        budget_id = conn.execute(stmt).scalar_one()
    except IntegrityError as exc:
        raise DuplicateError(
            f"A budget for this owner already exists for year {payload.year}."
        ) from exc
    logger.info("Created budget %s for owner %s year %s", budget_id, budget_owner_id, payload.year)
    return get_budget(conn, principal, budget_id)


def update_budget(
    conn: Connection, principal: Principal, budget_id: str, payload: BudgetUpdatePayload
) -> BudgetResponse:
    require_super_admin(principal)
    if not exists(conn, select(budgets.c.id).where(budgets.c.id == budget_id)):
        raise NotFoundError(f"Budget '{budget_id}' not found.")
    changes = payload.changes()
    if changes:
        conn.execute(update(budgets).where(budgets.c.id == budget_id).values(**changes))
    return get_budget(conn, principal, budget_id)


def delete_budget(conn: Connection, principal: Principal, budget_id: str) -> None:
    require_super_admin(principal)
    result = conn.execute(delete(budgets).where(budgets.c.id == budget_id))
    if result.rowcount == 0:
        raise NotFoundError(f"Budget '{budget_id}' not found.")
    logger.info("Deleted budget %s", budget_id)
