import logging
from datetime import date
from uuid import UUID

from sqlalchemy import delete, extract, insert, select, update
from sqlalchemy.engine import Connection

from backend.access import Principal, can_modify_transaction
from backend.budget_owners import accessible_ids_query, get_visible_budget_owner
from backend.categories import find_category
from backend.db import budget_owners, categories, fetch_page, new_id, transactions, users
from backend.errors import ForbiddenError, NotFoundError, ValidationError
from backend.pagination import PageRequest, PaginationMeta
from backend.schemas import (
    MAX_CATEGORY_IDS,
    TransactionCreatePayload,
    TransactionResponse,
    TransactionUpdatePayload,
)
from backend.utilization import to_money

logger = logging.getLogger(__name__)


def parse_category_ids(raw: str | None) -> list[str]:
    """Parse a comma separated list of category ids."""
    if raw is None:
        return []
    values = [value.strip() for value in raw.split(",") if value.strip()]
    if not values:
        raise ValidationError("category_ids must contain at least one id.")
    if len(values) > MAX_CATEGORY_IDS:
        raise ValidationError(f"category_ids accepts at most {MAX_CATEGORY_IDS} ids.")
    parsed = []
    for value in values:
        try:
            parsed.append(str(UUID(value)))
        except ValueError as exc:
            raise ValidationError(f"Invalid category id '{value}'.") from exc
    return parsed


def enriched_query(principal: Principal):
    query = (
        select(
            transactions,
            budget_owners.c.name.label("budget_owner_name"),
            categories.c.name.label("category_name"),
            users.c.name.label("created_by_name"),
        )
        .join(budget_owners, budget_owners.c.id == transactions.c.budget_owner_id)
        .join(categories, categories.c.id == transactions.c.category_id)
        .join(users, users.c.id == transactions.c.created_by)
    )
    if not principal.is_super_admin:
        query = query.where(
            transactions.c.budget_owner_id.in_(accessible_ids_query(principal.user_id))
        )
    return query


def to_response(row) -> TransactionResponse:
    return TransactionResponse(
        id=row["id"],
        budget_owner_id=row["budget_owner_id"],
        budget_owner_name=row["budget_owner_name"],
        category_id=row["category_id"],
        category_name=row["category_name"],
        date=row["date"],
        amount=to_money(row["amount"]),
        description=row["description"],
        receipt_url=row["receipt_url"],
        created_by=row["created_by"],
        created_by_name=row["created_by_name"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


def list_transactions(
    conn: Connection,
    principal: Principal,
    page: PageRequest,
    budget_owner_id: str | None = None,
    category_id: str | None = None,
    category_ids: list[str] | None = None,
    start_date: date | None = None,
    end_date: date | None = None,
    year: int | None = None,
) -> tuple[list[TransactionResponse], PaginationMeta]:
    if category_id and category_ids:
        raise ValidationError("Use either category_id or category_ids, not both.")
    if start_date and end_date and start_date > end_date:
        raise ValidationError("start_date must be on or before end_date.")

    query = enriched_query(principal)
    if budget_owner_id:
        query = query.where(transactions.c.budget_owner_id == budget_owner_id)
    if category_id:
        query = query.where(transactions.c.category_id == category_id)
    if category_ids:
        query = query.where(transactions.c.category_id.in_(category_ids))
    if start_date:
        query = query.where(transactions.c.date >= start_date)
    if end_date:
        query = query.where(transactions.c.date <= end_date)
    if year is not None:
        query = query.where(extract("year", transactions.c.date) == year)
    query = query.order_by(
        transactions.c.date.desc(), transactions.c.created_at.desc(), transactions.c.id.asc()
    )
    rows, meta = fetch_page(conn, query, page)
    return [to_response(row) for row in rows], meta


def _find_visible(conn: Connection, principal: Principal, transaction_id: str):
    row = conn.execute(
        enriched_query(principal).where(transactions.c.id == transaction_id)
    ).mappings().first()
    if not row:
        raise NotFoundError(f"Transaction '{transaction_id}' not found.")
    return row


def get_transaction(
    conn: Connection, principal: Principal, transaction_id: str
) -> TransactionResponse:
    return to_response(_find_visible(conn, principal, transaction_id))


def _require_category(conn: Connection, category_id: str) -> None:
    if not find_category(conn, category_id):
        raise NotFoundError(f"Category '{category_id}' not found.")


def create_transaction(
    conn: Connection, principal: Principal, payload: TransactionCreatePayload
) -> TransactionResponse:
    budget_owner_id = str(payload.budget_owner_id)
    category_id = str(payload.category_id)
    get_visible_budget_owner(conn, principal, budget_owner_id)
    _require_category(conn, category_id)
    transaction_id = new_id()
    conn.execute(
        insert(transactions).values(
            id=transaction_id,
            budget_owner_id=budget_owner_id,
            category_id=category_id,
            date=payload.date,
            amount=payload.amount,
            description=payload.description,
            receipt_url=payload.receipt_url,
            created_by=principal.user_id,
        )
    )
    logger.info(
        "User %s recorded transaction %s for owner %s",
        principal.user_id,
        transaction_id,
        budget_owner_id,
    )
    return get_transaction(conn, principal, transaction_id)


def update_transaction(
    conn: Connection,
    principal: Principal,
    transaction_id: str,
    payload: TransactionUpdatePayload,
) -> TransactionResponse:
    existing = _find_visible(conn, principal, transaction_id)
    if not can_modify_transaction(principal, existing["created_by"]):
        raise ForbiddenError("Only the creator or a super admin can modify this transaction.")

    changes = payload.changes()
    if "budget_owner_id" in changes:
        changes["budget_owner_id"] = str(changes["budget_owner_id"])
        get_visible_budget_owner(conn, principal, changes["budget_owner_id"])
    if "category_id" in changes:
        changes["category_id"] = str(changes["category_id"])
        _require_category(conn, changes["category_id"])
    if changes:
        conn.execute(
            update(transactions).where(transactions.c.id == transaction_id).values(**changes)
        )
    return get_transaction(conn, principal, transaction_id)


def delete_transaction(conn: Connection, principal: Principal, transaction_id: str) -> None:
    existing = _find_visible(conn, principal, transaction_id)
    if not can_modify_transaction(principal, existing["created_by"]):
        raise ForbiddenError("Only the creator or a super admin can delete this transaction.")
    conn.execute(delete(transactions).where(transactions.c.id == transaction_id))
    logger.info("User %s deleted transaction %s", principal.user_id, transaction_id)
