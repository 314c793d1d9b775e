import logging

from sqlalchemy import delete, insert, or_, select, update
from sqlalchemy.engine import Connection
from sqlalchemy.exc import IntegrityError

from backend.access import Principal, can_view_budget_owner, require_super_admin
from backend.db import budget_owners, budgets, exists, fetch_page, new_id, transactions, user_access
from backend.errors import DuplicateError, NotFoundError, ValidationError
from backend.pagination import PageRequest, PaginationMeta
from backend.schemas import (
    BudgetOwnerCreatePayload,
    BudgetOwnerResponse,
    BudgetOwnerUpdatePayload,
)

logger = logging.getLogger(__name__)


def to_response(row) -> BudgetOwnerResponse:
    return BudgetOwnerResponse(
        id=row["id"],
        name=row["name"],
        code=row["code"],
        description=row["description"],
        status=row["status"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


def accessible_ids_query(user_id: str):
    return select(user_access.c.budget_owner_id).where(user_access.c.user_id == user_id)


def accessible_budget_owner_ids(conn: Connection, user_id: str) -> set[str]:
    return set(conn.execute(accessible_ids_query(user_id)).scalars().all())


def find_budget_owner(conn: Connection, budget_owner_id: str):
    return conn.execute(
        select(budget_owners).where(budget_owners.c.id == budget_owner_id)
    ).mappings().first()


def get_visible_budget_owner(conn: Connection, principal: Principal, budget_owner_id: str):
    """Load a budget owner, hiding owners outside the caller's access set as missing."""
    row = find_budget_owner(conn, budget_owner_id)
    if not row:
        raise NotFoundError(f"Budget owner '{budget_owner_id}' not found.")
    if not principal.is_super_admin:
        accessible = accessible_budget_owner_ids(conn, principal.user_id)
        if not can_view_budget_owner(principal, budget_owner_id, accessible):
            raise NotFoundError(f"Budget owner '{budget_owner_id}' not found.")
    return row


def list_budget_owners(
    conn: Connection,
    principal: Principal,
    page: PageRequest,
    status: str | None = None,
    search: str | None = None,
) -> tuple[list[BudgetOwnerResponse], PaginationMeta]:
    query = select(budget_owners)
    if not principal.is_super_admin:
        query = query.where(budget_owners.c.id.in_(accessible_ids_query(principal.user_id)))
    if status:
        query = query.where(budget_owners.c.status == status)
    if search and search.strip():
        pattern = f"%{search.strip()}%"
        query = query.where(
            or_(budget_owners.c.name.ilike(pattern), budget_owners.c.code.ilike(pattern))
        )
    query = query.order_by(budget_owners.c.name.asc(), budget_owners.c.id.asc())
    rows, meta = fetch_page(conn, query, page)
    return [to_response(row) for row in rows], meta


def _ensure_unique(
    conn: Connection, name: str | None, code: str | None, exclude_id: str | None = None
) -> None:
    if name:
        query = select(budget_owners.c.id).where(budget_owners.c.name == name)
        if exclude_id:
            query = query.where(budget_owners.c.id != exclude_id)
        if exists(conn, query):
            raise DuplicateError(f"Budget owner with name '{name}' already exists.")
    if code:
        query = select(budget_owners.c.id).where(budget_owners.c.code == code)
        if exclude_id:
            query = query.where(budget_owners.c.id != exclude_id)
        if exists(conn, query):
            raise DuplicateError(f"Budget owner with code '{code}' already exists.")


def create_budget_owner(
    conn: Connection, principal: Principal, payload: BudgetOwnerCreatePayload
) -> BudgetOwnerResponse:
    require_super_admin(principal)
    _ensure_unique(conn, payload.name, payload.code)
    stmt = (
        insert(budget_owners)
        .values(
            id=new_id(),
            name=payload.name,
            code=payload.code,
            description=payload.description,
            status="ACTIVE",
        )
        .returning(*budget_owners.c)
    )
    try:
        row = conn.execute(stmt).mappings().first()
    except IntegrityError as exc:
        raise DuplicateError("Budget owner already exists.") from exc
    logger.info("Created budget owner %s (%s)", row["id"], row["name"])
    return to_response(row)


def update_budget_owner(
    conn: Connection,
    principal: Principal,
    budget_owner_id: str,
    payload: BudgetOwnerUpdatePayload,
) -> BudgetOwnerResponse:
    require_super_admin(principal)
    existing = find_budget_owner(conn, budget_owner_id)
    if not existing:
        raise NotFoundError(f"Budget owner '{budget_owner_id}' not found.")

    changes = payload.changes()
    new_name = changes.get("name")
    new_code = changes.get("code")
    _ensure_unique(
        conn,
        new_name if new_name and new_name != existing["name"] else None,
        new_code if new_code and new_code != existing["code"] else None,
        exclude_id=budget_owner_id,
    )
    if not changes:
        return to_response(existing)

    stmt = (
        update(budget_owners)
        .where(budget_owners.c.id == budget_owner_id)
        .values(**changes)
        .returning(*budget_owners.c)
    )
    try:
        row = conn.execute(stmt).mappings().first()
    except IntegrityError as exc:
        raise DuplicateError("Budget owner already exists.") from exc
    return to_response(row)


def delete_budget_owner(conn: Connection, principal: Principal, budget_owner_id: str) -> None:
    require_super_admin(principal)
    if not find_budget_owner(conn, budget_owner_id):
        raise NotFoundError(f"Budget owner '{budget_owner_id}' not found.")
    in_use = exists(
        conn,
        select(transactions.c.id).where(transactions.c.budget_owner_id == budget_owner_id),
    )
    if in_use:
        raise ValidationError("Budget owner cannot be deleted while transactions reference it.")
    conn.execute(delete(user_access).where(user_access.c.budget_owner_id == budget_owner_id))
    conn.execute(delete(budgets).where(budgets.c.budget_owner_id == budget_owner_id))
    conn.execute(delete(budget_owners).where(budget_owners.c.id == budget_owner_id))
    logger.info("Deleted budget owner %s", budget_owner_id)
