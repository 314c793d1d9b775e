import logging

from sqlalchemy import delete, insert, select, update
from sqlalchemy.engine import Connection
from sqlalchemy.exc import IntegrityError

from backend.access import Principal, require_super_admin
from backend.db import categories, exists, fetch_page, new_id, transactions
from backend.errors import DuplicateError, NotFoundError, ValidationError
from backend.pagination import PageRequest, PaginationMeta
from backend.schemas import CategoryCreatePayload, CategoryResponse, CategoryUpdatePayload

logger = logging.getLogger(__name__)


def to_response(row) -> CategoryResponse:
    return CategoryResponse(
        id=row["id"],
        name=row["name"],
        description=row["description"],
        status=row["status"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


def find_category(conn: Connection, category_id: str):
    return conn.execute(
        select(categories).where(categories.c.id == category_id)
    ).mappings().first()


def get_category(conn: Connection, category_id: str) -> CategoryResponse:
    row = find_category(conn, category_id)
    if not row:
        raise NotFoundError(f"Category '{category_id}' not found.")
    return to_response(row)


def category_in_use(conn: Connection, category_id: str) -> bool:
    return exists(
        conn, select(transactions.c.id).where(transactions.c.category_id == category_id)
    )


def list_categories(
    conn: Connection,
    page: PageRequest,
    status: str | None = None,
    search: str | None = None,
) -> tuple[list[CategoryResponse], PaginationMeta]:
    query = select(categories)
    if status:
        query = query.where(categories.c.status == status)
    if search and search.strip():
        query = query.where(categories.c.name.ilike(f"%{search.strip()}%"))
    query = query.order_by(categories.c.name.asc(), categories.c.id.asc())
    rows, meta = fetch_page(conn, query, page)
    return [to_response(row) for row in rows], meta


def _ensure_unique_name(conn: Connection, name: str, exclude_id: str | None = None) -> None:
    query = select(categories.c.id).where(categories.c.name == name)
    if exclude_id:
        query = query.where(categories.c.id != exclude_id)
    if exists(conn, query):
        raise DuplicateError(f"Category with name '{name}' already exists.")


def create_category(
    conn: Connection, principal: Principal, payload: CategoryCreatePayload
) -> CategoryResponse:
    require_super_admin(principal)
    _ensure_unique_name(conn, payload.name)
    stmt = (
        insert(categories)
        .values(
            id=new_id(),
            name=payload.name,
            description=payload.description,
            status="ACTIVE",
        )
        .returning(*categories.c)
    )
    try:
        row = conn.execute(stmt).mappings().first()
    except IntegrityError as exc:
        raise DuplicateError("Category already exists.") from exc
    logger.info("Created category %s (%s)", row["id"], row["name"])
    return to_response(row)


def update_category(
    conn: Connection,
    principal: Principal,
    category_id: str,
    payload: CategoryUpdatePayload,
) -> CategoryResponse:
    require_super_admin(principal)
    existing = find_category(conn, category_id)
    if not existing:
        raise NotFoundError(f"Category '{category_id}' not found.")
    changes = payload.changes()
    if not changes:
        return to_response(existing)
    if changes.get("name") and changes["name"] != existing["name"]:
        _ensure_unique_name(conn, changes["name"], exclude_id=category_id)

    stmt = (
        update(categories)
        .where(categories.c.id == category_id)
        .values(**changes)
        .returning(*categories.c)
    )
    try:
        row = conn.execute(stmt).mappings().first()
    except IntegrityError as exc:
        raise DuplicateError("Category already exists.") from exc
    return to_response(row)


def delete_category(conn: Connection, principal: Principal, category_id: str) -> None:
    require_super_admin(principal)
    if not find_category(conn, category_id):
        raise NotFoundError(f"Category '{category_id}' not found.")
    if category_in_use(conn, category_id):
        raise ValidationError("Category is in use by transactions and cannot be deleted.")
    conn.execute(delete(categories).where(categories.c.id == category_id))
    logger.info("Deleted category %s", category_id)
