import logging

from sqlalchemy import delete, insert, or_, select, update
from sqlalchemy.engine import Connection
from sqlalchemy.exc import IntegrityError

from backend.access import SUPER_ADMIN, Principal, require_super_admin
from backend.budget_owners import find_budget_owner
from backend.db import budget_owners, budgets, exists, fetch_page, new_id, transactions, user_access, users
from backend.errors import DuplicateError, NotFoundError, ValidationError
from backend.pagination import PageRequest, PaginationMeta
from backend.schemas import (
    UserAccessPayload,
    UserAccessResponse,
    UserCreatePayload,
    UserResponse,
    UserUpdatePayload,
)
from backend.security import hash_password

logger = logging.getLogger(__name__)

# password_hash never leaves this module
PUBLIC_COLUMNS = [
    users.c.id,
    users.c.email,
    users.c.name,
    users.c.role,
    users.c.status,
    users.c.created_at,
    users.c.updated_at,
]


def to_response(row) -> UserResponse:
    return UserResponse(
        id=row["id"],
        email=row["email"],
        name=row["name"],
        role=row["role"],
        status=row["status"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


def find_user(conn: Connection, user_id: str):
    return conn.execute(select(*PUBLIC_COLUMNS).where(users.c.id == user_id)).mappings().first()


def find_user_by_email(conn: Connection, email: str):
    return conn.execute(select(users).where(users.c.email == email)).mappings().first()


def _require_user(conn: Connection, user_id: str):
    row = find_user(conn, user_id)
    if not row:
        raise NotFoundError(f"User '{user_id}' not found.")
    return row


def list_users(
    conn: Connection,
    principal: Principal,
    page: PageRequest,
    search: str | None = None,
    role: str | None = None,
    status: str | None = None,
) -> tuple[list[UserResponse], PaginationMeta]:
    require_super_admin(principal)
    query = select(*PUBLIC_COLUMNS)
    if search and search.strip():
        pattern = f"%{search.strip()}%"
        query = query.where(or_(users.c.name.ilike(pattern), users.c.email.ilike(pattern)))
    if role:
        query = query.where(users.c.role == role)
    if status:
        query = query.where(users.c.status == status)
    query = query.order_by(users.c.name.asc(), users.c.id.asc())
    rows, meta = fetch_page(conn, query, page)
    return [to_response(row) for row in rows], meta


def get_user(conn: Connection, principal: Principal, user_id: str) -> UserResponse:
    require_super_admin(principal)
    return to_response(_require_user(conn, user_id))


def create_user(conn: Connection, principal: Principal, payload: UserCreatePayload) -> UserResponse:
    require_super_admin(principal)
    if find_user_by_email(conn, payload.email):
        raise DuplicateError(f"User with email '{payload.email}' already exists.")
    stmt = (
        insert(users)
        .values(
            id=new_id(),
            email=payload.email,
            name=payload.name,
            password_hash=hash_password(payload.password),
            role=payload.role,
            status="ACTIVE",
        )
        .returning(*PUBLIC_COLUMNS)
    )
    try:
        row = conn.execute(stmt).mappings().first()
    except IntegrityError as exc:
        raise DuplicateError("Email already exists.") from exc
    logger.info("Created user %s with role %s", row["id"], row["role"])
    return to_response(row)


def update_user(
    conn: Connection, principal: Principal, user_id: str, payload: UserUpdatePayload
) -> UserResponse:
    require_super_admin(principal)
    existing = _require_user(conn, user_id)
    changes = payload.changes()
    if user_id == principal.user_id:
        if changes.get("role", SUPER_ADMIN) != SUPER_ADMIN:
            raise ValidationError("You cannot remove your own super admin role.")
        if changes.get("status", "ACTIVE") != "ACTIVE":
            raise ValidationError("You cannot deactivate your own account.")
    if "password" in changes:
        changes["password_hash"] = hash_password(changes.pop("password"))
    if not changes:
        return to_response(existing)
    row = conn.execute(
        update(users).where(users.c.id == user_id).values(**changes).returning(*PUBLIC_COLUMNS)
    ).mappings().first()
    return to_response(row)


def delete_user(conn: Connection, principal: Principal, user_id: str) -> None:
    require_super_admin(principal)
    if user_id == principal.user_id:
        raise ValidationError("You cannot delete your own account.")
    _require_user(conn, user_id)
    has_records = exists(
        conn, select(transactions.c.id).where(transactions.c.created_by == user_id)
    ) or exists(conn, select(budgets.c.id).where(budgets.c.created_by == user_id))
    if has_records:
        raise ValidationError(
            "User has recorded budgets or transactions; deactivate the account instead."
        )
    conn.execute(delete(user_access).where(user_access.c.user_id == user_id))
    conn.execute(delete(users).where(users.c.id == user_id))
    logger.info("Deleted user %s", user_id)


def list_user_access(
    conn: Connection, principal: Principal, user_id: str
) -> list[UserAccessResponse]:
    require_super_admin(principal)
    _require_user(conn, user_id)
    rows = conn.execute(
        select(
            user_access.c.user_id,
            user_access.c.budget_owner_id,
            user_access.c.created_at,
            budget_owners.c.name.label("budget_owner_name"),
            budget_owners.c.code.label("budget_owner_code"),
        )
        .join(budget_owners, budget_owners.c.id == user_access.c.budget_owner_id)
        .where(user_access.c.user_id == user_id)
        .order_by(budget_owners.c.name.asc())
    ).mappings().all()
    return [UserAccessResponse(**row) for row in rows]


def grant_access(
    conn: Connection, principal: Principal, user_id: str, payload: UserAccessPayload
) -> UserAccessResponse:
    require_super_admin(principal)
    _require_user(conn, user_id)
    budget_owner_id = str(payload.budget_owner_id)
    owner = find_budget_owner(conn, budget_owner_id)
    if not owner:
        raise NotFoundError(f"Budget owner '{budget_owner_id}' not found.")
    already = exists(
        conn,
        select(user_access.c.id).where(
            user_access.c.user_id == user_id,
            user_access.c.budget_owner_id == budget_owner_id,
        ),
    )
    if already:
        raise DuplicateError("User already has access to this budget owner.")
    try:
        row = conn.execute(
            insert(user_access)
            .values(id=new_id(), user_id=user_id, budget_owner_id=budget_owner_id)
            .returning(user_access.c.created_at)
        ).mappings().first()
    except IntegrityError as exc:
        raise DuplicateError("User already has access to this budget owner.") from exc
    logger.info("Granted user %s access to budget owner %s", user_id, budget_owner_id)
    return UserAccessResponse(
        user_id=user_id,
        budget_owner_id=budget_owner_id,
        budget_owner_name=owner["name"],
        budget_owner_code=owner["code"],
        created_at=row["created_at"],
    )


def revoke_access(
    conn: Connection, principal: Principal, user_id: str, budget_owner_id: str
) -> None:
    require_super_admin(principal)
    result = conn.execute(
        delete(user_access).where(
            user_access.c.user_id == user_id,
            user_access.c.budget_owner_id == budget_owner_id,
        )
    )
    if result.rowcount == 0:
        raise NotFoundError("Access grant not found.")
    logger.info("Revoked user %s access to budget owner %s", user_id, budget_owner_id)
