import logging
import os
from datetime import date
from decimal import Decimal

from sqlalchemy import insert, select
from sqlalchemy.engine import Connection

from backend.access import SUPER_ADMIN, USER
from backend.db import budget_owners, budgets, categories, engine, init_db, new_id, user_access, users
from backend.security import hash_password

logger = logging.getLogger(__name__)

DEFAULT_CATEGORIES = [
    ("Office Supplies", "Stationery and supplies for the office"),
    ("Business Travel", "Transport and accommodation costs"),
    ("Training & Development", "Training and workshop fees"),
    ("Software & Licenses", "Software purchases and license renewals"),
    ("Meals & Refreshments", "Food and drinks for events"),
    ("Utilities", "Electricity, water, internet and other utilities"),
]

DEFAULT_BUDGET_OWNERS = [
    ("IT Division", "IT", "Information Technology Division"),
    ("Marketing Division", "MKT", "Marketing Division"),
    ("HR Division", "HR", "Human Resources Division"),
    ("Finance Division", "FIN", "Finance Division"),
]

DEFAULT_BUDGET_AMOUNT = Decimal("100000000")


def ensure_user(conn: Connection, email: str, name: str, password: str, role: str) -> str:
    existing = conn.execute(select(users.c.id).where(users.c.email == email)).scalar_one_or_none()
    if existing:
        return existing
    user_id = new_id()
    conn.execute(
        insert(users).values(
            id=user_id,
            email=email,
            name=name,
            password_hash=hash_password(password),
            role=role,
            status="ACTIVE",
        )
    )
    logger.info("Seeded %s user %s", role, email)
    return user_id


def ensure_default_categories(conn: Connection) -> None:
    existing = set(conn.execute(select(categories.c.name)).scalars().all())
    missing = [
        {"id": new_id(), "name": name, "description": description, "status": "ACTIVE"}
        for name, description in DEFAULT_CATEGORIES
        if name not in existing
    ]
    if missing:
        conn.execute(insert(categories), missing)
        logger.info("Seeded %s categories", len(missing))


def ensure_default_budget_owners(conn: Connection) -> list[str]:
    owner_ids = []
    for name, code, description in DEFAULT_BUDGET_OWNERS:
        owner_id = conn.execute(
            select(budget_owners.c.id).where(budget_owners.c.name == name)
        ).scalar_one_or_none()
        if not owner_id:
            owner_id = new_id()
            conn.execute(
                insert(budget_owners).values(
                    id=owner_id,
                    name=name,
                    code=code,
                    description=description,
                    status="ACTIVE",
                )
            )
            logger.info("Seeded budget owner %s", name)
        owner_ids.append(owner_id)
    return owner_ids


def ensure_budget(conn: Connection, budget_owner_id: str, year: int, created_by: str) -> None:
    existing = conn.execute(
        select(budgets.c.id).where(
            budgets.c.budget_owner_id == budget_owner_id, budgets.c.year == year
        )
    ).first()
    if existing:
        return
    conn.execute(
        insert(budgets).values(
            id=new_id(),
            budget_owner_id=budget_owner_id,
            year=year,
            amount_planned=DEFAULT_BUDGET_AMOUNT,
            created_by=created_by,
        )
    )


def ensure_access(conn: Connection, user_id: str, budget_owner_id: str) -> None:
    existing = conn.execute(
        select(user_access.c.id).where(
            user_access.c.user_id == user_id,
            user_access.c.budget_owner_id == budget_owner_id,
        )
    ).first()
    if not existing:
        conn.execute(
            insert(user_access).values(
                id=new_id(), user_id=user_id, budget_owner_id=budget_owner_id
            )
        )


def seed_defaults(conn: Connection, year: int | None = None) -> None:
    """Create the default accounts, categories, owners and budgets. Safe to rerun."""
    admin_id = ensure_user(
        conn,
        os.getenv("ADMIN_EMAIL", "admin@dashfinance.com").strip().lower(),
        "Super Admin",
        os.getenv("ADMIN_PASSWORD", "admin123"),
        SUPER_ADMIN,
    )
    user_id = ensure_user(
        conn,
        os.getenv("SEED_USER_EMAIL", "user@dashfinance.com").strip().lower(),
        "Regular User",
        os.getenv("SEED_USER_PASSWORD", "user1234"),
        USER,
    )
    ensure_default_categories(conn)
    owner_ids = ensure_default_budget_owners(conn)
    budget_year = year or date.today().year
    for owner_id in owner_ids:
        ensure_budget(conn, owner_id, budget_year, admin_id)
    if owner_ids:
        ensure_access(conn, user_id, owner_ids[0])
    logger.info("Seed complete for year %s", budget_year)


if __name__ == "__main__":
    logging.basicConfig(
        level=os.getenv("LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    init_db()
    with engine.begin() as conn:
        seed_defaults(conn)
