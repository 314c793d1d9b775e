import logging
import os
import uuid
from typing import Iterator

from sqlalchemy import (
    Column,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    MetaData,
    Numeric,
    String,
    Table,
    Text,
    UniqueConstraint,
    create_engine,
    event,
    func,
    select,
)
from sqlalchemy.engine import Connection, Engine

from backend.pagination import PageRequest, PaginationMeta, pagination_meta, unpaginated_meta

logger = logging.getLogger(__name__)

database_url = os.getenv("DATABASE_URL", "sqlite:///./dash_finance.db")

metadata = MetaData()


def new_id() -> str:
    return str(uuid.uuid4())


def build_engine(url: str, **kwargs) -> Engine:
    connect_args = {}
    if url.startswith("sqlite"):
        connect_args = {"check_same_thread": False}
    built = create_engine(url, connect_args=connect_args, **kwargs)
    if url.startswith("sqlite"):
        event.listen(built, "connect", _enable_sqlite_foreign_keys)
    return built


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


engine = build_engine(database_url)

users = Table(
    "users",
    metadata,
    Column("id", String(36), primary_key=True, default=new_id),
    Column("email", String(255), unique=True, nullable=False),
    Column("name", String(255), nullable=False),
    Column("password_hash", String(255), nullable=False),
    Column("role", String(20), nullable=False, server_default="USER"),
    Column("status", String(20), nullable=False, server_default="ACTIVE"),
    Column("created_at", DateTime, nullable=False, server_default=func.now()),
    Column("updated_at", DateTime, nullable=False, server_default=func.now(), onupdate=func.now()),
)

budget_owners = Table(
    "budget_owners",
    metadata,
    Column("id", String(36), primary_key=True, default=new_id),
    Column("name", String(255), unique=True, nullable=False),
    Column("code", String(50), unique=True),
    Column("description", Text),
    Column("status", String(20), nullable=False, server_default="ACTIVE"),
    Column("created_at", DateTime, nullable=False, server_default=func.now()),
    Column("updated_at", DateTime, nullable=False, server_default=func.now(), onupdate=func.now()),
)

categories = Table(
    "categories",
    metadata,
    Column("id", String(36), primary_key=True, default=new_id),
    Column("name", String(255), unique=True, nullable=False),
    Column("description", Text),
    Column("status", String(20), nullable=False, server_default="ACTIVE"),
    Column("created_at", DateTime, nullable=False, server_default=func.now()),
    Column("updated_at", DateTime, nullable=False, server_default=func.now(), onupdate=func.now()),
)

budgets = Table(
    "budgets",
    metadata,
    Column("id", String(36), primary_key=True, default=new_id),
    Column(
        "budget_owner_id",
        String(36),
        ForeignKey("budget_owners.id", ondelete="CASCADE"),
        nullable=False,
    ),
    Column("year", Integer, nullable=False),
    Column("amount_planned", Numeric(15, 2), nullable=False),
    Column("amount_revised", Numeric(15, 2)),
    Column("created_by", String(36), ForeignKey("users.id"), nullable=False),
    Column("created_at", DateTime, nullable=False, server_default=func.now()),
    Column("updated_at", DateTime, nullable=False, server_default=func.now(), onupdate=func.now()),
    UniqueConstraint("budget_owner_id", "year", name="uq_budgets_owner_year"),
    Index("ix_budgets_budget_owner_id", "budget_owner_id"),
)

transactions = Table(
    "transactions",
    metadata,
    Column("id", String(36), primary_key=True, default=new_id),
    Column("budget_owner_id", String(36), ForeignKey("budget_owners.id"), nullable=False),
    Column("category_id", String(36), ForeignKey("categories.id"), nullable=False),
    Column("date", Date, nullable=False),
    Column("amount", Numeric(15, 2), nullable=False),
    Column("description", String(500), nullable=False),
    Column("receipt_url", String(1000)),
    Column("created_by", String(36), ForeignKey("users.id"), nullable=False),
    Column("created_at", DateTime, nullable=False, server_default=func.now()),
    Column("updated_at", DateTime, nullable=False, server_default=func.now(), onupdate=func.now()),
    Index("ix_transactions_budget_owner_id", "budget_owner_id"),
    Index("ix_transactions_category_id", "category_id"),
    Index("ix_transactions_date", "date"),
)

user_access = Table(
    "user_access",
    metadata,
    Column("id", String(36), primary_key=True, default=new_id),
    Column("user_id", String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
    Column(
        "budget_owner_id",
        String(36),
        ForeignKey("budget_owners.id", ondelete="CASCADE"),
        nullable=False,
    ),
    Column("created_at", DateTime, nullable=False, server_default=func.now()),
    UniqueConstraint("user_id", "budget_owner_id", name="uq_user_access_user_owner"),
)


def init_db(bind: Engine | None = None) -> None:
    target = bind or engine
    metadata.create_all(target)
    logger.info("Database schema ready at %s", target.url.render_as_string(hide_password=True))


def get_connection() -> Iterator[Connection]:
    with engine.begin() as conn:
        yield conn


def fetch_page(conn: Connection, query, page: PageRequest) -> tuple[list, PaginationMeta]:
    if not page.paginate:
        rows = conn.execute(query).mappings().all()
        return rows, unpaginated_meta(len(rows))
    total = conn.execute(
        select(func.count()).select_from(query.order_by(None).subquery())
    ).scalar_one()
    rows = conn.execute(query.limit(page.limit).offset(page.offset)).mappings().all()
    return rows, pagination_meta(page.page, page.limit, total)


def exists(conn: Connection, query) -> bool:
    return conn.execute(query.limit(1)).first() is not None
