import logging
import os
import uuid
from dataclasses import asdict
from datetime import date, datetime, timezone

from fastapi import Cookie, Depends, FastAPI, Header, Query, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.engine import Connection

from backend import auth, budget_owners, budgets, categories, transactions, users
from backend.access import Principal
from backend.db import engine, get_connection, init_db
from backend.errors import INTERNAL_ERROR, VALIDATION_ERROR, DomainError, ValidationError
from backend.pagination import DEFAULT_LIMIT, DEFAULT_PAGE, PageRequest, PaginationMeta
from backend.schemas import (
    BudgetCreatePayload,
    BudgetOwnerCreatePayload,
    BudgetOwnerResponse,
    BudgetOwnerUpdatePayload,
    BudgetResponse,
    BudgetSummaryResponse,
    BudgetUpdatePayload,
    CategoryCreatePayload,
    CategoryResponse,
    CategoryUpdatePayload,
    Envelope,
    LoginPayload,
    LoginResponse,
    MessageResponse,
    Page,
    PaginationResponse,
    ResponseMeta,
    TransactionCreatePayload,
    TransactionResponse,
    TransactionUpdatePayload,
    UserAccessPayload,
    UserAccessResponse,
    UserCreatePayload,
    UserResponse,
    UserUpdatePayload,
    validate_budget_year,
)
from backend.security import COOKIE_NAME, TOKEN_MAX_AGE_SECONDS, extract_bearer
from backend.seed import seed_defaults

APP_NAME = "Dash Finance API"
APP_VERSION = "1.0.0"

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title=APP_NAME, version=APP_VERSION)

frontend_origin = os.getenv("FRONTEND_ORIGIN", "http://localhost:3000")
app.add_middleware(
    CORSMiddleware,
    allow_origins=[frontend_origin],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

cookie_secure = os.getenv("COOKIE_SECURE", "false").lower() in {"1", "true", "yes"}
seed_on_startup = os.getenv("SEED_DEFAULTS", "false").lower() in {"1", "true", "yes"}


@app.on_event("startup")
def startup() -> None:
    init_db()
    if seed_on_startup:
        with engine.begin() as conn:
            seed_defaults(conn)


@app.middleware("http")
async def assign_request_id(request: Request, call_next):
    request_id = request.headers.get("x-request-id") or str(uuid.uuid4())
    request.state.request_id = request_id
    response = await call_next(request)
    response.headers["x-request-id"] = request_id
    return response


def response_meta(request: Request) -> ResponseMeta:
    return ResponseMeta(
        timestamp=datetime.now(timezone.utc),
        request_id=getattr(request.state, "request_id", None),
    )


def error_response(request: Request, status_code: int, code: str, message: str, details=None):
    return JSONResponse(
        status_code=status_code,
        content={
            "success": False,
            "error": {"code": code, "message": message, "details": details},
            "meta": response_meta(request).model_dump(mode="json"),
        },
    )


@app.exception_handler(DomainError)
async def handle_domain_error(request: Request, exc: DomainError) -> JSONResponse:
    return error_response(request, exc.status_code, exc.code, exc.message, exc.details)


@app.exception_handler(RequestValidationError)
async def handle_request_validation(request: Request, exc: RequestValidationError) -> JSONResponse:
    details = [
        {"loc": list(error["loc"]), "message": error["msg"], "type": error["type"]}
        for error in exc.errors()
    ]
    return error_response(request, 400, VALIDATION_ERROR, "Invalid request.", details)


@app.exception_handler(Exception)
async def handle_unexpected(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(
        "Unhandled error on %s %s (request %s)",
        request.method,
        request.url.path,
        getattr(request.state, "request_id", None),
    )
    response = error_response(request, 500, INTERNAL_ERROR, "Internal server error.")
    # rendered outside the request-id middleware
    request_id = getattr(request.state, "request_id", None)
    if request_id:
        response.headers["x-request-id"] = request_id
    return response


def envelope(request: Request, data) -> Envelope:
    return Envelope(data=data, meta=response_meta(request))


def page_envelope(request: Request, items: list, meta: PaginationMeta) -> Envelope:
    return envelope(
        request,
        Page(items=items, pagination=PaginationResponse(**asdict(meta))),
    )


def page_request(page: int, limit: int, paginate: bool) -> PageRequest:
    try:
        return PageRequest(page=page, limit=limit, paginate=paginate)
    except ValueError as exc:
        raise ValidationError(str(exc)) from exc


def validated(validator, payload):
    try:
        return validator(payload)
    except ValueError as exc:
        raise ValidationError(str(exc)) from exc


def get_principal(
    conn: Connection = Depends(get_connection),
    token: str | None = Cookie(None, alias=COOKIE_NAME),
    authorization: str | None = Header(None),
) -> Principal:
    row = auth.authenticate(conn, extract_bearer(authorization) or token)
    return auth.principal_for(row)


@app.get("/health")
def health() -> dict:
    return {"status": "ok"}


@app.get("/")
def root() -> dict:
    return {"name": APP_NAME, "version": APP_VERSION}


# Auth


@app.post("/auth/login", response_model=Envelope[LoginResponse])
def login(
    payload: LoginPayload,
    request: Request,
    response: Response,
    conn: Connection = Depends(get_connection),
) -> Envelope:
    payload = validated(LoginPayload.validate_payload, payload)
    result = auth.login(conn, payload)
    response.set_cookie(
        COOKIE_NAME,
        result.token,
        max_age=TOKEN_MAX_AGE_SECONDS,
        httponly=True,
        samesite="lax",
        secure=cookie_secure,
    )
    return envelope(request, result)


@app.post("/auth/logout", response_model=Envelope[MessageResponse])
def logout(request: Request, response: Response) -> Envelope:
    response.delete_cookie(COOKIE_NAME, httponly=True, samesite="lax", secure=cookie_secure)
    return envelope(request, MessageResponse(message="Logged out."))


@app.get("/auth/me", response_model=Envelope[UserResponse])
def me(
    request: Request,
    conn: Connection = Depends(get_connection),
    principal: Principal = Depends(get_principal),
) -> Envelope:
    return envelope(request, users.to_response(users.find_user(conn, principal.user_id)))


# Users


@app.get("/users", response_model=Envelope[Page[UserResponse]])
def list_users(
    request: Request,
    search: str | None = Query(None),
    role: str | None = Query(None),
    status: str | None = Query(None),
    page: int = Query(DEFAULT_PAGE),
    limit: int = Query(DEFAULT_LIMIT),
    paginate: bool = Query(True),
    conn: Connection = Depends(get_connection),
    principal: Principal = Depends(get_principal),
) -> Envelope:
    items, meta = users.list_users(
        conn,
        principal,
        page_request(page, limit, paginate),
        search=search,
        role=role.upper() if role else None,
        status=status.upper() if status else None,
    )
    return page_envelope(request, items, meta)


@app.post("/users", response_model=Envelope[UserResponse], status_code=201)
def create_user(
    payload: UserCreatePayload,
    request: Request,
    conn: Connection = Depends(get_connection),
    principal: Principal = Depends(get_principal),
) -> Envelope:
    payload = validated(UserCreatePayload.validate_payload, payload)
    return envelope(request, users.create_user(conn, principal, payload))


@app.get("/users/{user_id}", response_model=Envelope[UserResponse])
def get_user(
    user_id: str,
    request: Request,
    conn: Connection = Depends(get_connection),
    principal: Principal = Depends(get_principal),
) -> Envelope:
    return envelope(request, users.get_user(conn, principal, user_id))


@app.patch("/users/{user_id}", response_model=Envelope[UserResponse])
def update_user(
    user_id: str,
    payload: UserUpdatePayload,
    request: Request,
    conn: Connection = Depends(get_connection),
    principal: Principal = Depends(get_principal),
) -> Envelope:
    payload = validated(UserUpdatePayload.validate_payload, payload)
    return envelope(request, users.update_user(conn, principal, user_id, payload))


@app.delete("/users/{user_id}", response_model=Envelope[MessageResponse])
def delete_user(
    user_id: str,
    request: Request,
    conn: Connection = Depends(get_connection),
    principal: Principal = Depends(get_principal),
) -> Envelope:
    users.delete_user(conn, principal, user_id)
    return envelope(request, MessageResponse(message="User deleted."))


@app.get("/users/{user_id}/access", response_model=Envelope[list[UserAccessResponse]])
def list_user_access(
    user_id: str,
    request: Request,
    conn: Connection = Depends(get_connection),
    principal: Principal = Depends(get_principal),
) -> Envelope:
    return envelope(request, users.list_user_access(conn, principal, user_id))


@app.post(
    "/users/{user_id}/access",
    response_model=Envelope[UserAccessResponse],
    status_code=201,
)
def grant_user_access(
    user_id: str,
    payload: UserAccessPayload,
    request: Request,
    conn: Connection = Depends(get_connection),
    principal: Principal = Depends(get_principal),
) -> Envelope:
    return envelope(request, users.grant_access(conn, principal, user_id, payload))


@app.delete(
    "/users/{user_id}/access/{budget_owner_id}",
    response_model=Envelope[MessageResponse],
)
def revoke_user_access(
    user_id: str,
    budget_owner_id: str,
    request: Request,
    conn: Connection = Depends(get_connection),
    principal: Principal = Depends(get_principal),
) -> Envelope:
    users.revoke_access(conn, principal, user_id, budget_owner_id)
    return envelope(request, MessageResponse(message="Access revoked."))


# Budget owners


@app.get("/budget-owners", response_model=Envelope[Page[BudgetOwnerResponse]])
def list_budget_owners(
    request: Request,
    status: str | None = Query(None),
    search: str | None = Query(None),
    page: int = Query(DEFAULT_PAGE),
    limit: int = Query(DEFAULT_LIMIT),
    paginate: bool = Query(True),
    conn: Connection = Depends(get_connection),
    principal: Principal = Depends(get_principal),
) -> Envelope:
    items, meta = budget_owners.list_budget_owners(
        conn,
        principal,
        page_request(page, limit, paginate),
        status=status.upper() if status else None,
        search=search,
    )
    return page_envelope(request, items, meta)


@app.get("/budget-owners/{budget_owner_id}", response_model=Envelope[BudgetOwnerResponse])
def get_budget_owner(
    budget_owner_id: str,
    request: Request,
    conn: Connection = Depends(get_connection),
    principal: Principal = Depends(get_principal),
) -> Envelope:
    row = budget_owners.get_visible_budget_owner(conn, principal, budget_owner_id)
    return envelope(request, budget_owners.to_response(row))


@app.post("/budget-owners", response_model=Envelope[BudgetOwnerResponse], status_code=201)
def create_budget_owner(
    payload: BudgetOwnerCreatePayload,
    request: Request,
    conn: Connection = Depends(get_connection),
    principal: Principal = Depends(get_principal),
) -> Envelope:
    payload = validated(BudgetOwnerCreatePayload.validate_payload, payload)
    return envelope(request, budget_owners.create_budget_owner(conn, principal, payload))


@app.put("/budget-owners/{budget_owner_id}", response_model=Envelope[BudgetOwnerResponse])
def update_budget_owner(
    budget_owner_id: str,
    payload: BudgetOwnerUpdatePayload,
    request: Request,
    conn: Connection = Depends(get_connection),
    principal: Principal = Depends(get_principal),
) -> Envelope:
    payload = validated(BudgetOwnerUpdatePayload.validate_payload, payload)
    return envelope(
        request,
        budget_owners.update_budget_owner(conn, principal, budget_owner_id, payload),
    )


@app.delete("/budget-owners/{budget_owner_id}", response_model=Envelope[MessageResponse])
def delete_budget_owner(
    budget_owner_id: str,
    request: Request,
    conn: Connection = Depends(get_connection),
    principal: Principal = Depends(get_principal),
) -> Envelope:
    budget_owners.delete_budget_owner(conn, principal, budget_owner_id)
    return envelope(request, MessageResponse(message="Budget owner deleted."))


# Categories


@app.get("/categories", response_model=Envelope[Page[CategoryResponse]])
def list_categories(
    request: Request,
    status: str | None = Query(None),
    search: str | None = Query(None),
    page: int = Query(DEFAULT_PAGE),
    limit: int = Query(DEFAULT_LIMIT),
    paginate: bool = Query(True),
    conn: Connection = Depends(get_connection),
    principal: Principal = Depends(get_principal),
) -> Envelope:
    items, meta = categories.list_categories(
        conn,
        page_request(page, limit, paginate),
        status=status.upper() if status else None,
        search=search,
    )
    return page_envelope(request, items, meta)


@app.get("/categories/{category_id}", response_model=Envelope[CategoryResponse])
def get_category(
    category_id: str,
    request: Request,
    conn: Connection = Depends(get_connection),
    principal: Principal = Depends(get_principal),
) -> Envelope:
    return envelope(request, categories.get_category(conn, category_id))


@app.post("/categories", response_model=Envelope[CategoryResponse], status_code=201)
def create_category(
    payload: CategoryCreatePayload,
    request: Request,
    conn: Connection = Depends(get_connection),
    principal: Principal = Depends(get_principal),
) -> Envelope:
    payload = validated(CategoryCreatePayload.validate_payload, payload)
    return envelope(request, categories.create_category(conn, principal, payload))


@app.put("/categories/{category_id}", response_model=Envelope[CategoryResponse])
def update_category(
    category_id: str,
    payload: CategoryUpdatePayload,
    request: Request,
    conn: Connection = Depends(get_connection),
    principal: Principal = Depends(get_principal),
) -> Envelope:
    payload = validated(CategoryUpdatePayload.validate_payload, payload)
    return envelope(request, categories.update_category(conn, principal, category_id, payload))


@app.delete("/categories/{category_id}", response_model=Envelope[MessageResponse])
def delete_category(
    category_id: str,
    request: Request,
    conn: Connection = Depends(get_connection),
    principal: Principal = Depends(get_principal),
) -> Envelope:
    categories.delete_category(conn, principal, category_id)
    return envelope(request, MessageResponse(message="Category deleted."))


# Budgets


@app.get("/budgets", response_model=Envelope[Page[BudgetResponse]])
def list_budgets(
    request: Request,
    budget_owner_id: str | None = Query(None),
    year: int | None = Query(None),
    page: int = Query(DEFAULT_PAGE),
    limit: int = Query(DEFAULT_LIMIT),
    paginate: bool = Query(True),
    conn: Connection = Depends(get_connection),
    principal: Principal = Depends(get_principal),
) -> Envelope:
    if year is not None:
        validated(validate_budget_year, year)
    items, meta = budgets.list_budgets(
        conn,
        principal,
        page_request(page, limit, paginate),
        budget_owner_id=budget_owner_id,
        year=year,
    )
    return page_envelope(request, items, meta)


@app.get("/budgets/summary", response_model=Envelope[BudgetSummaryResponse])
def budget_summary(
    request: Request,
    year: int | None = Query(None),
    conn: Connection = Depends(get_connection),
    principal: Principal = Depends(get_principal),
) -> Envelope:
    if year is not None:
        validated(validate_budget_year, year)
    return envelope(request, budgets.budget_summary(conn, principal, year))


@app.get("/budgets/{budget_id}", response_model=Envelope[BudgetResponse])
def get_budget(
    budget_id: str,
    request: Request,
    conn: Connection = Depends(get_connection),
    principal: Principal = Depends(get_principal),
) -> Envelope:
    return envelope(request, budgets.get_budget(conn, principal, budget_id))


@app.post("/budgets", response_model=Envelope[BudgetResponse], status_code=201)
def create_budget(
    payload: BudgetCreatePayload,
    request: Request,
    conn: Connection = Depends(get_connection),
    principal: Principal = Depends(get_principal),
) -> Envelope:
    payload = validated(BudgetCreatePayload.validate_payload, payload)
    return envelope(request, budgets.create_budget(conn, principal, payload))


@app.patch("/budgets/{budget_id}", response_model=Envelope[BudgetResponse])
def update_budget(
    budget_id: str,
    payload: BudgetUpdatePayload,
    request: Request,
    conn: Connection = Depends(get_connection),
    principal: Principal = Depends(get_principal),
) -> Envelope:
    payload = validated(BudgetUpdatePayload.validate_payload, payload)
    return envelope(request, budgets.update_budget(conn, principal, budget_id, payload))


@app.delete("/budgets/{budget_id}", response_model=Envelope[MessageResponse])
def delete_budget(
    budget_id: str,
    request: Request,
    conn: Connection = Depends(get_connection),
    principal: Principal = Depends(get_principal),
) -> Envelope:
    budgets.delete_budget(conn, principal, budget_id)
    return envelope(request, MessageResponse(message="Budget deleted."))


# Transactions


@app.get("/transactions", response_model=Envelope[Page[TransactionResponse]])
def list_transactions(
    request: Request,
    budget_owner_id: str | None = Query(None),
    category_id: str | None = Query(None),
    category_ids: str | None = Query(None),
    start_date: date | None = Query(None),
    end_date: date | None = Query(None),
    year: int | None = Query(None),
    page: int = Query(DEFAULT_PAGE),
    limit: int = Query(DEFAULT_LIMIT),
    paginate: bool = Query(True),
    conn: Connection = Depends(get_connection),
    principal: Principal = Depends(get_principal),
) -> Envelope:
    items, meta = transactions.list_transactions(
        conn,
        principal,
        page_request(page, limit, paginate),
        budget_owner_id=budget_owner_id,
        category_id=category_id,
        category_ids=transactions.parse_category_ids(category_ids),
        start_date=start_date,
        end_date=end_date,
        year=year,
    )
    return page_envelope(request, items, meta)


@app.get("/transactions/{transaction_id}", response_model=Envelope[TransactionResponse])
def get_transaction(
    transaction_id: str,
    request: Request,
    conn: Connection = Depends(get_connection),
    principal: Principal = Depends(get_principal),
) -> Envelope:
    return envelope(request, transactions.get_transaction(conn, principal, transaction_id))


@app.post("/transactions", response_model=Envelope[TransactionResponse], status_code=201)
def create_transaction(
    payload: TransactionCreatePayload,
    request: Request,
    conn: Connection = Depends(get_connection),
    principal: Principal = Depends(get_principal),
) -> Envelope:
    payload = validated(TransactionCreatePayload.validate_payload, payload)
    return envelope(request, transactions.create_transaction(conn, principal, payload))


@app.patch("/transactions/{transaction_id}", response_model=Envelope[TransactionResponse])
def update_transaction(
    transaction_id: str,
    payload: TransactionUpdatePayload,
    request: Request,
    conn: Connection = Depends(get_connection),
    principal: Principal = Depends(get_principal),
) -> Envelope:
    payload = validated(TransactionUpdatePayload.validate_payload, payload)
    return envelope(
        request,
        transactions.update_transaction(conn, principal, transaction_id, payload),
    )


@app.delete("/transactions/{transaction_id}", response_model=Envelope[MessageResponse])
def delete_transaction(
    transaction_id: str,
    request: Request,
    conn: Connection = Depends(get_connection),
    principal: Principal = Depends(get_principal),
) -> Envelope:
    transactions.delete_transaction(conn, principal, transaction_id)
    return envelope(request, MessageResponse(message="Transaction deleted."))
