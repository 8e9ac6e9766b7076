from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Dict, Optional

import structlog
from fastapi import Depends, FastAPI, HTTPException, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError
from starlette.exceptions import HTTPException as StarletteHTTPException

import database
from auth import HR_ROLE, require_hr, verify_token
from config import Settings, get_settings
from database import (
    AFFILIATIONS,
    ASSETS,
    ASSIGNED_ASSETS,
    PACKAGES,
    REQUESTS,
    USERS,
    create_document,
    get_db,
    get_documents,
    object_id,
)
from logs import RequestIdMiddleware, setup_logging
from payments import StripeGateway, create_checkout, get_payment_gateway, reconcile_payment
from schemas import Asset, AssetCreate, AssetRequestCreate, CheckoutCreate, RequestStatusUpdate, User, UserCreate
from workflow import return_asset, submit_request, update_request_status

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    client = database.connect(settings.mongo_uri)
    db = client[settings.db_name]
    client.admin.command("ping")
    logger.info("database_connected", database=settings.db_name)
    database.ensure_indexes(db)
    app.state.db = db
    try:
        yield
    finally:
        client.close()
        logger.info("database_closed")


def page_limit(limit: Optional[int] = Query(None, ge=1), settings: Settings = Depends(get_settings)) -> Optional[int]:
    if limit is None:
        return None
    return min(limit, settings.max_page_size)


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "message": message})


def register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(StarletteHTTPException)
    async def http_error(request: Request, exc: StarletteHTTPException):
        return _error(exc.status_code, str(exc.detail))

    @app.exception_handler(RequestValidationError)
    async def validation_error(request: Request, exc: RequestValidationError):
        first = exc.errors()[0] if exc.errors() else {}
        location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
        message = f"{location}: {first.get('msg', 'Invalid request')}" if location else first.get("msg", "Invalid request")
        return _error(400, message)

    @app.exception_handler(Exception)
    async def unhandled_error(request: Request, exc: Exception):
        logger.exception("unhandled_error", path=request.url.path, method=request.method)
        return _error(500, "Internal Server Error")


def register_routes(app: FastAPI) -> None:
    # ----------------------------
    # Health/Test Endpoints
    # ----------------------------
    @app.get("/")
    def root():
        return {"message": "Asset Management Backend Running"}

    @app.get("/test")
    def test_database(db: Database = Depends(get_db)):
        try:
            collections = db.list_collection_names()
            return {"backend": "ok", "database": "ok", "collections": collections}
        except Exception as e:
            logger.warning("database_check_failed", error=str(e))
            return {"backend": "ok", "database": "error"}

    # ----------------------------
    # Users
    # ----------------------------
    @app.post("/users", status_code=201)
    def register_user(payload: UserCreate, db: Database = Depends(get_db)):
        if db[USERS].find_one({"email": payload.email}):
            raise HTTPException(status_code=400, detail="User already exists")
        data = payload.model_dump(mode="json")
        user = User(**{k: v for k, v in data.items() if k in User.model_fields}, createdAt=datetime.now(timezone.utc)).model_dump()
        # profile fields are stored as given
        user.update({k: v for k, v in data.items() if k not in user and v is not None})
        try:
            created = create_document(db, USERS, user)
        except DuplicateKeyError:
            raise HTTPException(status_code=400, detail="User already exists")
        logger.info("user_registered", email=created["email"], role=created["role"])
        return created

    @app.get("/user-role/{email}/role")
    def user_role(email: str, db: Database = Depends(get_db)):
        user = db[USERS].find_one({"email": email}, {"role": 1})
        return {"role": user.get("role") if user else None}

    # ----------------------------
    # Packages & Payments
    # ----------------------------
    @app.get("/packages")
    def list_packages(db: Database = Depends(get_db), limit: Optional[int] = Depends(page_limit)):
        return get_documents(db, PACKAGES, sort=("employeeLimit", -1), limit=limit)

    @app.post("/create-checkout-session")
    def create_checkout_session(
        payload: CheckoutCreate,
        email: str = Depends(verify_token),
        gateway: StripeGateway = Depends(get_payment_gateway),
        settings: Settings = Depends(get_settings),
    ):
        return create_checkout(payload, gateway, settings)

    @app.patch("/package-payment-successful")
    def package_payment_successful(
        session_id: Optional[str] = None,
        email: str = Depends(verify_token),
        db: Database = Depends(get_db),
        gateway: StripeGateway = Depends(get_payment_gateway),
    ):
        return reconcile_payment(db, gateway, session_id)

    # ----------------------------
    # Assets
    # ----------------------------
    @app.post("/add-asset", status_code=201)
    def add_asset(payload: AssetCreate, user: Dict = Depends(require_hr), db: Database = Depends(get_db)):
        if db[ASSETS].find_one({"productName": payload.productName}):
            raise HTTPException(status_code=400, detail="product already exists")
        data = payload.model_dump(mode="json")
        data["hrEmail"] = data.get("hrEmail") or user.get("email")
        asset = Asset(**data, dataAdded=datetime.now(timezone.utc)).model_dump()
        return create_document(db, ASSETS, asset)

    @app.get("/asset-list")
    def asset_list(db: Database = Depends(get_db), limit: Optional[int] = Depends(page_limit)):
        return get_documents(db, ASSETS, sort=("dataAdded", -1), limit=limit)

    @app.get("/all-assets")
    def all_assets(user: Dict = Depends(require_hr), db: Database = Depends(get_db), limit: Optional[int] = Depends(page_limit)):
        return get_documents(db, ASSETS, sort=("dataAdded", -1), limit=limit)

    # ----------------------------
    # Requests
    # ----------------------------
    @app.post("/add-request", status_code=201)
    def add_request(payload: AssetRequestCreate, email: str = Depends(verify_token), db: Database = Depends(get_db)):
        return submit_request(db, payload)

    @app.get("/all-request/{email}")
    def requests_for_hr(
        email: str,
        user: Dict = Depends(require_hr),
        db: Database = Depends(get_db),
        limit: Optional[int] = Depends(page_limit),
    ):
        if user.get("email") != email:
            raise HTTPException(status_code=403, detail="Forbidden access")
        return get_documents(db, REQUESTS, {"hrEmail": email}, sort=("requestDate", -1), limit=limit)

    @app.get("/all-requests")
    def all_requests(user: Dict = Depends(require_hr), db: Database = Depends(get_db), limit: Optional[int] = Depends(page_limit)):
        return get_documents(db, REQUESTS, sort=("requestDate", -1), limit=limit)

    @app.patch("/update-request/{request_id}")
    def update_request(
        request_id: str,
        payload: RequestStatusUpdate,
        user: Dict = Depends(require_hr),
        db: Database = Depends(get_db),
    ):
        return update_request_status(db, request_id, payload)

    # ----------------------------
    # Assignments
    # ----------------------------
    @app.get("/assigned-asset/{employee_email}")
    def assigned_assets(
        employee_email: str,
        email: str = Depends(verify_token),
        db: Database = Depends(get_db),
        limit: Optional[int] = Depends(page_limit),
    ):
        query = {"employeeEmail": employee_email}
        if email != employee_email:
            # an HR account only sees the assignments it issued
            caller = db[USERS].find_one({"email": email}, {"role": 1})
            if not caller or caller.get("role") != HR_ROLE:
                raise HTTPException(status_code=403, detail="Forbidden access")
            query["hrEmail"] = email
        return get_documents(db, ASSIGNED_ASSETS, query, sort=("assignedDate", -1), limit=limit)

    @app.patch("/return-asset/{assignment_id}")
    def return_assigned_asset(assignment_id: str, user: Dict = Depends(require_hr), db: Database = Depends(get_db)):
        return return_asset(db, assignment_id)

    # ----------------------------
    # Team
    # ----------------------------
    @app.get("/my-team")
    def my_team(user: Dict = Depends(require_hr), db: Database = Depends(get_db), limit: Optional[int] = Depends(page_limit)):
        return get_documents(db, AFFILIATIONS, sort=("affiliationDate", -1), limit=limit)

    @app.get("/employee/{hr_email}")
    def employees_for_hr(
        hr_email: str,
        user: Dict = Depends(require_hr),
        db: Database = Depends(get_db),
        limit: Optional[int] = Depends(page_limit),
    ):
        if user.get("email") != hr_email:
            raise HTTPException(status_code=403, detail="Forbidden access")
        return get_documents(db, AFFILIATIONS, {"hrEmail": hr_email}, sort=("affiliationDate", -1), limit=limit)

    @app.delete("/remove-employee/{affiliation_id}")
    def remove_employee(affiliation_id: str, user: Dict = Depends(require_hr), db: Database = Depends(get_db)):
        result = db[AFFILIATIONS].delete_one({"_id": object_id(affiliation_id)})
        if result.deleted_count == 0:
            raise HTTPException(status_code=404, detail="Employee not found")
        logger.info("employee_removed", affiliation_id=affiliation_id, hr_email=user.get("email"))
        return {"success": True, "deletedCount": result.deleted_count}


def create_app() -> FastAPI:
    settings = get_settings()
    setup_logging(settings.log_level)
    app = FastAPI(title=settings.app_name, lifespan=lifespan)

    app.add_middleware(RequestIdMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PATCH", "DELETE"],
        allow_headers=["*"],
    )

    register_error_handlers(app)
    register_routes(app)
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=get_settings().port)
