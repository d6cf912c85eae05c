import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import Depends, FastAPI, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pymongo.errors import PyMongoError

import config
import database
from accounts import AccountRegistry, get_accounts
from blogs import ContentStore, get_blogs
from database import serialize
from donation_requests import RequestLifecycle, get_requests
from errors import AppError, InvalidInput
from identity import Identity, current_identity, optional_identity
from ledger import Ledger, get_ledger
from payments import PaymentGateway, get_gateway
from policy import authorize, is_moderator, require
from schemas import (
    AdminUserUpdate,
    BlogCreate,
    BlogUpdate,
    DonationRequestCreate,
    DonationRequestUpdate,
    DonorClaim,
    PaymentIn,
    PaymentIntentIn,
    UserCreate,
    UserProfileUpdate,
)

logging.basicConfig(level=config.LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    app.state.db = database.connect()
    if app.state.db is not None:
        try:
            database.ensure_indexes(app.state.db)
        except PyMongoError as e:
            logger.error("Could not create indexes: %s", e)
    yield
    if app.state.db is not None:
        app.state.db.client.close()


app = FastAPI(title="BloodGrid API", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Error mapping

@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError):
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(PyMongoError)
async def store_error_handler(request: Request, exc: PyMongoError):
    logger.exception("Store error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"message": "Database error occurred"})


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    fields = [".".join(str(p) for p in err["loc"][1:]) for err in exc.errors()]
    return JSONResponse(status_code=400, content={"message": "Missing or invalid fields", "errors": fields})


def serialize_page(page: dict) -> dict:
    return {**page, "items": [serialize(x) for x in page["items"]]}


@app.get("/")
def root():
    return {"message": "BloodGrid server is cooking..."}


@app.get("/test")
def test_database(request: Request):
    response = {
        "backend": "✅ Running",
        "database": "❌ Not Available",
        "database_url": "✅ Set" if config.DATABASE_URL else "❌ Not Set",
        "database_name": "❌ Not Set",
        "connection_status": "Not Connected",
        "collections": [],
    }
    db = getattr(request.app.state, "db", None)
    try:
        if db is not None:
            response["database"] = "✅ Available"
            response["database_name"] = db.name
            response["collections"] = db.list_collection_names()
            response["connection_status"] = "Connected"
    except PyMongoError as e:
        response["database"] = f"❌ Error: {str(e)[:80]}"
    return response


# Users

@app.post("/add-user", status_code=201)
def add_user(
    payload: UserCreate,
    identity: Identity = Depends(current_identity),
    accounts: AccountRegistry = Depends(get_accounts),
):
    authorize(accounts, identity, "user:register", owner_email=payload.email)
    new_id = accounts.create(payload.document())
    return {"insertedId": new_id, "message": "User has been added successfully."}


@app.get("/user")
def get_user(
    email: str,
    identity: Identity = Depends(current_identity),
    accounts: AccountRegistry = Depends(get_accounts),
):
    authorize(accounts, identity, "user:read", owner_email=email)
    return serialize(accounts.find_by_email(email))


@app.get("/user-role")
def get_user_role(
    email: str,
    identity: Identity = Depends(current_identity),
    accounts: AccountRegistry = Depends(get_accounts),
):
    authorize(accounts, identity, "user:read", owner_email=email)
    return {"role": accounts.role_of(email)}


@app.get("/donors")
def search_donors(
    bloodGroup: Optional[str] = None,
    district: Optional[str] = None,
    upazila: Optional[str] = None,
    accounts: AccountRegistry = Depends(get_accounts),
):
    return [serialize(x) for x in accounts.search_donors(bloodGroup, district, upazila)]


@app.put("/user/update/{email}")
def update_user(
    email: str,
    payload: UserProfileUpdate,
    identity: Identity = Depends(current_identity),
    accounts: AccountRegistry = Depends(get_accounts),
):
    authorize(accounts, identity, "user:update", owner_email=email)
    modified = accounts.update_profile(email, payload.document(partial=True))
    message = "Profile updated successfully" if modified else "No changes made"
    return {"modified": modified, "message": message}


@app.patch("/users/{email}/last-login")
def update_last_login(
    email: str,
    identity: Identity = Depends(current_identity),
    accounts: AccountRegistry = Depends(get_accounts),
):
    authorize(accounts, identity, "user:last-login", owner_email=email)
    return {"modified": accounts.touch_last_login(email), "message": "Last login updated"}


# Donation requests

@app.post("/donation-requests", status_code=201)
def create_donation_request(
    payload: DonationRequestCreate,
    identity: Identity = Depends(current_identity),
    accounts: AccountRegistry = Depends(get_accounts),
    requests: RequestLifecycle = Depends(get_requests),
):
    authorize(accounts, identity, "request:create")
    new_id = requests.create(payload.document(), identity.email)
    return {"insertedId": new_id, "message": "Donation request has been created."}


@app.get("/donation-requests")
def list_donation_requests(status: Optional[str] = None, requests: RequestLifecycle = Depends(get_requests)):
    return [serialize(x) for x in requests.list_by_status(status)]


@app.get("/donation-requests/{request_id}")
def get_donation_request(
    request_id: str,
    identity: Identity = Depends(current_identity),
    accounts: AccountRegistry = Depends(get_accounts),
    requests: RequestLifecycle = Depends(get_requests),
):
    authorize(accounts, identity, "request:read")
    return serialize(requests.get(request_id))


@app.get("/my-donation-requests/user")
def my_donation_requests(
    email: str,
    status: Optional[str] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(5, ge=1, le=100),
    identity: Identity = Depends(current_identity),
    accounts: AccountRegistry = Depends(get_accounts),
    requests: RequestLifecycle = Depends(get_requests),
):
    authorize(accounts, identity, "request:list-own", owner_email=email)
    return serialize_page(requests.list_by_requester(email, status, page, limit))


@app.patch("/donation-requests/{request_id}/donate")
def donate(
    request_id: str,
    payload: DonorClaim,
    identity: Identity = Depends(current_identity),
    accounts: AccountRegistry = Depends(get_accounts),
    requests: RequestLifecycle = Depends(get_requests),
):
    authorize(accounts, identity, "request:claim", owner_email=payload.donor_email)
    requests.claim(request_id, payload.donor_name, payload.donor_email)
    return {"message": "Donation confirmed. Status set to inprogress."}


@app.patch("/donation-requests/{request_id}")
def update_donation_request(
    request_id: str,
    payload: DonationRequestUpdate,
    identity: Identity = Depends(current_identity),
    accounts: AccountRegistry = Depends(get_accounts),
    requests: RequestLifecycle = Depends(get_requests),
):
    existing = requests.get(request_id)
    grant = authorize(accounts, identity, "request:update", owner_email=existing.get("requesterEmail"))
    modified = requests.update(request_id, payload.document(partial=True), force=grant.via == "role")
    return {"modified": modified, "message": "Donation request updated." if modified else "No changes made"}


@app.delete("/donation-requests/{request_id}", dependencies=[Depends(require("request:delete"))])
def delete_donation_request(
    request_id: str,
    requests: RequestLifecycle = Depends(get_requests),
):
    requests.delete(request_id)
    return {"message": "Donation request deleted."}


@app.get("/request-status-count")
def request_status_count(
    email: str,
    identity: Identity = Depends(current_identity),
    accounts: AccountRegistry = Depends(get_accounts),
    requests: RequestLifecycle = Depends(get_requests),
):
    authorize(accounts, identity, "request:stats-own", owner_email=email)
    return requests.status_counts(email)


# Admin

@app.get("/admin/dashboard-stats", dependencies=[Depends(require("admin:stats"))])
def dashboard_stats(
    accounts: AccountRegistry = Depends(get_accounts),
    requests: RequestLifecycle = Depends(get_requests),
    ledger: Ledger = Depends(get_ledger),
):
    return {
        "totalDonors": accounts.count_donors(),
        "totalFunding": ledger.total_funds(),
        "totalRequests": requests.count(),
    }


@app.get("/admin/users", dependencies=[Depends(require("admin:users"))])
def admin_users(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    status: Optional[str] = None,
    accounts: AccountRegistry = Depends(get_accounts),
):
    return serialize_page(accounts.list_paginated(page, limit, status))


@app.get("/admin/donation-requests", dependencies=[Depends(require("admin:requests"))])
def admin_donation_requests(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    status: Optional[str] = None,
    requests: RequestLifecycle = Depends(get_requests),
):
    return serialize_page(requests.list_paginated(page, limit, status))


@app.patch("/admin/users/{user_id}", dependencies=[Depends(require("admin:update-user"))])
def admin_update_user(
    user_id: str,
    payload: AdminUserUpdate,
    accounts: AccountRegistry = Depends(get_accounts),
):
    modified = accounts.admin_update(user_id, payload.document(partial=True))
    return {"modified": modified, "message": "User updated." if modified else "No changes made"}


# Blogs

@app.post("/blogs", status_code=201)
def create_blog(
    payload: BlogCreate,
    identity: Identity = Depends(current_identity),
    accounts: AccountRegistry = Depends(get_accounts),
    blogs: ContentStore = Depends(get_blogs),
):
    authorize(accounts, identity, "blog:create")
    new_id = blogs.create(payload.document(), identity.email)
    return {"insertedId": new_id, "message": "Blog has been added successfully."}


@app.get("/blogs")
def list_blogs(
    _role: Optional[str] = Query(None, alias="role", include_in_schema=False),
    status: Optional[str] = None,
    identity: Optional[Identity] = Depends(optional_identity),
    accounts: AccountRegistry = Depends(get_accounts),
    blogs: ContentStore = Depends(get_blogs),
):
    privileged = is_moderator(accounts, identity)
    return [serialize(x) for x in blogs.list_visible(privileged, status)]


@app.get("/blogs/stats", dependencies=[Depends(require("blog:stats"))])
def blog_stats(blogs: ContentStore = Depends(get_blogs)):
    return blogs.stats()


@app.get("/blogs/{blog_id}")
def get_blog(
    blog_id: str,
    identity: Optional[Identity] = Depends(optional_identity),
    accounts: AccountRegistry = Depends(get_accounts),
    blogs: ContentStore = Depends(get_blogs),
):
    return serialize(blogs.get(blog_id, privileged=is_moderator(accounts, identity)))


@app.patch("/blogs/{blog_id}")
def update_blog(
    blog_id: str,
    payload: BlogUpdate,
    identity: Identity = Depends(current_identity),
    accounts: AccountRegistry = Depends(get_accounts),
    blogs: ContentStore = Depends(get_blogs),
):
    patch = payload.document(partial=True)
    authorize(accounts, identity, "blog:publish" if "status" in patch else "blog:update")
    modified = blogs.set_fields(blog_id, patch)
    return {"modified": modified, "message": "Blog updated." if modified else "No changes made"}


@app.delete("/blogs/{blog_id}", dependencies=[Depends(require("blog:delete"))])
def delete_blog(
    blog_id: str,
    blogs: ContentStore = Depends(get_blogs),
):
    blogs.delete(blog_id)
    return {"message": "Blog deleted."}


# Payments

@app.post("/api/create-payment-intent")
def create_payment_intent(
    payload: PaymentIntentIn,
    identity: Identity = Depends(current_identity),
    accounts: AccountRegistry = Depends(get_accounts),
    gateway: PaymentGateway = Depends(get_gateway),
):
    authorize(accounts, identity, "payment:intent")
    return {"clientSecret": gateway.create_intent(payload.amount)}


@app.post("/api/save-payment", status_code=201)
def save_payment(
    payload: PaymentIn,
    identity: Identity = Depends(current_identity),
    accounts: AccountRegistry = Depends(get_accounts),
    ledger: Ledger = Depends(get_ledger),
):
    payment = payload.document(partial=True)
    if not payment.get("email"):
        raise InvalidInput("Missing required field(s): email")
    authorize(accounts, identity, "payment:save", owner_email=payment["email"])
    new_id = ledger.record_payment(payment)
    return {"insertedId": new_id, "message": "Payment saved."}


@app.get("/fundraiser-payments", dependencies=[Depends(require("payment:list"))])
def fundraiser_payments(ledger: Ledger = Depends(get_ledger)):
    return [serialize(x) for x in ledger.list()]


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=config.PORT)
