import logging
from contextlib import asynccontextmanager
from typing import List, Optional

from fastapi import Depends, FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response

from auth import (
    AdminSessions,
    AuthError,
    get_current_admin,
    get_sessions,
    get_token,
    login_and_open,
    require_editor,
    require_super,
)
from config import Settings, get_settings, setup_logging
from database import GatewayError, MongoGateway
from export import export_filename, registrations_to_csv
from registration import (
    InvalidTransition,
    RegistrationError,
    RegistrationWorkflow,
    WorkflowState,
    change_status,
    dashboard_stats,
    filter_registrations,
    find_registration,
    next_statuses,
)
from schemas import (
    Admin,
    AdminCreate,
    AdminUpdate,
    Announcement,
    CamelModel,
    Category,
    CategoryCreate,
    CategoryUpdate,
    LoginRequest,
    LoginResponse,
    Panchayath,
    PanchayathCreate,
    PanchayathUpdate,
    Registration,
    RegistrationDraft,
    StatusUpdateRequest,
)
from seed import check_database_tables, setup_initial_data
from store import DomainStore

logger = logging.getLogger(__name__)

STATUS_MESSAGES = {
    "pending": "Your registration is currently under review. You will be notified once it's approved "
               "and payment processing is complete. Please keep your Customer ID safe for future reference.",
    "approved": "Congratulations! Your registration has been approved. You can now start using "
                "E-LIFE SOCIETY services.",
    "rejected": "Your registration was not approved. Please contact the admin for more information.",
}


# ============ Response models ==========
class AdminRegistration(Registration):
    next_statuses: List[str] = []


class StatusResponse(Registration):
    message: str = ""


class SubmitResponse(CamelModel):
    customer_id: str
    status: str
    message: str


def get_store(request: Request) -> DomainStore:
    return request.app.state.store


def create_app(store: Optional[DomainStore] = None, settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or get_settings()
    setup_logging(settings.log_level)
    if store is None:
        gateway = MongoGateway(settings.database_url, settings.database_name)
        store = DomainStore(gateway, debounce_seconds=settings.realtime_debounce_seconds)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if settings.seed_on_startup:
            setup_initial_data(store.gateway, settings)
        if not store.fetch_all():
            logger.warning("Initial load incomplete: %s", store.error)
        store.setup_realtime_subscriptions()
        yield
        store.close_realtime_subscriptions()

    app = FastAPI(title="E-LIFE Registration API", version="1.0.0", lifespan=lifespan)
    app.state.store = store
    app.state.sessions = AdminSessions()
    app.state.settings = settings

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(GatewayError)
    async def gateway_error_handler(request: Request, exc: GatewayError):
        return JSONResponse(status_code=502, content={"detail": str(exc) or "Remote data service failed"})

    register_routes(app)
    return app


def _active_category(store: DomainStore, category_id: str) -> Category:
    category = store.get_category(category_id)
    if category is None or not category.is_active:
        raise HTTPException(404, "Category not found")
    return category


def _workflow(store: DomainStore, draft: RegistrationDraft) -> RegistrationWorkflow:
    workflow = RegistrationWorkflow(store, _active_category(store, draft.category_id))
    workflow.load_panchayaths()
    workflow.edit(**draft.model_dump(exclude={"category_id", "status"}))
    return workflow


def register_routes(app: FastAPI) -> None:

    # ===================== Public Endpoints =====================
    @app.get("/")
    def root():
        return {"message": "E-LIFE Registration API running"}

    @app.get("/test")
    def test_database(store: DomainStore = Depends(get_store)):
        response = {
            "backend": "Running",
            "database": "Not Available",
            "collections": [],
            "storeError": store.error,
            "realtime": list(store.subscribed_tables),
        }
        try:
            response["collections"] = store.gateway.list_tables()
            response["database"] = "Available"
        except GatewayError as e:
            response["database"] = f"Error: {str(e)[:80]}"
        return response

    @app.get("/categories", response_model=List[Category])
    def list_categories(store: DomainStore = Depends(get_store)):
        return [c for c in store.categories if c.is_active]

    @app.get("/panchayaths", response_model=List[Panchayath])
    def list_panchayaths(store: DomainStore = Depends(get_store)):
        return [p for p in store.panchayaths if p.is_active]

    @app.get("/announcements", response_model=List[Announcement])
    def list_announcements(store: DomainStore = Depends(get_store)):
        return [a for a in store.announcements if a.is_active]

    # ===================== Registration =====================
    @app.post("/registrations/preview")
    def preview_registration(draft: RegistrationDraft, store: DomainStore = Depends(get_store)):
        workflow = _workflow(store, draft)
        try:
            return workflow.confirm()
        except RegistrationError as e:
            raise HTTPException(400, str(e))

    @app.post("/registrations", response_model=SubmitResponse, status_code=201)
    def submit_registration(draft: RegistrationDraft, store: DomainStore = Depends(get_store)):
        workflow = _workflow(store, draft)
        try:
            workflow.confirm()
            customer_id = workflow.submit()
        except RegistrationError as e:
            status_code = 502 if workflow.state == WorkflowState.CONFIRMING else 400
            raise HTTPException(status_code, str(e))
        return SubmitResponse(customer_id=customer_id, status="pending",
                              message=f"Your Customer ID is: {customer_id}")

    @app.get("/status", response_model=StatusResponse)
    def check_status(q: str = Query("", description="Customer ID or mobile number"),
                     store: DomainStore = Depends(get_store)):
        try:
            registration = find_registration(store, q)
        except RegistrationError as e:
            raise HTTPException(400, str(e))
        if registration is None:
            raise HTTPException(404, "No registration found with the provided details")
        return StatusResponse(**registration.model_dump(), message=STATUS_MESSAGES[registration.status])

    # ===================== Admin session =====================
    @app.post("/admin/login", response_model=LoginResponse)
    def admin_login(payload: LoginRequest, store: DomainStore = Depends(get_store),
                    sessions: AdminSessions = Depends(get_sessions)):
        try:
            token, admin = login_and_open(store.gateway, sessions, payload.username, payload.password)
        except AuthError as e:
            raise HTTPException(status_code=401, detail=str(e))
        return LoginResponse(token=token, admin=admin)

    @app.post("/admin/logout")
    def admin_logout(token: str = Depends(get_token), sessions: AdminSessions = Depends(get_sessions)):
        if not sessions.close(token):
            raise HTTPException(status_code=401, detail="Not authenticated")
        return {"loggedOut": True}

    @app.get("/admin/me", response_model=Admin)
    def admin_me(admin: Admin = Depends(get_current_admin)):
        return admin

    @app.get("/admin/dashboard")
    def admin_dashboard(admin: Admin = Depends(get_current_admin), store: DomainStore = Depends(get_store)):
        return {"loading": store.loading, "error": store.error, **dashboard_stats(store)}

    @app.post("/admin/refresh")
    def admin_refresh(admin: Admin = Depends(get_current_admin), store: DomainStore = Depends(get_store)):
        ok = store.fetch_all()
        return {"ok": ok, "error": store.error}

    @app.get("/admin/database")
    def admin_database(admin: Admin = Depends(require_super), store: DomainStore = Depends(get_store)):
        return check_database_tables(store.gateway)

    # ===================== Admin: Registrations =====================
    def _filtered(store: DomainStore, category, panchayath, status):
        return filter_registrations(store.registrations, category=category, panchayath=panchayath, status=status)

    @app.get("/admin/registrations", response_model=List[AdminRegistration])
    def admin_registrations(category: Optional[str] = None, panchayath: Optional[str] = None,
                            status: Optional[str] = None, admin: Admin = Depends(get_current_admin),
                            store: DomainStore = Depends(get_store)):
        return [
            AdminRegistration(**reg.model_dump(), next_statuses=list(next_statuses(reg.status)))
            for reg in _filtered(store, category, panchayath, status)
        ]

    @app.get("/admin/registrations/export")
    def export_registrations(category: Optional[str] = None, panchayath: Optional[str] = None,
                             status: Optional[str] = None, admin: Admin = Depends(get_current_admin),
                             store: DomainStore = Depends(get_store)):
        content = registrations_to_csv(_filtered(store, category, panchayath, status))
        return Response(
            content=content,
            media_type="text/csv; charset=utf-8",
            headers={"Content-Disposition": f'attachment; filename="{export_filename()}"'},
        )

    @app.put("/admin/registrations/{registration_id}/status", response_model=AdminRegistration)
    def update_registration_status(registration_id: str, payload: StatusUpdateRequest,
                                   admin: Admin = Depends(require_editor), store: DomainStore = Depends(get_store)):
        try:
            reg = change_status(store, registration_id, payload.status)
        except LookupError:
            raise HTTPException(404, "Registration not found")
        except InvalidTransition as e:
            raise HTTPException(409, str(e))
        logger.info("Registration %s %s by %s", reg.customer_id, payload.status, admin.username)
        return AdminRegistration(**reg.model_dump(), next_statuses=list(next_statuses(reg.status)))

    # ===================== Admin: Categories =====================
    @app.get("/admin/categories", response_model=List[Category])
    def admin_categories(admin: Admin = Depends(get_current_admin), store: DomainStore = Depends(get_store)):
        return list(store.categories)

    @app.post("/admin/categories", status_code=201)
    def create_category(payload: CategoryCreate, admin: Admin = Depends(require_super),
                        store: DomainStore = Depends(get_store)):
        return {"id": store.add_category(payload)}

    @app.put("/admin/categories/{category_id}")
    def update_category(category_id: str, payload: CategoryUpdate, admin: Admin = Depends(require_super),
                        store: DomainStore = Depends(get_store)):
        if not store.update_category(category_id, payload):
            raise HTTPException(404, "Category not found")
        return {"updated": True}

    @app.delete("/admin/categories/{category_id}")
    def remove_category(category_id: str, admin: Admin = Depends(require_super),
                        store: DomainStore = Depends(get_store)):
        if not store.delete_category(category_id):
            raise HTTPException(404, "Category not found")
        return {"deleted": True}

    # ===================== Admin: Panchayaths =====================
    @app.get("/admin/panchayaths", response_model=List[Panchayath])
    def admin_panchayaths(admin: Admin = Depends(get_current_admin), store: DomainStore = Depends(get_store)):
        return list(store.panchayaths)

    @app.post("/admin/panchayaths", status_code=201)
    def create_panchayath(payload: PanchayathCreate, admin: Admin = Depends(require_editor),
                          store: DomainStore = Depends(get_store)):
        return {"id": store.add_panchayath(payload)}

    @app.put("/admin/panchayaths/{panchayath_id}")
    def update_panchayath(panchayath_id: str, payload: PanchayathUpdate, admin: Admin = Depends(require_editor),
                          store: DomainStore = Depends(get_store)):
        if not store.update_panchayath(panchayath_id, payload):
            raise HTTPException(404, "Panchayath not found")
        return {"updated": True}

    @app.delete("/admin/panchayaths/{panchayath_id}")
    def remove_panchayath(panchayath_id: str, admin: Admin = Depends(require_editor),
                          store: DomainStore = Depends(get_store)):
        if not store.delete_panchayath(panchayath_id):
            raise HTTPException(404, "Panchayath not found")
        return {"deleted": True}

    # ===================== Admin: Accounts =====================
    @app.get("/admin/admins", response_model=List[Admin])
    def admin_accounts(admin: Admin = Depends(require_super), store: DomainStore = Depends(get_store)):
        store.fetch_admins()
        return list(store.admins)

    @app.post("/admin/admins", status_code=201)
    def create_admin(payload: AdminCreate, admin: Admin = Depends(require_super),
                     store: DomainStore = Depends(get_store)):
        existing = store.gateway.select("admins", {"username": payload.username}, limit=1)
        if existing:
            raise HTTPException(status_code=400, detail="Username already taken")
        return {"id": store.add_admin(payload)}

    @app.put("/admin/admins/{admin_id}")
    def update_admin(admin_id: str, payload: AdminUpdate, admin: Admin = Depends(require_super),
                     store: DomainStore = Depends(get_store), sessions: AdminSessions = Depends(get_sessions)):
        if admin_id == admin.id and payload.is_active is False:
            raise HTTPException(400, "You cannot deactivate your own account")
        if not store.update_admin(admin_id, payload):
            raise HTTPException(404, "Admin not found")
        # a new role or a deactivation takes effect at the next login
        if payload.model_fields_set & {"role", "is_active"}:
            sessions.close_admin(admin_id)
        return {"updated": True}


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=get_settings().port)
