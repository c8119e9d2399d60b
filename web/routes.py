"""
web/routes.py -- Jinja2 template routes for the Skillink web UI.

These routes serve server-rendered HTML. They share app.state.backend with
the API routes but return pages and redirects instead of JSON.

Every guarded page runs auth.guard.resolve_page() first and either renders
or follows the Decision's redirect. The guard's cookie changes (auto-selected
role, discarded stale role, dropped session) are written onto whichever
response goes out via auth.cookies.apply_decision().

Routes:
  GET  /                                    -- landing page, or resolve to a dashboard
  GET  /login                               -- login form
  POST /login                               -- password login (rate limited)
  GET  /signup                              -- registration form
  POST /signup                              -- create account (rate limited)
  POST /logout                              -- revoke session, clear cookies
  GET  /select-role                         -- role cards (?switch=1 always shows them)
  POST /select-role                         -- choose / acquire a role
  GET  /onboarding/{role}                   -- professional / vendor onboarding form
  POST /onboarding/{role}                   -- submit onboarding
  GET  /dashboard/{role}                    -- role dashboard
  GET  /homeowner/browse-professionals      -- professional directory
  GET  /homeowner/browse-materials          -- product directory
  GET  /vendor/manage-products              -- vendor's own catalog (?edit=<id>)
  POST /vendor/products                     -- create product
  GET  /vendor/products/{product_id}/delete -- delete confirmation page
  POST /vendor/products/{product_id}/delete -- delete (requires confirm=yes)
  POST /vendor/products/{product_id}        -- update product

Error taxonomy:
  Wrong credentials        -> inline message on the login form, no redirect.
  Role not allowed here    -> silent redirect to the active role's dashboard.
  Backend read/write error -> toast, operation treated as failed, no retry.
  Unknown route            -> not_found.html with a role-aware home link
                              (registered by asgi.py via not_found_page()).
"""

import logging
from pathlib import Path
from typing import Iterable, Optional
from urllib.parse import quote

from fastapi import APIRouter, Form, HTTPException, Request
from fastapi.responses import HTMLResponse, RedirectResponse
from fastapi.templating import Jinja2Templates
from starlette.concurrency import run_in_threadpool

from auth.cookies import (
    apply_decision,
    clear_session_cookies,
    read_active_role,
    read_token,
    read_user_id,
    set_active_role,
    set_session_cookies,
)
from auth.dependencies import get_backend, try_get_session
from auth.guard import (
    LOGIN_PATH,
    Decision,
    dashboard_path,
    home_path,
    onboarding_path,
    resolve_home,
    resolve_page,
    resolve_session,
)
from auth.limiter import limiter, login_limit
from backend.client import AuthError, BackendClient, BackendError
from core.config import get_settings
from core.models import (
    BUSINESS_TYPES,
    HOMEOWNER,
    ONBOARDING_ROLES,
    PRODUCT_CATEGORIES,
    PROFESSION_TYPES,
    PROFESSIONAL,
    ROLE_DESCRIPTIONS,
    ROLE_LABELS,
    ROLES,
    VENDOR,
)
from marketplace.catalog import (
    create_product,
    delete_product,
    filter_products,
    filter_professionals,
    get_vendor_product,
    list_all_products,
    list_professionals,
    list_vendor_products,
    product_categories,
    update_product,
    validate_product,
    vendor_names,
)
from marketplace.onboarding import (
    PROFESSIONAL_FIELDS,
    VENDOR_FIELDS,
    submit_professional,
    submit_vendor,
    validate_professional,
    validate_vendor,
)
from marketplace.roles import get_professional, get_vendor_data, has_completed_onboarding, save_user_role

logger = logging.getLogger("skillink.web")

router = APIRouter()

# ---------------------------------------------------------------------------
# Toasts
#
# One-shot messages stored in the signed session cookie (SessionMiddleware).
# A handler queues one before redirecting; the next rendered page pops them.
# ---------------------------------------------------------------------------


def toast(request: Request, message: str, level: str = "success") -> None:
    request.session.setdefault("toasts", []).append({"level": level, "message": message})


def pop_toasts(request: Request) -> list[dict]:
    return request.session.pop("toasts", [])


templates = Jinja2Templates(directory=str(Path(__file__).parent / "templates"))
templates.env.globals["pop_toasts"] = pop_toasts
templates.env.globals["ROLE_LABELS"] = ROLE_LABELS
templates.env.globals["ROLES"] = ROLES

# ---------------------------------------------------------------------------
# Guard helpers
# ---------------------------------------------------------------------------


def _safe_next(next_url: Optional[str]) -> str:
    """Validate a post-login redirect target. Only accept relative paths.

    Prevents open redirects such as /login?next=https://attacker.com or
    /login?next=//attacker.com. Only paths that start with "/" but not "//"
    are allowed.
    """
    if next_url and next_url.startswith("/") and not next_url.startswith("//"):
        return next_url
    return "/"


def _resolve(request: Request, allowed_roles: Iterable[str], require_onboarding: bool = True) -> Decision:
    return resolve_page(
        get_backend(request),
        read_token(request),
        read_active_role(request),
        read_user_id(request),
        allowed_roles,
        require_onboarding,
    )


def _identify(request: Request) -> Decision:
    return resolve_session(get_backend(request), read_token(request), read_active_role(request), read_user_id(request))


def _follow(request: Request, decision: Decision) -> RedirectResponse:
    """Turn a redirecting Decision into a response carrying its cookie changes."""
    target = decision.redirect_to
    if decision.failed:
        toast(request, "We could not verify your session. Please sign in again.", "danger")
    if target == LOGIN_PATH and request.method == "GET" and request.url.path != "/":
        here = request.url.path + (f"?{request.url.query}" if request.url.query else "")
        target = f"{LOGIN_PATH}?next={quote(here, safe='/')}"
    return apply_decision(RedirectResponse(target, status_code=302), decision)


def _page(request: Request, name: str, decision: Decision, status_code: int = 200, **context) -> HTMLResponse:
    """Render a guarded page with the session context every layout needs."""
    context.update(
        session=decision.session,
        active_role=decision.active_role,
        roles=decision.roles,
    )
    resp = templates.TemplateResponse(request, name, context, status_code=status_code)
    return apply_decision(resp, decision)


def _user_backend(request: Request, decision: Decision) -> BackendClient:
    return get_backend(request).as_user(decision.session.access_token)


def not_found_page(request: Request) -> HTMLResponse:
    """Render the 404 page with a role-aware "go home" link."""
    session = try_get_session(request)
    return templates.TemplateResponse(
        request,
        "not_found.html",
        {
            "path": request.url.path,
            "home_href": home_path(session, read_active_role(request)),
            "session": session,
            "active_role": read_active_role(request) if session else None,
        },
        status_code=404,
    )


# ---------------------------------------------------------------------------
# GET / -- landing page / resolver
# ---------------------------------------------------------------------------


@router.get("/", response_class=HTMLResponse)
def index(request: Request) -> HTMLResponse:
    decision = resolve_home(get_backend(request), read_token(request), read_active_role(request), read_user_id(request))
    if not decision.render:
        return _follow(request, decision)
    resp = templates.TemplateResponse(
        request,
        "index.html",
        {"role_descriptions": ROLE_DESCRIPTIONS, "session": None, "active_role": None},
    )
    return apply_decision(resp, decision)


# ---------------------------------------------------------------------------
# Login / signup / logout
# ---------------------------------------------------------------------------


@router.get("/login", response_class=HTMLResponse)
def login_form(request: Request) -> HTMLResponse:
    """Render the login page. Already-authenticated users go to /."""
    if try_get_session(request) is not None:
        return RedirectResponse("/", status_code=302)
    return templates.TemplateResponse(
        request,
        "login.html",
        {
            "next": _safe_next(request.query_params.get("next")),
            "registration_open": get_settings().self_registration_enabled,
        },
    )


@router.post("/login", response_class=HTMLResponse)
@limiter.limit(login_limit)  # inside the route decorator so FastAPI registers the limited wrapper
def login_post(
    request: Request,
    email: str = Form(default=""),
    password: str = Form(default=""),
    next: str = Form(default="/"),
) -> HTMLResponse:
    """Handle the login form. Wrong credentials re-render the form inline."""

    def _form(error_msg: str, status_code: int) -> HTMLResponse:
        return templates.TemplateResponse(
            request,
            "login.html",
            {
                "error_msg": error_msg,
                "email": email,
                "next": _safe_next(next),
                "registration_open": get_settings().self_registration_enabled,
            },
            status_code=status_code,
        )

    if not email.strip() or not password:
        return _form("Please enter both email and password.", 400)
    try:
        session = get_backend(request).sign_in(email, password)
    except AuthError:
        return _form("Invalid email or password.", 401)
    except BackendError as exc:
        logger.warning("Login failed: %s", exc)
        toast(request, "Could not reach the sign-in service. Please try again.", "danger")
        return _form("", 503)

    logger.info("User %s signed in", session.user_id)
    resp = RedirectResponse(_safe_next(next), status_code=303)
    set_session_cookies(resp, session)  # also clears any previous active role
    resp.headers["Cache-Control"] = "no-store"
    return resp


@router.get("/signup", response_class=HTMLResponse)
def signup_form(request: Request) -> HTMLResponse:
    if not get_settings().self_registration_enabled:
        raise HTTPException(status_code=404)
    return templates.TemplateResponse(request, "signup.html", {})


@router.post("/signup", response_class=HTMLResponse)
@limiter.limit(login_limit)  # inside the route decorator so FastAPI registers the limited wrapper
def signup_post(
    request: Request,
    email: str = Form(default=""),
    password: str = Form(default=""),
    confirm_password: str = Form(default=""),
) -> HTMLResponse:
    if not get_settings().self_registration_enabled:
        raise HTTPException(status_code=404)

    def _form(error_msg: str, status_code: int = 400) -> HTMLResponse:
        return templates.TemplateResponse(
            request, "signup.html", {"error_msg": error_msg, "email": email}, status_code=status_code
        )

    if not email.strip() or not password:
        return _form("Please enter both email and password.")
    if password != confirm_password:
        return _form("Passwords do not match.")
    try:
        session = get_backend(request).sign_up(email, password)
    except AuthError as exc:
        return _form(str(exc))
    except BackendError as exc:
        logger.warning("Sign-up failed: %s", exc)
        toast(request, "Could not create your account. Please try again.", "danger")
        return _form("", 503)

    if session is None:
        toast(request, "Check your email to confirm your account, then sign in.", "info")
        return RedirectResponse(LOGIN_PATH, status_code=303)
    resp = RedirectResponse("/select-role", status_code=303)
    set_session_cookies(resp, session)
    resp.headers["Cache-Control"] = "no-store"
    return resp


@router.post("/logout")
def logout(request: Request) -> RedirectResponse:
    """Revoke the session and clear every Skillink cookie, including the active role."""
    token = read_token(request)
    if token:
        try:
            get_backend(request).sign_out(token)
        except BackendError as exc:
            logger.warning("Sign-out failed, clearing cookies anyway: %s", exc)
    resp = RedirectResponse(LOGIN_PATH, status_code=303)
    clear_session_cookies(resp)
    return resp


# ---------------------------------------------------------------------------
# Role selection
# ---------------------------------------------------------------------------


@router.get("/select-role", response_class=HTMLResponse)
def select_role_form(request: Request, switch: bool = False) -> HTMLResponse:
    """Show the role cards. A single-role user is sent straight to their dashboard."""
    decision = _identify(request)
    if not decision.render:
        return _follow(request, decision)
    if not switch and len(decision.roles) == 1:
        role = decision.roles[0]
        decision.active_role = role
        decision.set_role = role
        decision.forget_role = False
        decision.redirect_to = dashboard_path(role)
        return _follow(request, decision)
    return _page(request, "select_role.html", decision, role_descriptions=ROLE_DESCRIPTIONS)


@router.post("/select-role")
def select_role_post(request: Request, role: str = Form(default="")) -> RedirectResponse:
    """Apply a role choice.

    Professional / vendor without completed onboarding -> onboarding form;
    the role is neither acquired nor made active until the form is submitted.
    Homeowner is acquired on the spot. Anything else becomes the active role.
    """
    decision = _identify(request)
    if not decision.render:
        return _follow(request, decision)
    if role not in ROLES:
        return apply_decision(RedirectResponse("/select-role?switch=1", status_code=303), decision)

    backend = _user_backend(request, decision)
    user_id = decision.session.user_id
    try:
        if role in ONBOARDING_ROLES and not has_completed_onboarding(backend, user_id, role, decision.roles):
            return apply_decision(RedirectResponse(onboarding_path(role), status_code=303), decision)
        if role not in decision.roles:
            save_user_role(backend, user_id, role)
    except BackendError as exc:
        logger.warning("Role selection failed for %s: %s", user_id, exc)
        toast(request, "Something went wrong. Please try again.", "danger")
        return apply_decision(RedirectResponse("/select-role?switch=1", status_code=303), decision)

    resp = apply_decision(RedirectResponse(dashboard_path(role), status_code=303), decision)
    set_active_role(resp, role, user_id)
    return resp


# ---------------------------------------------------------------------------
# Onboarding
# ---------------------------------------------------------------------------

_ONBOARDING = {
    PROFESSIONAL: (PROFESSIONAL_FIELDS, validate_professional, submit_professional, "onboarding_professional.html"),
    VENDOR: (VENDOR_FIELDS, validate_vendor, submit_vendor, "onboarding_vendor.html"),
}

_ONBOARDING_SUCCESS = {
    PROFESSIONAL: "Your professional profile has been created.",
    VENDOR: "Vendor profile created successfully!",
}


def _onboarding_page(
    request: Request,
    role: str,
    decision: Decision,
    form: Optional[dict] = None,
    errors: Optional[dict] = None,
) -> HTMLResponse:
    fields, _, _, template = _ONBOARDING[role]
    return _page(
        request,
        template,
        decision,
        form={f: (form or {}).get(f, "") for f in fields},
        errors=errors or {},
        profession_types=PROFESSION_TYPES,
        business_types=BUSINESS_TYPES,
    )


@router.get("/onboarding/{role}", response_class=HTMLResponse)
def onboarding_form(request: Request, role: str) -> HTMLResponse:
    if role not in _ONBOARDING:
        raise HTTPException(status_code=404)
    decision = _identify(request)
    if not decision.render:
        return _follow(request, decision)
    try:
        done = has_completed_onboarding(_user_backend(request, decision), decision.session.user_id, role, decision.roles)
    except BackendError as exc:
        logger.warning("Onboarding lookup failed: %s", exc)
        return _follow(request, Decision(redirect_to=LOGIN_PATH, sign_out=True, failed=True))
    if done:
        resp = apply_decision(RedirectResponse(dashboard_path(role), status_code=302), decision)
        set_active_role(resp, role, decision.session.user_id)
        return resp
    return _onboarding_page(request, role, decision)


@router.post("/onboarding/{role}", response_class=HTMLResponse)
async def onboarding_submit(request: Request, role: str) -> HTMLResponse:
    if role not in _ONBOARDING:
        raise HTTPException(status_code=404)
    fields = _ONBOARDING[role][0]
    raw = await request.form()
    form = {f: str(raw.get(f, "")) for f in fields}
    return await run_in_threadpool(_submit_onboarding, request, role, form)


def _submit_onboarding(request: Request, role: str, form: dict) -> HTMLResponse:
    _, validate, submit, _ = _ONBOARDING[role]
    decision = _identify(request)
    if not decision.render:
        return _follow(request, decision)

    payload, errors = validate(form)
    if errors:
        return _onboarding_page(request, role, decision, form, errors)

    user_id = decision.session.user_id
    try:
        submit(_user_backend(request, decision), user_id, payload)
    except BackendError as exc:
        logger.warning("%s onboarding failed for %s: %s", role, user_id, exc)
        toast(request, "Something went wrong. Please try again.", "danger")
        return _onboarding_page(request, role, decision, form)

    toast(request, _ONBOARDING_SUCCESS[role])
    resp = apply_decision(RedirectResponse(dashboard_path(role), status_code=303), decision)
    set_active_role(resp, role, user_id)
    return resp


# ---------------------------------------------------------------------------
# Dashboards
# ---------------------------------------------------------------------------


@router.get("/dashboard/{role}", response_class=HTMLResponse)
def dashboard(request: Request, role: str) -> HTMLResponse:
    if role not in ROLES:
        raise HTTPException(status_code=404)
    decision = _resolve(request, (role,))
    if not decision.render:
        return _follow(request, decision)

    backend = _user_backend(request, decision)
    user_id = decision.session.user_id
    context: dict = {}
    try:
        if role == PROFESSIONAL:
            context["professional"] = get_professional(backend, user_id)
        elif role == VENDOR:
            context["vendor"] = get_vendor_data(backend, user_id)
            context["product_count"] = len(list_vendor_products(backend, user_id))
    except BackendError as exc:
        logger.warning("Dashboard data for %s failed: %s", user_id, exc)
        toast(request, "Failed to load your dashboard data. Please try again.", "danger")
    return _page(request, f"dashboard_{role}.html", decision, **context)


# ---------------------------------------------------------------------------
# Homeowner browse
# ---------------------------------------------------------------------------


@router.get("/homeowner/browse-professionals", response_class=HTMLResponse)
def browse_professionals(request: Request, search: str = "", profession: str = "all") -> HTMLResponse:
    decision = _resolve(request, (HOMEOWNER,))
    if not decision.render:
        return _follow(request, decision)
    professionals = []
    try:
        professionals = list_professionals(_user_backend(request, decision))
    except BackendError as exc:
        logger.warning("Listing professionals failed: %s", exc)
        toast(request, "Failed to load professionals. Please try again.", "danger")
    return _page(
        request,
        "browse_professionals.html",
        decision,
        professionals=filter_professionals(professionals, search, profession),
        total=len(professionals),
        search=search,
        profession=profession,
        profession_types=PROFESSION_TYPES,
    )


@router.get("/homeowner/browse-materials", response_class=HTMLResponse)
def browse_materials(request: Request, search: str = "", category: str = "all") -> HTMLResponse:
    decision = _resolve(request, (HOMEOWNER,))
    if not decision.render:
        return _follow(request, decision)
    products, sellers = [], {}
    try:
        backend = _user_backend(request, decision)
        products = list_all_products(backend)
        sellers = vendor_names(backend)
    except BackendError as exc:
        logger.warning("Listing products failed: %s", exc)
        toast(request, "Failed to load materials. Please try again.", "danger")
    return _page(
        request,
        "browse_materials.html",
        decision,
        products=filter_products(products, search, category),
        total=len(products),
        sellers=sellers,
        search=search,
        category=category,
        categories=product_categories(products),
    )


# ---------------------------------------------------------------------------
# Vendor catalog
# ---------------------------------------------------------------------------

_MANAGE_PATH = "/vendor/manage-products"


def _manage_page(
    request: Request,
    decision: Decision,
    editing=None,
    form: Optional[dict] = None,
    errors: Optional[dict] = None,
    status_code: int = 200,
) -> HTMLResponse:
    products = []
    try:
        products = list_vendor_products(_user_backend(request, decision), decision.session.user_id)
    except BackendError as exc:
        logger.warning("Listing vendor products failed: %s", exc)
        toast(request, "Failed to fetch products. Please try again.", "danger")
    return _page(
        request,
        "manage_products.html",
        decision,
        status_code=status_code,
        products=products,
        editing=editing,
        form=form or {},
        errors=errors or {},
        categories=PRODUCT_CATEGORIES,
    )


@router.get(_MANAGE_PATH, response_class=HTMLResponse)
def manage_products(request: Request, edit: Optional[str] = None) -> HTMLResponse:
    decision = _resolve(request, (VENDOR,))
    if not decision.render:
        return _follow(request, decision)
    editing = None
    if edit:
        try:
            editing = get_vendor_product(_user_backend(request, decision), decision.session.user_id, edit)
        except BackendError as exc:
            logger.warning("Loading product %s failed: %s", edit, exc)
            toast(request, "Failed to load product. Please try again.", "danger")
        else:
            if editing is None:
                toast(request, "Product not found.", "warning")
    return _manage_page(request, decision, editing=editing)


@router.post("/vendor/products", response_class=HTMLResponse)
async def product_create(request: Request) -> HTMLResponse:
    form = {k: str(v) for k, v in (await request.form()).items()}
    return await run_in_threadpool(_create_product, request, form)


def _create_product(request: Request, form: dict) -> HTMLResponse:
    decision = _resolve(request, (VENDOR,))
    if not decision.render:
        return _follow(request, decision)
    values, errors = validate_product(form)
    if errors:
        return _manage_page(request, decision, form=form, errors=errors, status_code=400)
    try:
        create_product(_user_backend(request, decision), decision.session.user_id, values)
    except BackendError as exc:
        logger.warning("Product create failed: %s", exc)
        toast(request, "Failed to add product. Please try again.", "danger")
        return _manage_page(request, decision, form=form, status_code=503)
    toast(request, "Product added successfully!")
    return apply_decision(RedirectResponse(_MANAGE_PATH, status_code=303), decision)


@router.get("/vendor/products/{product_id}/delete", response_class=HTMLResponse)
def product_delete_confirm(request: Request, product_id: str) -> HTMLResponse:
    decision = _resolve(request, (VENDOR,))
    if not decision.render:
        return _follow(request, decision)
    try:
        product = get_vendor_product(_user_backend(request, decision), decision.session.user_id, product_id)
    except BackendError as exc:
        logger.warning("Loading product %s failed: %s", product_id, exc)
        toast(request, "Failed to load product. Please try again.", "danger")
        return apply_decision(RedirectResponse(_MANAGE_PATH, status_code=302), decision)
    if product is None:
        raise HTTPException(status_code=404)
    return _page(request, "product_delete.html", decision, product=product)


@router.post("/vendor/products/{product_id}/delete")
def product_delete(request: Request, product_id: str, confirm: str = Form(default="")) -> RedirectResponse:
    """Hard-delete after explicit confirmation. No soft delete, no undo."""
    decision = _resolve(request, (VENDOR,))
    if not decision.render:
        return _follow(request, decision)
    if confirm != "yes":
        return apply_decision(RedirectResponse(f"/vendor/products/{product_id}/delete", status_code=303), decision)
    try:
        deleted = delete_product(_user_backend(request, decision), decision.session.user_id, product_id)
    except BackendError as exc:
        logger.warning("Product delete failed: %s", exc)
        toast(request, "Failed to delete product. Please try again.", "danger")
    else:
        if deleted:
            toast(request, "Product deleted successfully!")
        else:
            toast(request, "Product not found.", "warning")
    return apply_decision(RedirectResponse(_MANAGE_PATH, status_code=303), decision)


@router.post("/vendor/products/{product_id}", response_class=HTMLResponse)
async def product_update(request: Request, product_id: str) -> HTMLResponse:
    form = {k: str(v) for k, v in (await request.form()).items()}
    return await run_in_threadpool(_update_product, request, product_id, form)


def _update_product(request: Request, product_id: str, form: dict) -> HTMLResponse:
    decision = _resolve(request, (VENDOR,))
    if not decision.render:
        return _follow(request, decision)
    values, errors = validate_product(form)
    backend = _user_backend(request, decision)
    if errors:
        try:
            editing = get_vendor_product(backend, decision.session.user_id, product_id)
        except BackendError as exc:
            logger.warning("Loading product %s failed: %s", product_id, exc)
            editing = None
        return _manage_page(request, decision, editing=editing, form=form, errors=errors, status_code=400)
    try:
        updated = update_product(backend, decision.session.user_id, product_id, values)
    except BackendError as exc:
        logger.warning("Product update failed: %s", exc)
        toast(request, "Failed to update product. Please try again.", "danger")
    else:
        if updated:
            toast(request, "Product updated successfully!")
        else:
            toast(request, "Product not found.", "warning")
    return apply_decision(RedirectResponse(_MANAGE_PATH, status_code=303), decision)
