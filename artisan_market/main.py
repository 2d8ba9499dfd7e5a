import logging
from pathlib import Path
from typing import List, Optional

from fastapi import Depends, FastAPI, Form, HTTPException, Query, Request, Response
from fastapi.responses import HTMLResponse, RedirectResponse
from fastapi.templating import Jinja2Templates
from sqlalchemy.orm import Session

from . import crud, orders, schemas
from .auth import IdentityProvider
from .config import get_settings
from .db import Base, SessionLocal, engine
from .errors import (
    AuthError,
    GeocodingError,
    InvalidInput,
    LocationNotFound,
    MarketError,
    NotFound,
    PermissionDenied,
)
from .geocoding import forward_geocode
from .guard import GuardPending, GuardRedirect, enforce
from .policy import Action, can
from .session import AuthContext, validate_password

logging.basicConfig(level=get_settings().log_level)
logger = logging.getLogger(__name__)

# Create tables if not existing. In production, use Alembic.
Base.metadata.create_all(bind=engine)

app = FastAPI(title="Artisan Market")

templates = Jinja2Templates(directory=str(Path(__file__).resolve().parent / "templates"))
templates.env.globals["can"] = can
templates.env.globals["Action"] = Action
templates.env.globals["available_transitions"] = orders.available_transitions


# Dependency to get DB session per request

def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def request_token(request: Request) -> Optional[str]:
    # prefer Authorization bearer token, fall back to the UI session cookie
    auth = request.headers.get("authorization")
    if auth and auth.lower().startswith("bearer "):
        return auth.split(None, 1)[1]
    return request.cookies.get(get_settings().session_cookie)


def get_auth(request: Request, db: Session = Depends(get_db)):
    ctx = AuthContext(IdentityProvider(db), db)
    try:
        yield ctx.start(request_token(request))
    finally:
        ctx.close()


def current_actor(auth: AuthContext = Depends(get_auth)):
    if not auth.is_authenticated:
        raise HTTPException(status_code=401, detail="not signed in")
    if auth.profile is None:
        raise HTTPException(status_code=403, detail="profile missing")
    return auth.profile


def guarded(required_role: Optional[str] = None):
    def dependency(auth: AuthContext = Depends(get_auth)) -> AuthContext:
        return enforce(auth, required_role)

    return dependency


def http_error(e: MarketError) -> HTTPException:
    if isinstance(e, InvalidInput):
        return HTTPException(status_code=400, detail=str(e))
    if isinstance(e, AuthError):
        return HTTPException(status_code=401, detail=str(e))
    if isinstance(e, PermissionDenied):
        return HTTPException(status_code=403, detail=str(e))
    if isinstance(e, (NotFound, LocationNotFound)):
        return HTTPException(status_code=404, detail=str(e))
    if isinstance(e, GeocodingError):
        return HTTPException(status_code=502, detail=str(e))
    logger.error("unhandled market error: %s", e)
    return HTTPException(status_code=500, detail=str(e))


def status_for(e: MarketError) -> int:
    return http_error(e).status_code


@app.exception_handler(GuardRedirect)
async def guard_redirect_handler(request: Request, exc: GuardRedirect):
    return RedirectResponse(url=exc.location, status_code=303)


@app.exception_handler(GuardPending)
async def guard_pending_handler(request: Request, exc: GuardPending):
    return templates.TemplateResponse(request, "loading.html", {"auth": None})


@app.get("/health")
async def health():
    return {"status": "ok"}


# -------------------- Auth API --------------------

@app.post("/auth/signup", response_model=schemas.TokenRead, status_code=201)
def api_signup(payload: schemas.SignupRequest, auth: AuthContext = Depends(get_auth)):
    fields = payload.model_dump(exclude={"email", "password", "confirm_password"})
    try:
        auth.sign_up(payload.email, payload.password, payload.confirm_password, **fields)
    except MarketError as e:
        raise http_error(e)
    return {"access_token": auth.token, "token_type": "bearer"}


@app.post("/auth/login", response_model=schemas.TokenRead)
def api_login(payload: schemas.LoginRequest, auth: AuthContext = Depends(get_auth)):
    try:
        identity = auth.sign_in(payload.email, payload.password)
    except MarketError as e:
        raise http_error(e)
    return {"access_token": identity.access_token, "token_type": "bearer"}


@app.post("/auth/logout")
def api_logout(auth: AuthContext = Depends(get_auth)):
    if not auth.is_authenticated:
        raise HTTPException(status_code=401, detail="not signed in")
    auth.sign_out()
    return {"signed_out": True}


@app.get("/auth/me", response_model=schemas.UserRead)
def api_me(actor=Depends(current_actor)):
    return actor


@app.put("/profile", response_model=schemas.UserRead)
def api_update_profile(payload: schemas.ProfileUpdate, actor=Depends(current_actor), db: Session = Depends(get_db)):
    try:
        return crud.update_profile(db, actor, payload)
    except MarketError as e:
        raise http_error(e)


# -------------------- Products API --------------------

@app.get("/products", response_model=List[schemas.ProductRead])
def api_list_products(q: str = Query("", max_length=100), db: Session = Depends(get_db)):
    return crud.list_products(db, q)


@app.get("/products/mine", response_model=List[schemas.ProductRead])
def api_my_products(actor=Depends(current_actor), db: Session = Depends(get_db)):
    try:
        return crud.list_my_products(db, actor)
    except MarketError as e:
        raise http_error(e)


@app.post("/products", response_model=schemas.ProductRead, status_code=201)
def api_create_product(payload: schemas.ProductWrite, actor=Depends(current_actor), db: Session = Depends(get_db)):
    try:
        return crud.create_product(db, actor, payload)
    except MarketError as e:
        raise http_error(e)


@app.put("/products/{product_id}", response_model=schemas.ProductRead)
def api_update_product(product_id: int, payload: schemas.ProductUpdate, actor=Depends(current_actor), db: Session = Depends(get_db)):
    try:
        return crud.update_product(db, actor, product_id, payload)
    except MarketError as e:
        raise http_error(e)


@app.delete("/products/{product_id}")
def api_delete_product(product_id: int, actor=Depends(current_actor), db: Session = Depends(get_db)):
    try:
        crud.delete_product(db, actor, product_id)
    except MarketError as e:
        raise http_error(e)
    return {"deleted": product_id}


# -------------------- Orders API --------------------

@app.get("/orders", response_model=List[schemas.OrderRead])
def api_list_orders(actor=Depends(current_actor), db: Session = Depends(get_db)):
    try:
        return orders.list_orders(db, actor)
    except MarketError as e:
        raise http_error(e)


@app.post("/orders", response_model=schemas.OrderRead, status_code=201)
def api_create_order(payload: schemas.OrderCreate, actor=Depends(current_actor), db: Session = Depends(get_db)):
    try:
        return orders.create_order(db, actor, payload.product_id)
    except MarketError as e:
        raise http_error(e)


@app.post("/orders/{order_id}/status", response_model=schemas.OrderRead)
def api_change_status(order_id: int, payload: schemas.StatusChange, actor=Depends(current_actor), db: Session = Depends(get_db)):
    try:
        return orders.transition_order(db, actor, order_id, payload.status)
    except MarketError as e:
        raise http_error(e)


# -------------------- Artisans / map API --------------------

@app.get("/artisans/nearby", response_model=schemas.NearbyRead)
def api_nearby(lat: Optional[float] = None, lon: Optional[float] = None, db: Session = Depends(get_db)):
    origin = crud.resolve_reference_point(lat, lon)
    return {"origin": origin, "artisans": crud.list_artisans_nearby(db, origin)}


@app.get("/artisans/{artisan_id}", response_model=schemas.ArtisanDetail)
def api_artisan(artisan_id: int, db: Session = Depends(get_db)):
    try:
        return crud.get_artisan(db, artisan_id)
    except MarketError as e:
        raise http_error(e)


@app.get("/geocode", response_model=schemas.GeocodeRead)
def api_geocode(q: str = Query(..., min_length=1, max_length=300)):
    try:
        lat, lon = forward_geocode(q)
    except MarketError as e:
        raise http_error(e)
    return {"query": q, "latitude": lat, "longitude": lon}


# -------------------- UI Views --------------------

def render(request: Request, name: str, auth: Optional[AuthContext], status_code: int = 200, **context):
    context.setdefault("error", None)
    context.setdefault("toast", None)
    context["auth"] = auth
    return templates.TemplateResponse(request, name, context, status_code=status_code)


def set_session_cookie(response: Response, token: str):
    response.set_cookie(get_settings().session_cookie, token, httponly=True, samesite="lax")


def parse_float(value: Optional[str], field: str) -> Optional[float]:
    if value is None or not value.strip():
        return None
    try:
        return float(value)
    except ValueError:
        raise InvalidInput(f"{field} must be a number")


def form_coordinates(location: str, latitude: Optional[str], longitude: Optional[str], locate: Optional[str]):
    """Coordinates from the form, or looked up from the location text when asked to."""
    lat = parse_float(latitude, "latitude")
    lon = parse_float(longitude, "longitude")
    if locate:
        lat, lon = forward_geocode(location)
    if (lat is None) != (lon is None):
        raise InvalidInput("latitude and longitude must be set together")
    return lat, lon


@app.get("/ui", response_class=HTMLResponse)
def ui_home(request: Request, auth: AuthContext = Depends(get_auth), db: Session = Depends(get_db)):
    latest = crud.list_products(db)[:6]
    return render(request, "index.html", auth, products=latest)


@app.get("/ui/login", response_class=HTMLResponse)
def ui_login_form(request: Request, auth: AuthContext = Depends(get_auth)):
    return render(request, "login.html", auth, email="")


@app.post("/ui/login")
def ui_login(request: Request, email: str = Form(...), password: str = Form(...), auth: AuthContext = Depends(get_auth)):
    try:
        identity = auth.sign_in(email, password)
    except MarketError as e:
        return render(request, "login.html", auth, status_code=status_for(e), error=str(e), email=email)
    response = RedirectResponse(url="/ui", status_code=303)
    set_session_cookie(response, identity.access_token)
    return response


@app.get("/ui/signup", response_class=HTMLResponse)
def ui_signup_form(request: Request, role: str = "customer", auth: AuthContext = Depends(get_auth)):
    if role not in ("customer", "artisan"):
        role = "customer"
    return render(request, "signup.html", auth, form={"role": role})


@app.post("/ui/signup")
def ui_signup(
    request: Request,
    email: str = Form(...),
    password: str = Form(...),
    confirm_password: str = Form(...),
    name: str = Form(...),
    role: str = Form("customer"),
    location: str = Form(""),
    latitude: Optional[str] = Form(None),
    longitude: Optional[str] = Form(None),
    description: Optional[str] = Form(None),
    locate: Optional[str] = Form(None),
    auth: AuthContext = Depends(get_auth),
):
    form = {"email": email, "name": name, "role": role, "location": location,
            "latitude": latitude, "longitude": longitude, "description": description}
    try:
        validate_password(password, confirm_password)
        lat, lon = form_coordinates(location, latitude, longitude, locate)
        auth.sign_up(
            email, password, confirm_password,
            name=name, role=role, location=location,
            latitude=lat, longitude=lon, description=description or None,
        )
    except MarketError as e:
        return render(request, "signup.html", auth, status_code=status_for(e), error=str(e), form=form)
    response = RedirectResponse(url="/ui", status_code=303)
    set_session_cookie(response, auth.token)
    return response


@app.post("/ui/logout")
def ui_logout(auth: AuthContext = Depends(get_auth)):
    if auth.is_authenticated:
        auth.sign_out()
    response = RedirectResponse(url="/ui", status_code=303)
    response.delete_cookie(get_settings().session_cookie)
    return response


@app.get("/ui/marketplace", response_class=HTMLResponse)
def ui_marketplace(request: Request, q: str = "", ordered: Optional[int] = None, auth: AuthContext = Depends(get_auth), db: Session = Depends(get_db)):
    toast = "Order placed successfully!" if ordered else None
    return render(request, "marketplace.html", auth, products=crud.list_products(db, q), q=q, toast=toast)


@app.post("/ui/marketplace/order")
def ui_place_order(request: Request, product_id: int = Form(...), auth: AuthContext = Depends(guarded("customer")), db: Session = Depends(get_db)):
    try:
        order = orders.create_order(db, auth.profile, product_id)
    except MarketError as e:
        return render(
            request, "marketplace.html", auth, status_code=status_for(e),
            products=crud.list_products(db), q="", error=f"Failed to place order: {e}",
        )
    return RedirectResponse(url=f"/ui/marketplace?ordered={order.id}", status_code=303)


@app.get("/ui/map", response_class=HTMLResponse)
def ui_map(request: Request, lat: Optional[float] = None, lon: Optional[float] = None, auth: AuthContext = Depends(get_auth), db: Session = Depends(get_db)):
    origin = crud.resolve_reference_point(lat, lon)
    artisans = crud.list_artisans_nearby(db, origin)
    return render(request, "map.html", auth, origin=origin, artisans=artisans)


@app.get("/ui/artisans/{artisan_id}", response_class=HTMLResponse)
def ui_artisan(request: Request, artisan_id: int, auth: AuthContext = Depends(get_auth), db: Session = Depends(get_db)):
    try:
        artisan = crud.get_artisan(db, artisan_id)
    except NotFound as e:
        return render(request, "index.html", auth, status_code=404, error=str(e), products=[])
    return render(request, "artisan.html", auth, artisan=artisan)


def _my_products_page(request, auth, db, status_code=200, error=None, editing=None):
    return render(
        request, "my_products.html", auth, status_code=status_code, error=error,
        products=crud.list_my_products(db, auth.profile), editing=editing,
    )


@app.get("/ui/my-products", response_class=HTMLResponse)
def ui_my_products(request: Request, edit: Optional[int] = None, auth: AuthContext = Depends(guarded("artisan")), db: Session = Depends(get_db)):
    editing = None
    if edit is not None:
        editing = next((p for p in crud.list_my_products(db, auth.profile) if p.id == edit), None)
    return _my_products_page(request, auth, db, editing=editing)


@app.post("/ui/my-products")
def ui_save_product(
    request: Request,
    name: str = Form(...),
    description: str = Form(""),
    price: str = Form(...),
    photo_url: str = Form(""),
    product_id: Optional[int] = Form(None),
    auth: AuthContext = Depends(guarded("artisan")),
    db: Session = Depends(get_db),
):
    try:
        if product_id:
            data = schemas.ProductUpdate(name=name, description=description, price=price, photo_url=photo_url)
            crud.update_product(db, auth.profile, product_id, data)
        else:
            data = schemas.ProductWrite(name=name, description=description, price=price, photo_url=photo_url or None)
            crud.create_product(db, auth.profile, data)
    except ValueError as e:
        # pydantic ValidationError and InvalidInput are both ValueErrors
        return _my_products_page(request, auth, db, status_code=400, error=f"Failed to save product: {e}")
    except MarketError as e:
        return _my_products_page(request, auth, db, status_code=status_for(e), error=f"Failed to save product: {e}")
    return RedirectResponse(url="/ui/my-products", status_code=303)


@app.post("/ui/my-products/{product_id}/delete")
def ui_delete_product(request: Request, product_id: int, auth: AuthContext = Depends(guarded("artisan")), db: Session = Depends(get_db)):
    try:
        crud.delete_product(db, auth.profile, product_id)
    except MarketError as e:
        return _my_products_page(request, auth, db, status_code=status_for(e), error=f"Failed to delete product: {e}")
    return RedirectResponse(url="/ui/my-products", status_code=303)


@app.get("/ui/orders", response_class=HTMLResponse)
def ui_orders(request: Request, auth: AuthContext = Depends(guarded()), db: Session = Depends(get_db)):
    return render(request, "orders.html", auth, orders=orders.list_orders(db, auth.profile))


@app.post("/ui/orders/{order_id}")
def ui_update_order(request: Request, order_id: int, status: str = Form(...), auth: AuthContext = Depends(guarded()), db: Session = Depends(get_db)):
    try:
        orders.transition_order(db, auth.profile, order_id, status)
    except MarketError as e:
        return render(
            request, "orders.html", auth, status_code=status_for(e),
            orders=orders.list_orders(db, auth.profile), error=f"Failed to update order status: {e}",
        )
    return RedirectResponse(url="/ui/orders", status_code=303)


@app.get("/ui/profile", response_class=HTMLResponse)
def ui_profile(request: Request, edit: bool = False, auth: AuthContext = Depends(guarded()), db: Session = Depends(get_db)):
    return render(request, "profile.html", auth, editing=edit)


@app.post("/ui/profile")
def ui_update_profile(
    request: Request,
    name: str = Form(...),
    location: str = Form(""),
    latitude: Optional[str] = Form(None),
    longitude: Optional[str] = Form(None),
    description: Optional[str] = Form(None),
    locate: Optional[str] = Form(None),
    auth: AuthContext = Depends(guarded()),
    db: Session = Depends(get_db),
):
    try:
        lat, lon = form_coordinates(location, latitude, longitude, locate)
        data = schemas.ProfileUpdate(name=name, location=location, latitude=lat, longitude=lon, description=description)
        crud.update_profile(db, auth.profile, data)
    except ValueError as e:
        return render(request, "profile.html", auth, status_code=400, editing=True, error=f"Failed to update profile: {e}")
    except MarketError as e:
        return render(request, "profile.html", auth, status_code=status_for(e), editing=True, error=f"Failed to update profile: {e}")
    auth.refresh_profile()
    return RedirectResponse(url="/ui/profile", status_code=303)
