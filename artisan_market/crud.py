import logging
from typing import List, Optional, Tuple

from sqlalchemy import func
from sqlalchemy.orm import Session, joinedload

from . import models, schemas
from .config import get_settings
from .errors import NotFound
from .geo import rank_by_distance
from .policy import Action, authorize
from .utils import round_amount

logger = logging.getLogger(__name__)


# -------------------- Products --------------------

def list_products(db: Session, q: str = "") -> List[models.Product]:
    products = (
        db.query(models.Product)
        .options(joinedload(models.Product.artisan))
        .order_by(models.Product.created_at.desc(), models.Product.id.desc())
        .all()
    )
    term = (q or "").strip().lower()
    if not term:
        return products
    return [
        p for p in products
        if term in (p.name or "").lower() or term in (p.description or "").lower()
    ]


def list_my_products(db: Session, actor) -> List[models.Product]:
    authorize(Action.LIST_OWN_PRODUCTS, None, actor)
    return (
        db.query(models.Product)
        .filter(models.Product.artisan_id == actor.id)
        .order_by(models.Product.created_at.desc(), models.Product.id.desc())
        .all()
    )


def _owned_product(db: Session, actor, product_id: int) -> models.Product:
    # owner-scoped lookup: another artisan's product does not resolve at all
    product = (
        db.query(models.Product)
        .filter(models.Product.id == product_id, models.Product.artisan_id == actor.id)
        .first()
    )
    if product is None:
        raise NotFound("product not found")
    return product


def create_product(db: Session, actor, data: schemas.ProductWrite) -> models.Product:
    authorize(Action.CREATE_PRODUCT, None, actor)
    product = models.Product(
        artisan_id=actor.id,
        name=data.name.strip(),
        description=data.description or "",
        price=round_amount(data.price),
        photo_url=data.photo_url or None,
    )
    db.add(product)
    db.commit()
    db.refresh(product)
    logger.info("artisan %s created product %s", actor.id, product.id)
    return product


def update_product(db: Session, actor, product_id: int, data: schemas.ProductUpdate) -> models.Product:
    authorize(Action.LIST_OWN_PRODUCTS, None, actor)
    product = _owned_product(db, actor, product_id)
    authorize(Action.UPDATE_PRODUCT, product, actor)
    if data.name is not None:
        product.name = data.name.strip()
    if data.description is not None:
        product.description = data.description
    if data.price is not None:
        product.price = round_amount(data.price)
    if data.photo_url is not None:
        product.photo_url = data.photo_url or None
    db.add(product)
    db.commit()
    db.refresh(product)
    logger.info("artisan %s updated product %s", actor.id, product.id)
    return product


def delete_product(db: Session, actor, product_id: int) -> None:
    authorize(Action.LIST_OWN_PRODUCTS, None, actor)
    product = _owned_product(db, actor, product_id)
    authorize(Action.DELETE_PRODUCT, product, actor)
    db.delete(product)
    db.commit()
    logger.info("artisan %s deleted product %s", actor.id, product_id)


# -------------------- Profiles --------------------

def create_profile(db: Session, user_id: int, data: schemas.SignupRequest) -> models.User:
    profile = models.User(
        id=user_id,
        name=data.name.strip(),
        role=data.role,
        location=data.location.strip(),
        latitude=data.latitude,
        longitude=data.longitude,
        description=data.description or None,
    )
    db.add(profile)
    db.commit()
    db.refresh(profile)
    return profile


def get_profile(db: Session, user_id: int) -> Optional[models.User]:
    return db.get(models.User, user_id)


def update_profile(db: Session, actor, data: schemas.ProfileUpdate) -> models.User:
    profile = db.get(models.User, actor.id)
    if profile is None:
        raise NotFound("profile not found")
    authorize(Action.UPDATE_PROFILE, profile, actor)
    if data.name is not None:
        profile.name = data.name.strip()
    if data.location is not None:
        profile.location = data.location.strip()
    if data.latitude is not None and data.longitude is not None:
        profile.latitude = data.latitude
        profile.longitude = data.longitude
    if data.description is not None:
        profile.description = data.description or None
    db.add(profile)
    db.commit()
    db.refresh(profile)
    return profile


def get_artisan(db: Session, artisan_id: int) -> models.User:
    artisan = (
        db.query(models.User)
        .options(joinedload(models.User.products))
        .filter(models.User.id == artisan_id, models.User.role == "artisan")
        .first()
    )
    if artisan is None:
        raise NotFound("artisan not found")
    return artisan


# -------------------- Map --------------------

def resolve_reference_point(latitude=None, longitude=None) -> Tuple[float, float]:
    """Device location when both coordinates are usable, else the configured default."""
    if latitude is not None and longitude is not None:
        try:
            lat, lon = float(latitude), float(longitude)
        except (TypeError, ValueError):
            lat = lon = None
        if lat is not None and -90 <= lat <= 90 and -180 <= lon <= 180:
            return lat, lon
    settings = get_settings()
    return settings.default_latitude, settings.default_longitude


def list_artisans_nearby(db: Session, origin: Tuple[float, float]) -> List[schemas.NearbyArtisan]:
    counts = dict(
        db.query(models.Product.artisan_id, func.count(models.Product.id))
        .group_by(models.Product.artisan_id)
        .all()
    )
    artisans = (
        db.query(models.User)
        .filter(
            models.User.role == "artisan",
            models.User.latitude.isnot(None),
            models.User.longitude.isnot(None),
        )
        .all()
    )
    return [
        schemas.NearbyArtisan(
            id=a.id,
            name=a.name,
            location=a.location,
            latitude=a.latitude,
            longitude=a.longitude,
            description=a.description,
            product_count=counts.get(a.id, 0),
            distance_miles=round(distance, 1),
        )
        for a, distance in rank_by_distance(origin, artisans)
    ]
