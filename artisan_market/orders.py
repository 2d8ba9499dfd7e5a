"""Order lifecycle: pending -> accepted -> completed, or pending -> cancelled."""
import logging
from enum import Enum
from typing import List

from sqlalchemy import update
from sqlalchemy.orm import Session, joinedload

from . import models
from .errors import InvalidTransition, NotFound
from .policy import Action, authorize, can

logger = logging.getLogger(__name__)


class OrderStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


TRANSITIONS = {
    OrderStatus.PENDING: frozenset({OrderStatus.ACCEPTED, OrderStatus.CANCELLED}),
    OrderStatus.ACCEPTED: frozenset({OrderStatus.COMPLETED}),
    OrderStatus.COMPLETED: frozenset(),
    OrderStatus.CANCELLED: frozenset(),
}


def can_transition(current, target) -> bool:
    try:
        return OrderStatus(target) in TRANSITIONS[OrderStatus(current)]
    except ValueError:
        return False


def check_transition(current, target) -> OrderStatus:
    if not can_transition(current, target):
        raise InvalidTransition(str(getattr(current, "value", current)), str(getattr(target, "value", target)))
    return OrderStatus(target)


def available_transitions(order: models.Order, actor) -> List[OrderStatus]:
    """Statuses the actor may move this order to, in display order."""
    if not can(Action.TRANSITION_ORDER, order, actor):
        return []
    nexts = TRANSITIONS.get(OrderStatus(order.status), frozenset())
    return [s for s in OrderStatus if s in nexts]


def _scoped_query(db: Session, actor):
    query = db.query(models.Order).options(
        joinedload(models.Order.product),
        joinedload(models.Order.customer),
        joinedload(models.Order.artisan),
    )
    if actor.role == "artisan":
        return query.filter(models.Order.artisan_id == actor.id)
    return query.filter(models.Order.customer_id == actor.id)


def create_order(db: Session, actor, product_id: int) -> models.Order:
    product = db.get(models.Product, product_id)
    if product is None:
        raise NotFound("product not found")
    authorize(Action.PLACE_ORDER, product, actor)
    order = models.Order(
        product_id=product.id,
        customer_id=actor.id,
        artisan_id=product.artisan_id,
        status=OrderStatus.PENDING.value,
    )
    db.add(order)
    db.commit()
    db.refresh(order)
    logger.info("order %s placed by customer %s for product %s", order.id, actor.id, product.id)
    return order


def list_orders(db: Session, actor) -> List[models.Order]:
    authorize(Action.LIST_ORDERS, None, actor)
    return (
        _scoped_query(db, actor)
        .order_by(models.Order.created_at.desc(), models.Order.id.desc())
        .all()
    )


def get_order(db: Session, actor, order_id: int) -> models.Order:
    order = _scoped_query(db, actor).filter(models.Order.id == order_id).first()
    if order is None:
        raise NotFound("order not found")
    return order


def transition_order(db: Session, actor, order_id: int, target) -> models.Order:
    """Move an order to ``target`` with a single conditional UPDATE.

    The order must resolve inside the actor's scope, the actor must own it as
    artisan, and the status must still be the one the transition was checked
    against; otherwise nothing is written.
    """
    order = get_order(db, actor, order_id)
    authorize(Action.TRANSITION_ORDER, order, actor)
    current = order.status
    target = check_transition(current, target)

    result = db.execute(
        update(models.Order)
        .where(
            models.Order.id == order.id,
            models.Order.artisan_id == actor.id,
            models.Order.status == current,
        )
        .values(status=target.value)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        db.rollback()
        db.refresh(order)
        logger.warning("order %s changed underneath transition %s -> %s", order.id, current, target.value)
        raise InvalidTransition(order.status, target.value)
    db.commit()
    db.refresh(order)
    logger.info("order %s moved %s -> %s by artisan %s", order.id, current, target.value, actor.id)
    return order
