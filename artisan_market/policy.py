"""Single capability check used by the views and the storage layer.

``can(action, resource, actor)`` answers the question, ``authorize`` raises
``PermissionDenied`` when the answer is no. ``actor`` is a ``models.User``
profile or ``None`` for anonymous visitors.
"""
from enum import Enum

from .errors import PermissionDenied


class Action(str, Enum):
    VIEW_CATALOG = "view_catalog"
    CREATE_PRODUCT = "create_product"
    LIST_OWN_PRODUCTS = "list_own_products"
    UPDATE_PRODUCT = "update_product"
    DELETE_PRODUCT = "delete_product"
    PLACE_ORDER = "place_order"
    LIST_ORDERS = "list_orders"
    VIEW_ORDER = "view_order"
    TRANSITION_ORDER = "transition_order"
    UPDATE_PROFILE = "update_profile"


def _is(actor, role):
    return actor is not None and actor.role == role


def _owns_product(actor, product):
    return _is(actor, "artisan") and product is not None and product.artisan_id == actor.id


def can(action, resource=None, actor=None) -> bool:
    action = Action(action)
    if action is Action.VIEW_CATALOG:
        return True
    if actor is None:
        return False
    if action in (Action.CREATE_PRODUCT, Action.LIST_OWN_PRODUCTS):
        return _is(actor, "artisan")
    if action in (Action.UPDATE_PRODUCT, Action.DELETE_PRODUCT):
        return _owns_product(actor, resource)
    if action is Action.PLACE_ORDER:
        return _is(actor, "customer") and resource is not None
    if action is Action.LIST_ORDERS:
        return True
    if action is Action.VIEW_ORDER:
        return resource is not None and actor.id in (resource.customer_id, resource.artisan_id)
    if action is Action.TRANSITION_ORDER:
        return _is(actor, "artisan") and resource is not None and resource.artisan_id == actor.id
    if action is Action.UPDATE_PROFILE:
        return resource is not None and resource.id == actor.id
    return False


def authorize(action, resource=None, actor=None):
    if not can(action, resource, actor):
        who = f"user {actor.id} ({actor.role})" if actor is not None else "anonymous visitor"
        raise PermissionDenied(f"{who} may not {Action(action).value.replace('_', ' ')}")
