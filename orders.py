"""
Order service: checkout, ownership-gated reads and status transitions.
"""
from typing import Any, Dict, List, Optional

import structlog
from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from pymongo import DESCENDING
from pymongo.database import Database

from auth import admin_required, get_current_user, is_owner_or_admin
from database import create_document, find_by_id, find_many_by_ids, get_db, get_documents, now, sanitize
from errors import EmptyOrder, Forbidden, NotFound
from schemas import Address, Order as OrderSchema, OrderItem, PaymentMethod

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api/orders", tags=["orders"])

ORDER_NOT_FOUND = "Commande non trouvée"
NEWEST_FIRST = [("createdAt", DESCENDING), ("_id", DESCENDING)]


class OrderCreate(BaseModel):
    items: Optional[List[OrderItem]] = None
    shippingAddress: Address = Field(default_factory=Address)
    paymentMethod: PaymentMethod


def order_total(items: List[OrderItem]) -> float:
    return sum(item.price * item.quantity for item in items)


def _load_order(db: Database, order_id: str) -> Dict[str, Any]:
    order = find_by_id(db, "order", order_id)
    if not order:
        raise NotFound(ORDER_NOT_FOUND)
    return order


def _check_access(order: Dict[str, Any], user: Dict[str, Any]) -> None:
    if not is_owner_or_admin(user, order["user"]):
        logger.info("order_access_denied", order_id=str(order["_id"]), user_id=user["id"])
        raise Forbidden("Non autorisé")


@router.post("", status_code=201)
def create_order(payload: OrderCreate, current_user=Depends(get_current_user), db: Database = Depends(get_db)):
    if not payload.items:
        raise EmptyOrder()
    order = OrderSchema(
        user=current_user["id"],
        items=payload.items,
        shippingAddress=payload.shippingAddress,
        paymentMethod=payload.paymentMethod,
        totalPrice=order_total(payload.items),
    )
    oid = create_document(db, "order", order)
    logger.info("order_created", order_id=oid, user_id=current_user["id"], total=order.totalPrice)
    return sanitize(find_by_id(db, "order", oid))


@router.get("")
def list_orders(admin=Depends(admin_required), db: Database = Depends(get_db)):
    orders = get_documents(db, "order", sort=NEWEST_FIRST)
    owners = find_many_by_ids(db, "user", [o["user"] for o in orders], {"firstName": 1, "lastName": 1})
    for o in orders:
        o["user"] = owners.get(o["user"], {"id": o["user"]})
    return orders


@router.get("/myorders")
def my_orders(current_user=Depends(get_current_user), db: Database = Depends(get_db)):
    return get_documents(db, "order", {"user": current_user["id"]}, sort=NEWEST_FIRST)


@router.get("/{order_id}")
def get_order(order_id: str, current_user=Depends(get_current_user), db: Database = Depends(get_db)):
    order = _load_order(db, order_id)
    _check_access(order, current_user)

    order = sanitize(order)
    owner = find_many_by_ids(db, "user", [order["user"]], {"firstName": 1, "lastName": 1, "email": 1})
    order["user"] = owner.get(order["user"], {"id": order["user"]})
    products = find_many_by_ids(
        db, "product", [i["product"] for i in order["items"]], {"name": 1, "images": 1, "price": 1}
    )
    for item in order["items"]:
        item["product"] = products.get(item["product"], {"id": item["product"]})
    return order


@router.put("/{order_id}/pay")
def pay_order(order_id: str, current_user=Depends(get_current_user), db: Database = Depends(get_db)):
    order = _load_order(db, order_id)
    _check_access(order, current_user)
    stamp = now()
    db["order"].update_one(
        {"_id": order["_id"]},
        {"$set": {"paymentStatus": "completed", "paidAt": stamp, "updatedAt": stamp}},
    )
    logger.info("order_paid", order_id=order_id, user_id=current_user["id"])
    return {"message": "Paiement effectué"}


@router.put("/{order_id}/deliver")
def deliver_order(order_id: str, admin=Depends(admin_required), db: Database = Depends(get_db)):
    order = _load_order(db, order_id)
    stamp = now()
    db["order"].update_one(
        {"_id": order["_id"]},
        {"$set": {"status": "delivered", "deliveredAt": stamp, "updatedAt": stamp}},
    )
    logger.info("order_delivered", order_id=order_id, by=admin["id"])
    return {"message": "Commande livrée"}
