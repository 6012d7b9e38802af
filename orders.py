"""
Order routes.

Placing an order is the only operation that touches several documents: every
line item is checked against the live product, stock is reserved with one
conditional decrement per product, and only then is the order stored. A
failed reservation or insert gives back whatever this request had already
reserved, so stock never goes negative and a rejected order leaves stock
untouched.
"""
import logging
from typing import Any, Dict, List, Optional, Tuple

from bson import ObjectId
from fastapi import APIRouter, Body, Depends, Query
from pymongo import ReturnDocument
from pymongo.errors import PyMongoError

from auth import Identity, ensure_owner_or_admin, get_current_user, require_admin
from database import ORDERS, Database, create_document, get_db, parse_object_id, serialize, utcnow
from errors import InternalError, NotFound, ValidationError
from listing import NEWEST_FIRST, paginate
from schemas import OrderIn, PaymentResultIn, collect_errors, validate_order

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/orders", tags=["orders"])

PAGE_SIZE = 10
USER_FIELDS = {"name": 1, "email": 1}
PRODUCT_FIELDS = {"name": 1, "price": 1, "imageUrl": 1}


def _insufficient(product: dict) -> ValidationError:
    return ValidationError(
        f"Insufficient stock for {product.get('name')}. Available: {product.get('countInStock', 0)}"
    )


def _check_items(db: Database, order: OrderIn) -> List[Tuple[dict, int]]:
    """Resolve every line item against its product before anything is written."""
    ids = [ObjectId(item.product) for item in order.order_items if ObjectId.is_valid(item.product)]
    products = {p["_id"]: p for p in db.products.find({"_id": {"$in": ids}})}

    checked = []
    for item in order.order_items:
        product = products.get(ObjectId(item.product)) if ObjectId.is_valid(item.product) else None
        if not product:
            raise NotFound(f"Product {item.product} not found")
        if product.get("countInStock", 0) < item.quantity:
            raise _insufficient(product)
        checked.append((product, item.quantity))
    return checked


def _release(db: Database, reserved: List[Tuple[dict, int]]) -> None:
    for product, quantity in reserved:
        db.products.update_one({"_id": product["_id"]}, {"$inc": {"countInStock": quantity}})


def _reserve_stock(db: Database, checked: List[Tuple[dict, int]]) -> None:
    reserved: List[Tuple[dict, int]] = []
    for product, quantity in checked:
        try:
            res = db.products.update_one(
                {"_id": product["_id"], "countInStock": {"$gte": quantity}},
                {"$inc": {"countInStock": -quantity}},
            )
        except PyMongoError:
            _release(db, reserved)
            logger.error(f"Stock reservation failed for {product['_id']}", extra={"event_type": "order_failed"})
            raise
        if res.modified_count != 1:
            _release(db, reserved)
            current = db.products.find_one({"_id": product["_id"]}) or product
            logger.warning(f"Stock changed during checkout for {product['_id']}", extra={
                "event_type": "stock_rejected",
                "product_id": str(product["_id"]),
                "requested": quantity,
            })
            raise _insufficient(current)
        reserved.append((product, quantity))


def place_order(db: Database, identity: Identity, payload: Any) -> dict:
    if isinstance(payload, dict) and payload.get("orderItems") == []:
        raise ValidationError("No order items")
    errors = validate_order(payload)
    if errors:
        raise ValidationError("Invalid order data", errors)
    order = OrderIn.model_validate(payload)

    checked = _check_items(db, order)
    # Merge repeated lines for the same product so each reservation sees the full quantity.
    totals: Dict[ObjectId, Tuple[dict, int]] = {}
    for product, quantity in checked:
        previous = totals.get(product["_id"], (product, 0))[1]
        totals[product["_id"]] = (product, previous + quantity)
    for product, quantity in totals.values():
        if product.get("countInStock", 0) < quantity:
            raise _insufficient(product)

    _reserve_stock(db, list(totals.values()))

    data = {
        "user": ObjectId(identity.id),
        # Snapshot taken now; never re-read from the product afterwards.
        "orderItems": [
            {
                "product": product["_id"],
                "name": product.get("name"),
                "quantity": quantity,
                "price": product.get("price", 0),
                "imageUrl": product.get("imageUrl"),
            }
            for product, quantity in checked
        ],
        "shippingAddress": order.shipping_address.model_dump(by_alias=True),
        "paymentMethod": order.payment_method,
        "taxPrice": order.tax_price,
        "shippingPrice": order.shipping_price,
        "totalPrice": order.total_price,
        "isPaid": False,
        "isDelivered": False,
    }
    try:
        doc = create_document(db, ORDERS, data)
    except PyMongoError as exc:
        _release(db, list(totals.values()))
        logger.error(f"Order insert failed, stock released: {exc}", extra={"event_type": "order_failed"})
        raise InternalError("Order could not be saved") from exc
    logger.info(f"Order placed by user {identity.id}", extra={
        "event_type": "order_created",
        "order_id": str(doc["_id"]),
        "item_count": len(checked),
        "total_price": order.total_price,
    })
    return doc


def populate_orders(db: Database, orders: List[dict], with_user: bool = True) -> List[dict]:
    """Expand ``user`` and each line item's ``product`` reference in place."""
    product_ids = {item["product"] for o in orders for item in o.get("orderItems", [])}
    products = {p["_id"]: p for p in db.products.find({"_id": {"$in": list(product_ids)}}, PRODUCT_FIELDS)}
    users = {}
    if with_user:
        user_ids = {o["user"] for o in orders if o.get("user")}
        users = {u["_id"]: u for u in db.users.find({"_id": {"$in": list(user_ids)}}, USER_FIELDS)}

    for o in orders:
        if with_user:
            o["user"] = users.get(o.get("user"))
        for item in o.get("orderItems", []):
            item["product"] = products.get(item["product"])
    return orders


def _load_order(db: Database, order_id: str) -> dict:
    doc = db.orders.find_one({"_id": parse_object_id(order_id, "Order")})
    if not doc:
        raise NotFound("Order not found")
    return doc


@router.post("", status_code=201)
def create_order(
    payload: Any = Body(...),
    db: Database = Depends(get_db),
    identity: Identity = Depends(get_current_user),
):
    return serialize(place_order(db, identity, payload))


@router.get("/my/orders")
def my_orders(db: Database = Depends(get_db), identity: Identity = Depends(get_current_user)):
    docs = list(db.orders.find({"user": ObjectId(identity.id)}).sort(NEWEST_FIRST))
    return [serialize(d) for d in populate_orders(db, docs, with_user=False)]


@router.get("")
def list_orders(
    page_number: Optional[str] = Query(None, alias="pageNumber"),
    page_size: Optional[str] = Query(None, alias="pageSize"),
    db: Database = Depends(get_db),
    admin: Identity = Depends(require_admin),
):
    page = paginate(db.orders, {}, page_number, page_size, default_size=PAGE_SIZE)
    populate_orders(db, page.items)
    return page.to_response("orders", serialize)


@router.get("/{order_id}")
def get_order(order_id: str, db: Database = Depends(get_db), identity: Identity = Depends(get_current_user)):
    doc = _load_order(db, order_id)
    ensure_owner_or_admin(identity, doc.get("user"), "view this order")
    return serialize(populate_orders(db, [doc])[0])


@router.put("/{order_id}/pay")
def pay_order(
    order_id: str,
    payload: Optional[Dict[str, Any]] = Body(None),
    db: Database = Depends(get_db),
    identity: Identity = Depends(get_current_user),
):
    doc = _load_order(db, order_id)
    ensure_owner_or_admin(identity, doc.get("user"), "update this order")
    errors = collect_errors(PaymentResultIn, payload or {})
    if errors:
        raise ValidationError("Invalid payment result", errors)
    result = PaymentResultIn.model_validate(payload or {})

    # No check of the payment against totalPrice: the gateway payload is stored as sent.
    now = utcnow()
    updated = db.orders.find_one_and_update(
        {"_id": doc["_id"], "isPaid": False},
        {"$set": {"isPaid": True, "paidAt": now, "paymentResult": result.to_document(), "updatedAt": now}},
        return_document=ReturnDocument.AFTER,
    )
    if not updated:
        raise ValidationError("Order is already paid")
    logger.info(f"Order {order_id} marked paid", extra={
        "event_type": "order_paid",
        "order_id": order_id,
        "payment_id": result.id,
    })
    return serialize(updated)


@router.put("/{order_id}/deliver")
def deliver_order(order_id: str, db: Database = Depends(get_db), admin: Identity = Depends(require_admin)):
    doc = _load_order(db, order_id)
    now = utcnow()
    updated = db.orders.find_one_and_update(
        {"_id": doc["_id"], "isDelivered": False},
        {"$set": {"isDelivered": True, "deliveredAt": now, "updatedAt": now}},
        return_document=ReturnDocument.AFTER,
    )
    if not updated:
        raise ValidationError("Order is already delivered")
    logger.info(f"Order {order_id} marked delivered", extra={"event_type": "order_delivered", "admin_id": admin.id})
    return serialize(updated)
