import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, Depends, Query
from pymongo import ReturnDocument

from auth import Identity, require_admin
from database import PRODUCTS, Database, create_document, get_db, get_documents, parse_object_id, serialize, touch
from errors import NotFound, ValidationError
from listing import build_filter, paginate
from schemas import Product, ProductUpdate, validate_product

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/products", tags=["products"])

PAGE_SIZE = 12
TOP_RATED_LIMIT = 5


@router.get("")
def list_products(
    keyword: Optional[str] = None,
    category: Optional[str] = None,
    min_price: Optional[str] = Query(None, alias="minPrice"),
    max_price: Optional[str] = Query(None, alias="maxPrice"),
    page_number: Optional[str] = Query(None, alias="pageNumber"),
    page_size: Optional[str] = Query(None, alias="pageSize"),
    db: Database = Depends(get_db),
):
    filter_dict = build_filter(
        {"keyword": keyword, "category": category, "minPrice": min_price, "maxPrice": max_price},
        text_param="keyword",
        text_fields=("name",),
        exact=("category",),
        ranges={"price": ("minPrice", "maxPrice")},
    )
    page = paginate(db.products, filter_dict, page_number, page_size, default_size=PAGE_SIZE)
    logger.info(f"Listing products page {page.page}/{page.pages}", extra={
        "event_type": "data_loaded",
        "product_count": len(page.items),
        "total": page.total,
    })
    return page.to_response("products", serialize)


@router.get("/top/rated")
def top_rated_products(db: Database = Depends(get_db)):
    docs = get_documents(db, PRODUCTS, {}, limit=TOP_RATED_LIMIT, sort=[("rating", -1), ("_id", -1)])
    return [serialize(d) for d in docs]


@router.get("/categories/all")
def list_categories(db: Database = Depends(get_db)):
    return sorted(c for c in db.products.distinct("category") if c)


@router.get("/{product_id}")
def get_product(product_id: str, db: Database = Depends(get_db)):
    doc = db.products.find_one({"_id": parse_object_id(product_id, "Product")})
    if not doc:
        raise NotFound("Product not found")
    return serialize(doc)


@router.post("", status_code=201)
def create_product(
    payload: Dict[str, Any] = Body(...),
    db: Database = Depends(get_db),
    admin: Identity = Depends(require_admin),
):
    errors = validate_product(payload)
    if errors:
        raise ValidationError("Invalid product data", errors)
    data = Product.model_validate(payload).model_dump(by_alias=True)
    doc = create_document(db, PRODUCTS, data)
    logger.info(f"Product created: {doc['name']}", extra={
        "event_type": "product_created",
        "product_id": str(doc["_id"]),
        "admin_id": admin.id,
    })
    return serialize(doc)


@router.put("/{product_id}")
def update_product(
    product_id: str,
    payload: Dict[str, Any] = Body(...),
    db: Database = Depends(get_db),
    admin: Identity = Depends(require_admin),
):
    oid = parse_object_id(product_id, "Product")
    errors = validate_product(payload, partial=True)
    if errors:
        raise ValidationError("Invalid product data", errors)
    changes = ProductUpdate.model_validate(payload).model_dump(by_alias=True, exclude_none=True)
    doc = db.products.find_one_and_update(
        {"_id": oid},
        {"$set": touch(changes)},
        return_document=ReturnDocument.AFTER,
    )
    if not doc:
        raise NotFound("Product not found")
    logger.info(f"Product updated: {product_id}", extra={
        "event_type": "product_updated",
        "fields": sorted(k for k in changes if k != "updatedAt"),
        "admin_id": admin.id,
    })
    return serialize(doc)


@router.delete("/{product_id}")
def delete_product(
    product_id: str,
    db: Database = Depends(get_db),
    admin: Identity = Depends(require_admin),
):
    res = db.products.delete_one({"_id": parse_object_id(product_id, "Product")})
    if res.deleted_count == 0:
        raise NotFound("Product not found")
    logger.info(f"Product removed: {product_id}", extra={"event_type": "product_deleted", "admin_id": admin.id})
    return {"message": "Product removed"}
