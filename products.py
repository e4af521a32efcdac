"""
Catalog service: product listing, detail, admin mutations and reviews.
"""
import math
import re
from typing import Any, Dict, List, Optional

import structlog
from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from pymongo import ASCENDING, DESCENDING
from pymongo.database import Database

from auth import admin_required, get_current_user
from database import create_document, find_by_id, find_many_by_ids, get_db, now, sanitize
from errors import DuplicateReview, NotFound
from schemas import Category, Origin, Product as ProductSchema, average_rating

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api/products", tags=["products"])

PRODUCT_NOT_FOUND = "Produit non trouvé"
DEFAULT_PAGE = 1
DEFAULT_LIMIT = 12
MAX_LIMIT = 100
# Largest skip MongoDB accepts (signed 64-bit).
MAX_SKIP = 2 ** 63 - 1
TOP_PRODUCTS = 5

SORT_OPTIONS = {
    "price_asc": [("price", ASCENDING)],
    "price_desc": [("price", DESCENDING)],
    "rating": [("averageRating", DESCENDING)],
    "newest": [("createdAt", DESCENDING)],
}


class ProductIn(BaseModel):
    name: str = Field(..., min_length=1)
    description: str
    price: float = Field(..., ge=0)
    category: Category
    origin: Origin
    images: List[str] = Field(default_factory=list)
    stock: int = Field(..., ge=0)


class ReviewRequest(BaseModel):
    rating: int = Field(..., ge=1, le=5)
    comment: Optional[str] = None


class ProductPage(BaseModel):
    products: List[Dict[str, Any]]
    page: int
    pages: int
    total: int


def coerce_positive_int(value: Any, default: int, maximum: Optional[int] = None) -> int:
    """Parse an untrusted query value, falling back to `default` when unusable.

    Values above `maximum` are clamped to it.
    """
    try:
        number = int(value)
    except (TypeError, ValueError):
        return default
    if number < 1:
        return default
    if maximum is not None and number > maximum:
        return maximum
    return number


def build_query(category: Optional[str], search: Optional[str]) -> Dict[str, Any]:
    query: Dict[str, Any] = {}
    if category and category != "all":
        query["category"] = category
    if search:
        pattern = re.escape(search)
        query["$or"] = [
            {"name": {"$regex": pattern, "$options": "i"}},
            {"description": {"$regex": pattern, "$options": "i"}},
        ]
    return query


def _load_product(db: Database, product_id: str) -> Dict[str, Any]:
    product = find_by_id(db, "product", product_id)
    if not product:
        raise NotFound(PRODUCT_NOT_FOUND)
    return product


@router.get("", response_model=ProductPage)
def list_products(
    category: Optional[str] = None,
    search: Optional[str] = None,
    sort: Optional[str] = None,
    page: Optional[str] = None,
    limit: Optional[str] = None,
    db: Database = Depends(get_db),
):
    per_page = coerce_positive_int(limit, DEFAULT_LIMIT, MAX_LIMIT)
    page_num = coerce_positive_int(page, DEFAULT_PAGE, MAX_SKIP // per_page + 1)
    query = build_query(category, search)

    cursor = db["product"].find(query)
    if sort in SORT_OPTIONS:
        cursor = cursor.sort(SORT_OPTIONS[sort])
    cursor = cursor.skip((page_num - 1) * per_page).limit(per_page)

    total = db["product"].count_documents(query)
    return ProductPage(
        products=[sanitize(p) for p in cursor],
        page=page_num,
        pages=math.ceil(total / per_page),
        total=total,
    )


@router.get("/top")
def top_products(db: Database = Depends(get_db)):
    cursor = db["product"].find({}).sort([("averageRating", DESCENDING), ("_id", ASCENDING)]).limit(TOP_PRODUCTS)
    return [sanitize(p) for p in cursor]


@router.get("/{product_id}")
def get_product(product_id: str, db: Database = Depends(get_db)):
    product = sanitize(_load_product(db, product_id))
    authors = find_many_by_ids(
        db, "user", [r["user"] for r in product.get("ratings", [])], {"firstName": 1, "lastName": 1}
    )
    for r in product.get("ratings", []):
        r["user"] = authors.get(r["user"], {"id": r["user"]})
    return product


@router.post("", status_code=201)
def create_product(payload: ProductIn, admin=Depends(admin_required), db: Database = Depends(get_db)):
    doc = ProductSchema(**payload.model_dump(), seller=admin["id"])
    pid = create_document(db, "product", doc)
    logger.info("product_created", product_id=pid, by=admin["id"])
    return sanitize(find_by_id(db, "product", pid))


@router.put("/{product_id}")
def update_product(product_id: str, payload: ProductIn, admin=Depends(admin_required), db: Database = Depends(get_db)):
    product = _load_product(db, product_id)
    changes = payload.model_dump()
    changes["updatedAt"] = now()
    db["product"].update_one({"_id": product["_id"]}, {"$set": changes})
    logger.info("product_updated", product_id=product_id, by=admin["id"])
    return sanitize(db["product"].find_one({"_id": product["_id"]}))


@router.delete("/{product_id}")
def delete_product(product_id: str, admin=Depends(admin_required), db: Database = Depends(get_db)):
    product = _load_product(db, product_id)
    db["product"].delete_one({"_id": product["_id"]})
    logger.info("product_deleted", product_id=product_id, by=admin["id"])
    return {"message": "Produit supprimé"}


@router.post("/{product_id}/reviews", status_code=201)
def add_review(product_id: str, payload: ReviewRequest, current_user=Depends(get_current_user), db: Database = Depends(get_db)):
    product = _load_product(db, product_id)
    ratings = product.get("ratings", [])
    if any(r["user"] == current_user["id"] for r in ratings):
        raise DuplicateReview()

    review = {
        "user": current_user["id"],
        "rating": payload.rating,
        "comment": payload.comment,
        "createdAt": now(),
    }
    avg = average_rating(ratings + [review])
    db["product"].update_one(
        {"_id": product["_id"]},
        {"$push": {"ratings": review}, "$set": {"averageRating": avg}},
    )
    logger.info("review_added", product_id=product_id, user_id=current_user["id"], rating=payload.rating)
    return {"message": "Évaluation ajoutée", "averageRating": avg}
