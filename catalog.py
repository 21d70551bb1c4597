"""
Product catalog: creation, listing, updates and vendor ownership.
"""
import logging
import random
import re
import time
import unicodedata
from typing import List, Optional

from pymongo.errors import DuplicateKeyError

from database import collection, create_document, is_object_id, now, serialize_doc, to_object_id
from errors import Forbidden, NotFound
from schemas import Product, ProductDraft, ProductFilter, ProductPatch
from security import Principal
from storage import save_upload

logger = logging.getLogger(__name__)


def slugify(value: str) -> str:
    normalized = unicodedata.normalize("NFKD", value or "").encode("ascii", "ignore").decode("ascii")
    slug = re.sub(r"[^a-z0-9]+", "-", normalized.lower()).strip("-")
    return slug or "product"


def _slug_taken(slug: str, exclude_id=None) -> bool:
    query = {"slug": slug}
    if exclude_id is not None:
        query["_id"] = {"$ne": exclude_id}
    return collection("product").find_one(query, {"_id": 1}) is not None


def unique_slug(name: str, exclude_id=None) -> str:
    base = slugify(name)
    candidate = base
    while _slug_taken(candidate, exclude_id):
        if candidate == base:
            candidate = f"{base}-{int(time.time() * 1000)}"
        else:
            candidate = f"{base}-{random.randint(1000, 999999)}"
    return candidate


def category_pattern(value: str) -> dict:
    # "Living-Room", "living room" and "LIVING ROOM" all match the same category
    tokens = [t for t in re.split(r"[\s\-]+", value.strip()) if t]
    pattern = "^" + r"[\s\-]+".join(re.escape(t) for t in tokens) + "$"
    return {"$regex": pattern, "$options": "i"}


def effective_price(product: dict) -> float:
    offer = product.get("offer_price")
    if offer is not None and 0 < offer < product.get("price", 0):
        return float(offer)
    return float(product.get("price", 0))


def can_manage(principal: Principal, product: dict) -> bool:
    return principal.is_admin or product.get("vendor") == principal.id


def attach_vendors(products: List[dict]) -> List[dict]:
    vendor_ids = {p.get("vendor") for p in products if p.get("vendor") and is_object_id(p.get("vendor"))}
    vendors = {}
    if vendor_ids:
        cursor = collection("user").find({"_id": {"$in": [to_object_id(v) for v in vendor_ids]}}, {"name": 1, "email": 1})
        vendors = {str(u["_id"]): {"id": str(u["_id"]), "name": u.get("name"), "email": u.get("email")} for u in cursor}
    for p in products:
        p["vendor_details"] = vendors.get(p.get("vendor"))
    return products


def _find(product_id: str) -> dict:
    doc = collection("product").find_one({"_id": to_object_id(product_id)})
    if not doc:
        raise NotFound("Product not found")
    return doc


def create_product(principal: Principal, draft: ProductDraft, uploads: Optional[list] = None) -> dict:
    data = draft.model_dump()
    data["images"] = data["images"] + [save_upload(f) for f in uploads or []]
    product = Product(**data, slug=unique_slug(draft.name), vendor=principal.id)
    doc = product.model_dump()
    try:
        new_id = create_document("product", doc)
    except DuplicateKeyError:
        # lost a race for the slug; pick another suffix
        doc["slug"] = f"{slugify(draft.name)}-{random.randint(1000, 999999)}"
        doc.pop("_id", None)
        new_id = create_document("product", doc)
    logger.info("Vendor %s created product %s (%s)", principal.id, new_id, doc["slug"])
    return serialize_doc(_find(new_id))


def _visibility(principal: Optional[Principal]) -> Optional[dict]:
    if principal and principal.is_admin:
        return None
    visible = {"is_active": {"$ne": False}}
    if principal and principal.role == "vendor":
        return {"$or": [visible, {"vendor": principal.id}]}
    return visible


def build_query(flt: ProductFilter, principal: Optional[Principal] = None) -> dict:
    conditions = []
    visibility = _visibility(principal)
    if visibility:
        conditions.append(visibility)
    if flt.main_category:
        conditions.append({"main_category": category_pattern(flt.main_category)})
    if flt.sub_category:
        conditions.append({"sub_category": category_pattern(flt.sub_category)})
    if flt.featured is not None:
        conditions.append({"is_featured": flt.featured})
    if flt.best_seller is not None:
        conditions.append({"is_best_seller": flt.best_seller})
    if flt.has_offer is True:
        conditions.append({"offer_price": {"$gt": 0}})
    elif flt.has_offer is False:
        conditions.append({"$or": [{"offer_price": None}, {"offer_price": {"$lte": 0}}]})
    if flt.is_active is not None:
        conditions.append({"is_active": flt.is_active})
    if flt.vendor:
        conditions.append({"vendor": flt.vendor})
    if flt.q:
        conditions.append({"name": {"$regex": re.escape(flt.q), "$options": "i"}})
    if not conditions:
        return {}
    if len(conditions) == 1:
        return conditions[0]
    return {"$and": conditions}


def list_products(flt: ProductFilter, principal: Optional[Principal] = None) -> List[dict]:
    cursor = collection("product").find(build_query(flt, principal)).sort("created_at", -1)
    return attach_vendors([serialize_doc(p) for p in cursor])


def get_product(id_or_slug: str, principal: Optional[Principal] = None) -> dict:
    if is_object_id(id_or_slug):
        doc = collection("product").find_one({"_id": to_object_id(id_or_slug)})
    else:
        doc = collection("product").find_one({"slug": id_or_slug})
    if not doc:
        raise NotFound("Product not found")
    if doc.get("is_active") is False and not (principal and can_manage(principal, doc)):
        raise NotFound("Product not found")
    return attach_vendors([serialize_doc(doc)])[0]


def update_product(principal: Principal, product_id: str, patch: ProductPatch, uploads: Optional[list] = None) -> dict:
    product = _find(product_id)
    if not can_manage(principal, product):
        raise Forbidden("Only the owning vendor or an admin can modify this product")

    data = patch.model_dump(exclude_none=True)
    # an explicit existing_images list, even an empty one, replaces the stored images
    existing = data.pop("existing_images", None)
    added = [save_upload(f) for f in uploads or []]
    if existing is not None or added:
        data["images"] = (existing or []) + added
    if "name" in data and data["name"] != product.get("name"):
        data["slug"] = unique_slug(data["name"], exclude_id=product["_id"])
    data["updated_at"] = now()

    try:
        res = collection("product").update_one({"_id": product["_id"]}, {"$set": data})
    except DuplicateKeyError:
        data["slug"] = f"{slugify(data.get('name', product.get('name')))}-{random.randint(1000, 999999)}"
        res = collection("product").update_one({"_id": product["_id"]}, {"$set": data})
    if res.matched_count == 0:
        raise NotFound("Product not found")
    logger.info("User %s updated product %s", principal.id, product_id)
    return serialize_doc(_find(product_id))


def delete_product(principal: Principal, product_id: str):
    product = _find(product_id)
    if not can_manage(principal, product):
        raise Forbidden("Only the owning vendor or an admin can delete this product")
    res = collection("product").delete_one({"_id": product["_id"]})
    if res.deleted_count == 0:
        raise NotFound("Product not found")
    logger.info("User %s deleted product %s", principal.id, product_id)
