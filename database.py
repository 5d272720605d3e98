"""
Storage backends for the storefront.

`Storage` lists every operation the API needs. `MemoryStorage` keeps the four
collections in dicts for a single process; `MongoStorage` keeps them in
MongoDB collections named after the lowercase schema class.

Absence is reported by returning None (or False for deletes), never by
raising. Nothing here checks references across collections: a cart item may
point at a product that no longer exists.
"""

import abc
import functools
import logging
import os
import re
import uuid
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

import anyio.to_thread
from bson import ObjectId
from pymongo import ASCENDING, DESCENDING, MongoClient

from schemas import (
    BlogPost,
    BlogPostCreate,
    CartItem,
    CartItemCreate,
    Order,
    OrderCreate,
    Product,
    ProductCreate,
)

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]

# fields generated by the store that a partial update may not overwrite
PROTECTED_FIELDS = ("id", "created_at", "updated_at")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _merge_fields(partial: Dict[str, Any]) -> Dict[str, Any]:
    return {k: v for k, v in partial.items() if k not in PROTECTED_FIELDS}


def _newest_first(records):
    return sorted(records, key=lambda r: r.created_at, reverse=True)


class Storage(abc.ABC):
    kind = "abstract"

    # Products
    @abc.abstractmethod
    async def list_products(self) -> List[Product]: ...

    @abc.abstractmethod
    async def get_product(self, product_id: str) -> Optional[Product]: ...

    @abc.abstractmethod
    async def create_product(self, data: ProductCreate) -> Product: ...

    @abc.abstractmethod
    async def update_product(self, product_id: str, partial: Dict[str, Any]) -> Optional[Product]: ...

    @abc.abstractmethod
    async def delete_product(self, product_id: str) -> bool: ...

    @abc.abstractmethod
    async def list_products_by_category(self, category: str) -> List[Product]: ...

    @abc.abstractmethod
    async def search_products(self, query: str) -> List[Product]: ...

    # Orders
    @abc.abstractmethod
    async def list_orders(self) -> List[Order]: ...

    @abc.abstractmethod
    async def get_order(self, order_id: str) -> Optional[Order]: ...

    @abc.abstractmethod
    async def create_order(self, data: OrderCreate) -> Order: ...

    @abc.abstractmethod
    async def update_order_status(self, order_id: str, status: str) -> Optional[Order]: ...

    @abc.abstractmethod
    async def list_orders_by_status(self, status: str) -> List[Order]: ...

    # Blog posts
    @abc.abstractmethod
    async def list_blog_posts(self) -> List[BlogPost]: ...

    @abc.abstractmethod
    async def get_blog_post(self, post_id: str) -> Optional[BlogPost]: ...

    @abc.abstractmethod
    async def get_blog_post_by_slug(self, slug: str) -> Optional[BlogPost]: ...

    @abc.abstractmethod
    async def create_blog_post(self, data: BlogPostCreate) -> BlogPost: ...

    @abc.abstractmethod
    async def update_blog_post(self, post_id: str, partial: Dict[str, Any]) -> Optional[BlogPost]: ...

    @abc.abstractmethod
    async def delete_blog_post(self, post_id: str) -> bool: ...

    @abc.abstractmethod
    async def list_published_blog_posts(self) -> List[BlogPost]: ...

    # Cart items
    @abc.abstractmethod
    async def list_cart_items(self, session_id: str) -> List[CartItem]: ...

    @abc.abstractmethod
    async def add_cart_item(self, data: CartItemCreate) -> CartItem: ...

    @abc.abstractmethod
    async def update_cart_item_quantity(self, item_id: str, quantity: int) -> Optional[CartItem]: ...

    @abc.abstractmethod
    async def remove_cart_item(self, item_id: str) -> bool: ...

    @abc.abstractmethod
    async def clear_cart(self, session_id: str) -> None: ...


# ----------------------------------------------------------------------------
# In-memory backend
# ----------------------------------------------------------------------------

class MemoryStorage(Storage):
    """Volatile single-process store.

    Every operation runs to completion without awaiting anything, so a
    read-modify-write such as the cart merge is never interleaved with
    another request on the same event loop.
    """

    kind = "memory"

    def __init__(self, clock: Optional[Clock] = None):
        self.clock = clock or utcnow
        self.products: Dict[str, Product] = {}
        self.orders: Dict[str, Order] = {}
        self.blog_posts: Dict[str, BlogPost] = {}
        self.cart_items: Dict[str, CartItem] = {}

    @staticmethod
    def new_id() -> str:
        return str(uuid.uuid4())

    @staticmethod
    def _copy(record):
        return record.model_copy(deep=True) if record is not None else None

    # Products

    async def list_products(self) -> List[Product]:
        return [self._copy(p) for p in self.products.values()]

    async def get_product(self, product_id: str) -> Optional[Product]:
        return self._copy(self.products.get(product_id))

    async def create_product(self, data: ProductCreate) -> Product:
        product = Product(id=self.new_id(), created_at=self.clock(), **data.model_dump())
        self.products[product.id] = product
        return self._copy(product)

    async def update_product(self, product_id: str, partial: Dict[str, Any]) -> Optional[Product]:
        existing = self.products.get(product_id)
        if existing is None:
            return None
        updated = existing.model_copy(update=_merge_fields(partial))
        self.products[product_id] = updated
        return self._copy(updated)

    async def delete_product(self, product_id: str) -> bool:
        return self.products.pop(product_id, None) is not None

    async def list_products_by_category(self, category: str) -> List[Product]:
        wanted = category.lower()
        return [self._copy(p) for p in self.products.values() if p.category.lower() == wanted]

    async def search_products(self, query: str) -> List[Product]:
        term = query.lower()
        return [
            self._copy(p)
            for p in self.products.values()
            if term in p.name.lower() or term in p.description.lower() or term in p.category.lower()
        ]

    # Orders

    async def list_orders(self) -> List[Order]:
        return [self._copy(o) for o in _newest_first(self.orders.values())]

    async def get_order(self, order_id: str) -> Optional[Order]:
        return self._copy(self.orders.get(order_id))

    async def create_order(self, data: OrderCreate) -> Order:
        now = self.clock()
        order = Order(id=self.new_id(), created_at=now, updated_at=now, **data.model_dump())
        self.orders[order.id] = order
        return self._copy(order)

    async def update_order_status(self, order_id: str, status: str) -> Optional[Order]:
        existing = self.orders.get(order_id)
        if existing is None:
            return None
        updated = existing.model_copy(update={"status": status, "updated_at": self.clock()})
        self.orders[order_id] = updated
        return self._copy(updated)

    async def list_orders_by_status(self, status: str) -> List[Order]:
        return [self._copy(o) for o in self.orders.values() if o.status == status]

    # Blog posts

    async def list_blog_posts(self) -> List[BlogPost]:
        return [self._copy(p) for p in _newest_first(self.blog_posts.values())]

    async def get_blog_post(self, post_id: str) -> Optional[BlogPost]:
        return self._copy(self.blog_posts.get(post_id))

    async def get_blog_post_by_slug(self, slug: str) -> Optional[BlogPost]:
        for post in self.blog_posts.values():
            if post.slug == slug:
                return self._copy(post)
        return None

    async def create_blog_post(self, data: BlogPostCreate) -> BlogPost:
        now = self.clock()
        post = BlogPost(id=self.new_id(), created_at=now, updated_at=now, **data.model_dump())
        self.blog_posts[post.id] = post
        return self._copy(post)

    async def update_blog_post(self, post_id: str, partial: Dict[str, Any]) -> Optional[BlogPost]:
        existing = self.blog_posts.get(post_id)
        if existing is None:
            return None
        changes = _merge_fields(partial)
        changes["updated_at"] = self.clock()
        updated = existing.model_copy(update=changes)
        self.blog_posts[post_id] = updated
        return self._copy(updated)

    async def delete_blog_post(self, post_id: str) -> bool:
        return self.blog_posts.pop(post_id, None) is not None

    async def list_published_blog_posts(self) -> List[BlogPost]:
        published = [p for p in self.blog_posts.values() if p.published]
        return [self._copy(p) for p in _newest_first(published)]

    # Cart items

    async def list_cart_items(self, session_id: str) -> List[CartItem]:
        return [self._copy(i) for i in self.cart_items.values() if i.session_id == session_id]

    async def add_cart_item(self, data: CartItemCreate) -> CartItem:
        for item in self.cart_items.values():
            if item.session_id == data.session_id and item.product_id == data.product_id:
                merged = item.model_copy(update={"quantity": item.quantity + data.quantity})
                self.cart_items[item.id] = merged
                logger.debug("Merged cart item %s, quantity now %d", item.id, merged.quantity)
                return self._copy(merged)

        item = CartItem(id=self.new_id(), created_at=self.clock(), **data.model_dump())
        self.cart_items[item.id] = item
        return self._copy(item)

    async def update_cart_item_quantity(self, item_id: str, quantity: int) -> Optional[CartItem]:
        existing = self.cart_items.get(item_id)
        if existing is None:
            return None
        updated = existing.model_copy(update={"quantity": quantity})
        self.cart_items[item_id] = updated
        return self._copy(updated)

    async def remove_cart_item(self, item_id: str) -> bool:
        return self.cart_items.pop(item_id, None) is not None

    async def clear_cart(self, session_id: str) -> None:
        stale = [item_id for item_id, item in self.cart_items.items() if item.session_id == session_id]
        for item_id in stale:
            del self.cart_items[item_id]


# ----------------------------------------------------------------------------
# MongoDB backend
# ----------------------------------------------------------------------------

def to_object_id(value: str) -> Optional[ObjectId]:
    return ObjectId(value) if ObjectId.is_valid(value) else None


def to_record(doc: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    """Turn a Mongo document into model kwargs: `_id` becomes `id` and
    naive timestamps (pymongo returns UTC without tzinfo) become aware."""
    if not doc:
        return None
    d = {**doc}
    if "_id" in d:
        d["id"] = str(d.pop("_id"))
    for key in ("created_at", "updated_at"):
        value = d.get(key)
        if isinstance(value, datetime) and value.tzinfo is None:
            d[key] = value.replace(tzinfo=timezone.utc)
    return d


def contains_pattern(text: str) -> Dict[str, Any]:
    return {"$regex": re.escape(text), "$options": "i"}


class MongoStorage(Storage):
    """pymongo is blocking, so every collection call runs in a worker thread
    and the event loop keeps serving other requests meanwhile."""

    kind = "mongodb"

    def __init__(self, db, clock: Optional[Clock] = None):
        self.db = db
        self.clock = clock or utcnow
        self.db["blogpost"].create_index("slug", unique=True)

    def now(self) -> datetime:
        # BSON dates keep milliseconds only
        ts = self.clock()
        return ts.replace(microsecond=ts.microsecond // 1000 * 1000)

    async def _run(self, func, *args):
        return await anyio.to_thread.run_sync(functools.partial(func, *args))

    def _find(self, collection: str, model, filt: Dict[str, Any], sort=("_id", ASCENDING)) -> list:
        cursor = self.db[collection].find(filt).sort(*sort)
        return [model(**to_record(doc)) for doc in cursor]

    def _find_one(self, collection: str, model, filt: Dict[str, Any]):
        doc = self.db[collection].find_one(filt)
        return model(**to_record(doc)) if doc else None

    def _get(self, collection: str, model, doc_id: str):
        _id = to_object_id(doc_id)
        if _id is None:
            return None
        return self._find_one(collection, model, {"_id": _id})

    def _insert(self, collection: str, model, values: Dict[str, Any]):
        inserted_id = self.db[collection].insert_one(values).inserted_id
        return self._get(collection, model, str(inserted_id))

    def _update(self, collection: str, model, doc_id: str, changes: Dict[str, Any]):
        _id = to_object_id(doc_id)
        if _id is None:
            return None
        if changes:
            res = self.db[collection].update_one({"_id": _id}, {"$set": changes})
            if res.matched_count == 0:
                return None
        return self._get(collection, model, doc_id)

    def _delete(self, collection: str, doc_id: str) -> bool:
        _id = to_object_id(doc_id)
        if _id is None:
            return False
        return self.db[collection].delete_one({"_id": _id}).deleted_count > 0

    def _upsert_cart_item(self, data: CartItemCreate) -> CartItem:
        key = {"session_id": data.session_id, "product_id": data.product_id}
        res = self.db["cartitem"].update_one(
            key,
            {"$inc": {"quantity": data.quantity}, "$setOnInsert": {"created_at": self.now()}},
            upsert=True,
        )
        if res.upserted_id is None:
            logger.debug("Merged cart item for session %s, product %s", data.session_id, data.product_id)
        return self._find_one("cartitem", CartItem, key)

    # Products

    async def list_products(self) -> List[Product]:
        return await self._run(self._find, "product", Product, {})

    async def get_product(self, product_id: str) -> Optional[Product]:
        return await self._run(self._get, "product", Product, product_id)

    async def create_product(self, data: ProductCreate) -> Product:
        return await self._run(self._insert, "product", Product, {**data.model_dump(), "created_at": self.now()})

    async def update_product(self, product_id: str, partial: Dict[str, Any]) -> Optional[Product]:
        return await self._run(self._update, "product", Product, product_id, _merge_fields(partial))

    async def delete_product(self, product_id: str) -> bool:
        return await self._run(self._delete, "product", product_id)

    async def list_products_by_category(self, category: str) -> List[Product]:
        filt = {"category": {"$regex": f"^{re.escape(category)}$", "$options": "i"}}
        return await self._run(self._find, "product", Product, filt)

    async def search_products(self, query: str) -> List[Product]:
        filt = {"$or": [
            {"name": contains_pattern(query)},
            {"description": contains_pattern(query)},
            {"category": contains_pattern(query)},
        ]}
        return await self._run(self._find, "product", Product, filt)

    # Orders

    async def list_orders(self) -> List[Order]:
        return await self._run(self._find, "order", Order, {}, ("created_at", DESCENDING))

    async def get_order(self, order_id: str) -> Optional[Order]:
        return await self._run(self._get, "order", Order, order_id)

    async def create_order(self, data: OrderCreate) -> Order:
        now = self.now()
        values = {**data.model_dump(), "created_at": now, "updated_at": now}
        return await self._run(self._insert, "order", Order, values)

    async def update_order_status(self, order_id: str, status: str) -> Optional[Order]:
        changes = {"status": status, "updated_at": self.now()}
        return await self._run(self._update, "order", Order, order_id, changes)

    async def list_orders_by_status(self, status: str) -> List[Order]:
        return await self._run(self._find, "order", Order, {"status": status})

    # Blog posts

    async def list_blog_posts(self) -> List[BlogPost]:
        return await self._run(self._find, "blogpost", BlogPost, {}, ("created_at", DESCENDING))

    async def get_blog_post(self, post_id: str) -> Optional[BlogPost]:
        return await self._run(self._get, "blogpost", BlogPost, post_id)

    async def get_blog_post_by_slug(self, slug: str) -> Optional[BlogPost]:
        return await self._run(self._find_one, "blogpost", BlogPost, {"slug": slug})

    async def create_blog_post(self, data: BlogPostCreate) -> BlogPost:
        now = self.now()
        values = {**data.model_dump(), "created_at": now, "updated_at": now}
        return await self._run(self._insert, "blogpost", BlogPost, values)

    async def update_blog_post(self, post_id: str, partial: Dict[str, Any]) -> Optional[BlogPost]:
        changes = {**_merge_fields(partial), "updated_at": self.now()}
        return await self._run(self._update, "blogpost", BlogPost, post_id, changes)

    async def delete_blog_post(self, post_id: str) -> bool:
        return await self._run(self._delete, "blogpost", post_id)

    async def list_published_blog_posts(self) -> List[BlogPost]:
        filt = {"published": True}
        return await self._run(self._find, "blogpost", BlogPost, filt, ("created_at", DESCENDING))

    # Cart items

    async def list_cart_items(self, session_id: str) -> List[CartItem]:
        return await self._run(self._find, "cartitem", CartItem, {"session_id": session_id})

    async def add_cart_item(self, data: CartItemCreate) -> CartItem:
        return await self._run(self._upsert_cart_item, data)

    async def update_cart_item_quantity(self, item_id: str, quantity: int) -> Optional[CartItem]:
        return await self._run(self._update, "cartitem", CartItem, item_id, {"quantity": quantity})

    async def remove_cart_item(self, item_id: str) -> bool:
        return await self._run(self._delete, "cartitem", item_id)

    async def clear_cart(self, session_id: str) -> None:
        await self._run(self.db["cartitem"].delete_many, {"session_id": session_id})


def get_storage_from_env() -> Storage:
    database_url = os.getenv("DATABASE_URL")
    if not database_url:
        logger.info("DATABASE_URL not set, using in-memory storage")
        return MemoryStorage()
    database_name = os.getenv("DATABASE_NAME", "storefront")
    logger.info("Using MongoDB database %r", database_name)
    return MongoStorage(MongoClient(database_url)[database_name])


# ----------------------------------------------------------------------------
# Sample data (idempotent)
# ----------------------------------------------------------------------------

SAMPLE_PRODUCTS = [
    {
        "name": "Golden Elegance",
        "description": "A sophisticated blend of jasmine, vanilla, and amber",
        "price": "125.00",
        "image": "https://images.unsplash.com/photo-1563170351-be82bc888aa4?ixlib=rb-4.0.3&auto=format&fit=crop&w=800&h=800",
        "category": "Floral",
        "in_stock": True,
        "rating": "4.9",
        "review_count": 127,
        "tags": ["luxury", "floral", "evening"],
        "ingredients": "Jasmine, Vanilla, Amber, Rose Petals",
    },
    {
        "name": "Crystal Rose",
        "description": "Delicate rose petals with hints of bergamot and musk",
        "price": "150.00",
        "image": "https://images.unsplash.com/photo-1592945403244-b3fbafd7f539?ixlib=rb-4.0.3&auto=format&fit=crop&w=800&h=800",
        "category": "Rose",
        "in_stock": True,
        "rating": "4.7",
        "review_count": 89,
        "tags": ["limited", "rose", "romantic"],
        "ingredients": "Rose Petals, Bergamot, Musk, White Tea",
    },
    {
        "name": "Midnight Oud",
        "description": "Rich oud wood with spices and dark chocolate notes",
        "price": "200.00",
        "image": "https://images.unsplash.com/photo-1541643600914-78b084683601?ixlib=rb-4.0.3&auto=format&fit=crop&w=800&h=800",
        "category": "Oud",
        "in_stock": True,
        "rating": "5.0",
        "review_count": 156,
        "tags": ["new", "oud", "intense"],
        "ingredients": "Oud Wood, Spices, Dark Chocolate, Sandalwood",
    },
]

SAMPLE_BLOG_POSTS = [
    {
        "title": "The Art of Layering Fragrances",
        "slug": "art-of-layering-fragrances",
        "excerpt": "Learn how to create your unique signature scent by expertly layering different fragrances...",
        "content": "Fragrance layering is an art form that allows you to create a completely unique scent...",
        "image": "https://images.unsplash.com/photo-1556228578-8c89e6adf883?ixlib=rb-4.0.3&auto=format&fit=crop&w=600&h=400",
        "category": "Perfumery Guide",
        "author": "Isabella Martinez",
        "published": True,
    },
    {
        "title": "Rare Ingredients That Define Luxury",
        "slug": "rare-ingredients-luxury",
        "excerpt": "Discover the exotic and rare ingredients that make our fragrances truly exceptional...",
        "content": "In the world of luxury perfumery, the quality of ingredients makes all the difference...",
        "image": "https://images.unsplash.com/photo-1506905925346-21bda4d32df4?ixlib=rb-4.0.3&auto=format&fit=crop&w=600&h=400",
        "category": "Ingredients",
        "author": "Alexandre Dubois",
        "published": True,
    },
]


async def seed_sample_data(storage: Storage) -> Dict[str, int]:
    """Insert sample products and blog posts into empty collections."""
    created = {"products": 0, "blog_posts": 0}
    if not await storage.list_products():
        for p in SAMPLE_PRODUCTS:
            await storage.create_product(ProductCreate(**p))
        created["products"] = len(SAMPLE_PRODUCTS)
    if not await storage.list_blog_posts():
        for post in SAMPLE_BLOG_POSTS:
            await storage.create_blog_post(BlogPostCreate(**post))
        created["blog_posts"] = len(SAMPLE_BLOG_POSTS)
    if any(created.values()):
        logger.info("Seeded sample data: %s", created)
    return created
