import logging
import os
from decimal import ROUND_HALF_UP, Context, Decimal, localcontext
from typing import Dict, List, Optional

from fastapi import APIRouter, Depends, FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, EmailStr

from database import Storage, get_storage_from_env, seed_sample_data
from schemas import (
    BlogPost,
    BlogPostCreate,
    BlogPostUpdate,
    CartItem,
    CartItemCreate,
    CartQuantityUpdate,
    Order,
    OrderCreate,
    OrderItem,
    OrderStatus,
    OrderStatusUpdate,
    Product,
    ProductCreate,
    ProductUpdate,
    ShippingAddress,
)

logger = logging.getLogger(__name__)

TAX_RATE = Decimal("0.08")
CENTS = Decimal("0.01")
# enough digits for totals of 12-digit prices times large quantities
MONEY_CONTEXT = Context(prec=40)

router = APIRouter(prefix="/api")


def get_storage(request: Request) -> Storage:
    return request.app.state.storage


def seed_on_startup() -> bool:
    return os.getenv("SEED_SAMPLE_DATA", "1").lower() not in ("0", "false", "no")


def create_app(storage: Optional[Storage] = None, seed: Optional[bool] = None) -> FastAPI:
    app = FastAPI(title="Luxury Storefront API")

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.storage = storage if storage is not None else get_storage_from_env()
    app.include_router(router)
    app.add_api_route("/", read_root, methods=["GET"])
    app.add_api_route("/test", database_status, methods=["GET"])

    if seed is None:
        seed = seed_on_startup()
    if seed:
        @app.on_event("startup")
        async def startup_event():
            await seed_sample_data(app.state.storage)

    return app


# Utilities

def update_fields(body: BaseModel) -> dict:
    return body.model_dump(exclude_unset=True)


def format_amount(amount: Decimal) -> str:
    with localcontext(MONEY_CONTEXT):
        return str(amount.quantize(CENTS, rounding=ROUND_HALF_UP))


def calc_subtotal(items: List[OrderItem]) -> Decimal:
    with localcontext(MONEY_CONTEXT):
        return sum((Decimal(i.price) * i.quantity for i in items), Decimal("0"))


def calc_total(items: List[OrderItem]) -> Decimal:
    # Shipping is free; tax applies to goods.
    subtotal = calc_subtotal(items)
    with localcontext(MONEY_CONTEXT):
        return (subtotal + subtotal * TAX_RATE).quantize(CENTS, rounding=ROUND_HALF_UP)


def snapshot_items(cart: List[CartItem], products: Dict[str, Product]) -> List[OrderItem]:
    """Copy name, price and image from the current catalog into order items.

    Cart lines whose product no longer exists are skipped.
    """
    items: List[OrderItem] = []
    for line in cart:
        product = products.get(line.product_id)
        if product is None:
            logger.warning("Skipping cart item %s: product %s no longer exists", line.id, line.product_id)
            continue
        items.append(OrderItem(
            product_id=product.id,
            name=product.name,
            price=product.price,
            quantity=line.quantity,
            image=product.image,
        ))
    return items


# ---------------
# Products
# ---------------

@router.get("/products", response_model=List[Product])
async def list_products(
    category: Optional[str] = None,
    search: Optional[str] = None,
    storage: Storage = Depends(get_storage),
):
    if search:
        products = await storage.search_products(search)
        if category:
            products = [p for p in products if p.category.lower() == category.lower()]
        return products
    if category:
        return await storage.list_products_by_category(category)
    return await storage.list_products()


@router.get("/products/{product_id}", response_model=Product)
async def get_product(product_id: str, storage: Storage = Depends(get_storage)):
    product = await storage.get_product(product_id)
    if not product:
        raise HTTPException(status_code=404, detail="Product not found")
    return product


@router.post("/products", response_model=Product, status_code=201)
async def create_product(payload: ProductCreate, storage: Storage = Depends(get_storage)):
    return await storage.create_product(payload)


@router.put("/products/{product_id}", response_model=Product)
async def update_product(product_id: str, payload: ProductUpdate, storage: Storage = Depends(get_storage)):
    product = await storage.update_product(product_id, update_fields(payload))
    if not product:
        raise HTTPException(status_code=404, detail="Product not found")
    return product


@router.delete("/products/{product_id}")
async def delete_product(product_id: str, storage: Storage = Depends(get_storage)):
    if not await storage.delete_product(product_id):
        raise HTTPException(status_code=404, detail="Product not found")
    return {"deleted": True}


# ---------------
# Orders
# ---------------

@router.get("/orders", response_model=List[Order])
async def list_orders(status: Optional[OrderStatus] = None, storage: Storage = Depends(get_storage)):
    if status:
        return await storage.list_orders_by_status(status)
    return await storage.list_orders()


@router.get("/orders/{order_id}", response_model=Order)
async def get_order(order_id: str, storage: Storage = Depends(get_storage)):
    order = await storage.get_order(order_id)
    if not order:
        raise HTTPException(status_code=404, detail="Order not found")
    return order


@router.post("/orders", response_model=Order, status_code=201)
async def create_order(payload: OrderCreate, storage: Storage = Depends(get_storage)):
    order = await storage.create_order(payload)
    logger.info("Created order %s for %s (%s)", order.id, order.customer_email, order.total_amount)
    return order


@router.put("/orders/{order_id}/status", response_model=Order)
async def update_order_status(order_id: str, payload: OrderStatusUpdate, storage: Storage = Depends(get_storage)):
    order = await storage.update_order_status(order_id, payload.status)
    if not order:
        raise HTTPException(status_code=404, detail="Order not found")
    return order


class CheckoutRequest(BaseModel):
    session_id: str
    customer_name: str
    customer_email: EmailStr
    customer_phone: Optional[str] = None
    shipping_address: ShippingAddress


@router.post("/checkout", response_model=Order, status_code=201)
async def checkout(payload: CheckoutRequest, storage: Storage = Depends(get_storage)):
    cart = await storage.list_cart_items(payload.session_id)
    products = {}
    for line in cart:
        product = await storage.get_product(line.product_id)
        if product:
            products[product.id] = product

    items = snapshot_items(cart, products)
    if not items:
        raise HTTPException(status_code=400, detail="Cart is empty")

    order = await storage.create_order(OrderCreate(
        customer_name=payload.customer_name,
        customer_email=payload.customer_email,
        customer_phone=payload.customer_phone,
        shipping_address=payload.shipping_address,
        items=items,
        total_amount=format_amount(calc_total(items)),
    ))
    await storage.clear_cart(payload.session_id)
    logger.info("Checked out session %s into order %s", payload.session_id, order.id)
    return order


# ---------------
# Blog
# ---------------

@router.get("/blog", response_model=List[BlogPost])
async def list_blog_posts(published: bool = False, storage: Storage = Depends(get_storage)):
    if published:
        return await storage.list_published_blog_posts()
    return await storage.list_blog_posts()


@router.get("/blog/{slug}", response_model=BlogPost)
async def get_blog_post(slug: str, storage: Storage = Depends(get_storage)):
    post = await storage.get_blog_post_by_slug(slug)
    if not post:
        raise HTTPException(status_code=404, detail="Blog post not found")
    return post


@router.post("/blog", response_model=BlogPost, status_code=201)
async def create_blog_post(payload: BlogPostCreate, storage: Storage = Depends(get_storage)):
    if await storage.get_blog_post_by_slug(payload.slug):
        raise HTTPException(status_code=409, detail="Slug already in use")
    return await storage.create_blog_post(payload)


@router.put("/blog/{post_id}", response_model=BlogPost)
async def update_blog_post(post_id: str, payload: BlogPostUpdate, storage: Storage = Depends(get_storage)):
    if not await storage.get_blog_post(post_id):
        raise HTTPException(status_code=404, detail="Blog post not found")
    changes = update_fields(payload)
    if "slug" in changes:
        taken = await storage.get_blog_post_by_slug(changes["slug"])
        if taken and taken.id != post_id:
            raise HTTPException(status_code=409, detail="Slug already in use")
    post = await storage.update_blog_post(post_id, changes)
    if not post:
        raise HTTPException(status_code=404, detail="Blog post not found")
    return post


@router.delete("/blog/{post_id}")
async def delete_blog_post(post_id: str, storage: Storage = Depends(get_storage)):
    if not await storage.delete_blog_post(post_id):
        raise HTTPException(status_code=404, detail="Blog post not found")
    return {"deleted": True}


# ---------------
# Cart
# ---------------

@router.get("/cart/{session_id}", response_model=List[CartItem])
async def get_cart(session_id: str, storage: Storage = Depends(get_storage)):
    return await storage.list_cart_items(session_id)


@router.post("/cart", response_model=CartItem)
async def add_to_cart(item: CartItemCreate, storage: Storage = Depends(get_storage)):
    return await storage.add_cart_item(item)


@router.put("/cart/{item_id}", response_model=CartItem)
async def update_cart_item(item_id: str, payload: CartQuantityUpdate, storage: Storage = Depends(get_storage)):
    item = await storage.update_cart_item_quantity(item_id, payload.quantity)
    if not item:
        raise HTTPException(status_code=404, detail="Cart item not found")
    return item


@router.delete("/cart/session/{session_id}")
async def clear_cart(session_id: str, storage: Storage = Depends(get_storage)):
    await storage.clear_cart(session_id)
    logger.info("Cleared cart for session %s", session_id)
    return {"cleared": True}


@router.delete("/cart/{item_id}")
async def remove_from_cart(item_id: str, storage: Storage = Depends(get_storage)):
    if not await storage.remove_cart_item(item_id):
        raise HTTPException(status_code=404, detail="Cart item not found")
    return {"deleted": True}


# ---------------
# Admin
# ---------------

@router.get("/dashboard/stats")
async def dashboard_stats(storage: Storage = Depends(get_storage)):
    orders = await storage.list_orders()
    products = await storage.list_products()
    with localcontext(MONEY_CONTEXT):
        revenue = sum((Decimal(o.total_amount) for o in orders), Decimal("0"))
    customers = {o.customer_email.lower() for o in orders}
    return {
        "total_orders": len(orders),
        "total_revenue": float(format_amount(revenue)),
        "total_products": len(products),
        "total_customers": len(customers),
    }


@router.post("/seed")
async def seed_demo(storage: Storage = Depends(get_storage)):
    """Seed sample products and blog posts if collections are empty."""
    created = await seed_sample_data(storage)
    return {"seeded": created}


# ---------------
# Root/Test
# ---------------

async def read_root():
    return {"message": "Luxury Storefront API is running"}


async def database_status(storage: Storage = Depends(get_storage)):
    response = {
        "backend": "✅ Running",
        "storage": storage.kind,
        "collections": {},
    }
    try:
        response["collections"] = {
            "product": len(await storage.list_products()),
            "order": len(await storage.list_orders()),
            "blogpost": len(await storage.list_blog_posts()),
        }
        response["database"] = "✅ Connected & Working"
    except Exception as e:
        logger.exception("Storage health check failed")
        response["database"] = f"❌ Error: {str(e)[:50]}"
    return response


app = create_app()


if __name__ == "__main__":
    import uvicorn
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    port = int(os.getenv("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port)
