import pytest

from schemas import BlogPostCreate, CartItemCreate, OrderCreate, ProductCreate
from tests.payloads import blog_payload, order_payload, product_payload

pytestmark = pytest.mark.anyio


# Products

async def test_create_product_assigns_id_and_timestamp(storage):
    first = await storage.create_product(ProductCreate(**product_payload()))
    second = await storage.create_product(ProductCreate(**product_payload(name="Crystal Rose")))

    assert first.id and second.id and first.id != second.id
    assert first.created_at is not None
    assert first.name == "Golden Elegance"
    assert first.price == "125.00"
    assert first.tags == ["luxury", "evening"]
    assert first.rating == "0"
    assert first.review_count == 0
    assert first.in_stock is True


async def test_get_returns_created_product(storage):
    created = await storage.create_product(ProductCreate(**product_payload(name="Test", price="10.00")))
    assert await storage.get_product(created.id) == created
    assert await storage.get_product("missing") is None


async def test_list_products_in_insertion_order(storage):
    names = ["Golden Elegance", "Crystal Rose", "Midnight Oud"]
    for name in names:
        await storage.create_product(ProductCreate(**product_payload(name=name)))
    assert [p.name for p in await storage.list_products()] == names


async def test_update_product_merges_fields(storage):
    created = await storage.create_product(ProductCreate(**product_payload()))
    updated = await storage.update_product(created.id, {"price": "140.00", "in_stock": False})

    assert updated.id == created.id
    assert updated.price == "140.00"
    assert updated.in_stock is False
    assert updated.name == created.name
    assert updated.created_at == created.created_at
    assert await storage.get_product(created.id) == updated


async def test_update_missing_product_does_not_create(storage):
    assert await storage.update_product("missing", {"name": "Ghost"}) is None
    assert await storage.list_products() == []


async def test_update_cannot_overwrite_generated_fields(storage):
    created = await storage.create_product(ProductCreate(**product_payload()))
    updated = await storage.update_product(created.id, {"id": "other", "name": "Renamed"})
    assert updated.id == created.id
    assert await storage.get_product("other") is None


async def test_delete_product_only_once(storage):
    created = await storage.create_product(ProductCreate(**product_payload()))
    assert await storage.delete_product(created.id) is True
    assert await storage.delete_product(created.id) is False
    assert await storage.get_product(created.id) is None


async def test_products_by_category_is_case_insensitive_exact(storage):
    await storage.create_product(ProductCreate(**product_payload(name="A", category="Floral")))
    await storage.create_product(ProductCreate(**product_payload(name="B", category="Floral Musk")))
    await storage.create_product(ProductCreate(**product_payload(name="C", category="Oud")))

    assert [p.name for p in await storage.list_products_by_category("floral")] == ["A"]
    assert await storage.list_products_by_category("wood") == []


async def test_search_matches_name_description_or_category(storage):
    test = await storage.create_product(ProductCreate(**product_payload(
        name="Test", description="Plain", price="10.00", category="Floral")))
    oud = await storage.create_product(ProductCreate(**product_payload(
        name="Midnight Oud", description="Rich wood with spices", category="Oud")))

    assert [p.id for p in await storage.search_products("floral")] == [test.id]
    assert [p.id for p in await storage.search_products("SPICES")] == [oud.id]
    assert [p.id for p in await storage.search_products("midnight")] == [oud.id]
    assert await storage.search_products("nomatch") == []


async def test_search_treats_query_literally(storage):
    await storage.create_product(ProductCreate(**product_payload(name="Rose (Limited)")))
    assert len(await storage.search_products("(limited)")) == 1
    assert await storage.search_products(".*") == []


# Orders

async def test_create_order_defaults_to_pending(storage):
    order = await storage.create_order(OrderCreate(**order_payload()))
    assert order.status == "pending"
    assert order.created_at == order.updated_at
    assert order.items[0].name == "Golden Elegance"
    assert order.shipping_address.city == "Paris"
    assert await storage.get_order(order.id) == order


async def test_list_orders_newest_first(storage):
    created = [
        await storage.create_order(OrderCreate(**order_payload(customer_name=name)))
        for name in ("t1", "t2", "t3")
    ]
    listed = await storage.list_orders()
    assert [o.customer_name for o in listed] == ["t3", "t2", "t1"]
    assert [o.id for o in listed] == [o.id for o in reversed(created)]


async def test_update_order_status_allows_any_transition(storage):
    order = await storage.create_order(OrderCreate(**order_payload()))

    delivered = await storage.update_order_status(order.id, "delivered")
    assert delivered.status == "delivered"
    assert delivered.updated_at > order.updated_at
    assert delivered.created_at == order.created_at

    back = await storage.update_order_status(order.id, "pending")
    assert back.status == "pending"
    assert await storage.update_order_status("missing", "shipped") is None


async def test_orders_by_status(storage):
    first = await storage.create_order(OrderCreate(**order_payload()))
    await storage.create_order(OrderCreate(**order_payload()))
    await storage.update_order_status(first.id, "shipped")

    shipped = await storage.list_orders_by_status("shipped")
    assert [o.id for o in shipped] == [first.id]
    assert len(await storage.list_orders_by_status("pending")) == 1
    assert await storage.list_orders_by_status("Shipped") == []


# Blog posts

async def test_blog_posts_newest_first(storage):
    for slug in ("t1", "t2", "t3"):
        await storage.create_blog_post(BlogPostCreate(**blog_payload(slug=slug)))
    assert [p.slug for p in await storage.list_blog_posts()] == ["t3", "t2", "t1"]


async def test_get_blog_post_by_slug(storage):
    post = await storage.create_blog_post(BlogPostCreate(**blog_payload()))
    assert await storage.get_blog_post_by_slug("art-of-layering-fragrances") == post
    assert await storage.get_blog_post(post.id) == post
    assert await storage.get_blog_post_by_slug("unknown") is None


async def test_published_posts_exclude_drafts(storage):
    await storage.create_blog_post(BlogPostCreate(**blog_payload(slug="a", published=True)))
    await storage.create_blog_post(BlogPostCreate(**blog_payload(slug="draft", published=False)))
    await storage.create_blog_post(BlogPostCreate(**blog_payload(slug="b", published=True)))

    published = await storage.list_published_blog_posts()
    assert [p.slug for p in published] == ["b", "a"]
    assert all(p.published for p in published)


async def test_blog_post_defaults_to_unpublished(storage):
    data = blog_payload()
    del data["published"]
    post = await storage.create_blog_post(BlogPostCreate(**data))
    assert post.published is False
    assert await storage.list_published_blog_posts() == []


async def test_update_blog_post_refreshes_updated_at(storage):
    post = await storage.create_blog_post(BlogPostCreate(**blog_payload(published=False)))
    updated = await storage.update_blog_post(post.id, {"published": True, "title": "New title"})

    assert updated.published is True
    assert updated.title == "New title"
    assert updated.slug == post.slug
    assert updated.updated_at > post.updated_at
    assert updated.created_at == post.created_at
    assert await storage.update_blog_post("missing", {"title": "x"}) is None


async def test_delete_blog_post(storage):
    post = await storage.create_blog_post(BlogPostCreate(**blog_payload()))
    assert await storage.delete_blog_post(post.id) is True
    assert await storage.delete_blog_post(post.id) is False
    assert await storage.get_blog_post_by_slug(post.slug) is None


# Cart items

async def test_add_same_product_merges_quantity(storage):
    first = await storage.add_cart_item(CartItemCreate(session_id="s1", product_id="p1", quantity=2))
    merged = await storage.add_cart_item(CartItemCreate(session_id="s1", product_id="p1", quantity=3))

    assert merged.id == first.id
    assert merged.quantity == 5
    items = await storage.list_cart_items("s1")
    assert len(items) == 1
    assert items[0].quantity == 5


async def test_same_product_in_other_session_is_separate(storage):
    a = await storage.add_cart_item(CartItemCreate(session_id="s1", product_id="p1"))
    b = await storage.add_cart_item(CartItemCreate(session_id="s2", product_id="p1"))
    assert a.id != b.id
    assert a.quantity == b.quantity == 1


async def test_cart_item_may_reference_missing_product(storage):
    item = await storage.add_cart_item(CartItemCreate(session_id="s1", product_id="no-such-product"))
    assert [i.id for i in await storage.list_cart_items("s1")] == [item.id]


async def test_update_cart_quantity_is_permissive(storage):
    item = await storage.add_cart_item(CartItemCreate(session_id="s1", product_id="p1"))
    assert (await storage.update_cart_item_quantity(item.id, 7)).quantity == 7
    assert (await storage.update_cart_item_quantity(item.id, 0)).quantity == 0
    assert await storage.update_cart_item_quantity("missing", 2) is None


async def test_remove_cart_item(storage):
    item = await storage.add_cart_item(CartItemCreate(session_id="s1", product_id="p1"))
    assert await storage.remove_cart_item(item.id) is True
    assert await storage.remove_cart_item(item.id) is False
    assert await storage.list_cart_items("s1") == []


async def test_clear_cart_only_touches_one_session(storage):
    await storage.add_cart_item(CartItemCreate(session_id="s1", product_id="p1"))
    await storage.add_cart_item(CartItemCreate(session_id="s1", product_id="p2"))
    kept = await storage.add_cart_item(CartItemCreate(session_id="s2", product_id="p1"))

    assert await storage.clear_cart("s1") is None
    assert await storage.list_cart_items("s1") == []
    assert [i.id for i in await storage.list_cart_items("s2")] == [kept.id]

    await storage.clear_cart("s1")
    await storage.clear_cart("never-used")
    assert len(await storage.list_cart_items("s2")) == 1


async def test_deleting_product_leaves_cart_items(storage):
    product = await storage.create_product(ProductCreate(**product_payload()))
    item = await storage.add_cart_item(CartItemCreate(session_id="s1", product_id=product.id))
    await storage.delete_product(product.id)
    assert [i.id for i in await storage.list_cart_items("s1")] == [item.id]
