def product_payload(**overrides):
    data = {
        "name": "Golden Elegance",
        "description": "A sophisticated blend of jasmine, vanilla, and amber",
        "price": "125.00",
        "image": "https://example.com/golden.jpg",
        "category": "Floral",
        "tags": ["luxury", "evening"],
    }
    data.update(overrides)
    return data


def blog_payload(**overrides):
    data = {
        "title": "The Art of Layering Fragrances",
        "slug": "art-of-layering-fragrances",
        "excerpt": "Create your signature scent",
        "content": "Fragrance layering is an art form...",
        "image": "https://example.com/layering.jpg",
        "category": "Perfumery Guide",
        "author": "Isabella Martinez",
        "published": True,
    }
    data.update(overrides)
    return data


def order_payload(**overrides):
    data = {
        "customer_name": "Ada Lovelace",
        "customer_email": "ada@example.com",
        "shipping_address": {
            "street": "1 Rue de la Paix",
            "city": "Paris",
            "state": "IDF",
            "zip_code": "75002",
            "country": "France",
        },
        "items": [
            {"product_id": "p1", "name": "Golden Elegance", "price": "125.00", "quantity": 1, "image": ""},
        ],
        "total_amount": "135.00",
    }
    data.update(overrides)
    return data
