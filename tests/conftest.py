"""Shared fixtures for all tests."""

import base64

import pytest

from shopbot.core.matcher import LocalMatcher
from shopbot.core.media import ImageAttachment
from shopbot.data.catalog import Product, ProductRepository


@pytest.fixture
def sample_products() -> list[Product]:
    """Five-product catalog covering name, category and tag matches."""
    return [
        Product(
            id="p1", name="QuantumX Noise Cancelling Headphones", category="Electronics",
            description="Noise cancellation with 30-hour battery.", price=299.99, rating=4.8,
            reviews=1204, tags=("audio", "wireless"), is_new=True,
        ),
        Product(
            id="p2", name="UltraBook Pro 15", category="Computers",
            description="Lightweight laptop.", price=1299.0, rating=4.9, reviews=850,
            tags=("laptop", "work", "computer"),
        ),
        Product(
            id="p3", name="ErgoFlex Mesh Chair", category="Furniture",
            description="Ergonomic office chair.", price=199.5, rating=4.5, reviews=340,
            tags=("office", "comfort", "chair"),
        ),
        Product(
            id="p4", name="Gaming Mouse Wireless", category="Computers",
            description="20k DPI sensor.", price=89.99, rating=4.7, reviews=600,
            tags=("gaming", "mouse"),
        ),
        Product(
            id="p5", name="Minimalist Desk Lamp", category="Furniture",
            description="Wireless charging base.", price=45.0, rating=4.2, reviews=89,
            tags=("lighting", "office", "decor"),
        ),
    ]


@pytest.fixture
def repository(sample_products) -> ProductRepository:
    return ProductRepository(sample_products)


@pytest.fixture
def matcher(repository) -> LocalMatcher:
    return LocalMatcher(repository)


@pytest.fixture
def sample_image() -> ImageAttachment:
    return ImageAttachment(mime_type="image/png", data=base64.b64encode(b"\x89PNG fake image").decode())
