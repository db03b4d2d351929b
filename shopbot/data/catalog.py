"""Product catalog loader.

Reads the static product list once at startup and exposes it through a
read-only repository shared by the matcher, the prompt builder and the
Gateway (for identifier resolution).
"""

import json
import os
from collections.abc import Iterator, Sequence
from pathlib import Path

import structlog
from pydantic import BaseModel, ConfigDict, Field, ValidationError

logger = structlog.get_logger(__name__)

DEFAULT_CATALOG_PATH = Path(__file__).resolve().parent / "products.json"


class CatalogError(Exception):
    """Catalog file is malformed or contains invalid products."""
    pass


class Product(BaseModel):
    """Immutable catalog entry."""
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: str = Field(..., min_length=1)
    name: str
    category: str
    description: str = ""
    price: float = Field(..., ge=0)
    rating: float = Field(0.0, ge=0, le=5)
    reviews: int = Field(0, ge=0)
    image_url: str | None = Field(default=None, alias="imageUrl")
    tags: tuple[str, ...] = ()
    is_new: bool | None = Field(default=None, alias="isNew")
    discount: float | None = Field(default=None, ge=0, le=100)
    pros: tuple[str, ...] = ()
    cons: tuple[str, ...] = ()
    ar_model_url: str | None = Field(default=None, alias="arModelUrl")


class ProductRepository:
    """Ordered, read-only collection of products keyed by identifier."""

    def __init__(self, products: Sequence[Product]):
        self._products = tuple(products)
        self._by_id: dict[str, Product] = {}
        for product in self._products:
            if product.id in self._by_id:
                raise CatalogError(f"Duplicate product id: {product.id}")
            self._by_id[product.id] = product

    def all(self) -> tuple[Product, ...]:
        return self._products

    def get(self, product_id: str) -> Product | None:
        return self._by_id.get(product_id)

    def __contains__(self, product_id: object) -> bool:
        return product_id in self._by_id

    def __iter__(self) -> Iterator[Product]:
        return iter(self._products)

    def __len__(self) -> int:
        return len(self._products)


def load_catalog(path: str | Path | None = None) -> ProductRepository:
    """Load the product catalog JSON into a repository.

    Args:
        path: Catalog file. Defaults to CATALOG_PATH env var, then the
            bundled products.json.

    Returns:
        ProductRepository preserving file order.

    Raises:
        FileNotFoundError: If the catalog file doesn't exist.
        CatalogError: If the file isn't a JSON list of valid products.
    """
    catalog_path = Path(path or os.environ.get("CATALOG_PATH") or DEFAULT_CATALOG_PATH)

    try:
        raw = json.loads(catalog_path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        raise CatalogError(f"Catalog is not valid JSON: {e}")

    if not isinstance(raw, list):
        raise CatalogError("Catalog must be a JSON list of products")

    products = []
    for index, entry in enumerate(raw):
        try:
            products.append(Product.model_validate(entry))
        except ValidationError as e:
            raise CatalogError(f"Invalid product at index {index}: {e}")

    repository = ProductRepository(products)
    logger.info("catalog.loaded", path=str(catalog_path), products=len(repository))
    return repository


def catalog_as_json(products: Sequence[Product]) -> str:
    """Serialize products for the LLM system instruction.

    Uses the catalog's own field names so the model sees the same ids and
    attributes the rest of the storefront uses.
    """
    data = [p.model_dump(mode="json", by_alias=True, exclude_none=True) for p in products]
    return json.dumps(data, indent=2, ensure_ascii=False)
