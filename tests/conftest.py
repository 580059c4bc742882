"""
Shared test fixtures.

Fakes live in tests/helpers.py.
"""

import sys
from pathlib import Path

# Add project root to Python path
root_dir = Path(__file__).parent.parent
sys.path.insert(0, str(root_dir))

from typing import List

import pytest

from variantmatrix.config import Config
from variantmatrix.models import Dimension, Value


# ===================
# FIXTURES
# ===================

@pytest.fixture
def cfg(tmp_path) -> Config:
    return Config(
        retries=2,
        retry_delay_ms=10,
        timeout_ms=1000,
        concurrency=3,
        product_concurrency=1,
        output_dir=str(tmp_path / "out"),
    )


@pytest.fixture
def color_size_dims() -> List[Dimension]:
    return [
        Dimension(id="color", values=(Value(id="A"), Value(id="B"))),
        Dimension(id="size", values=(Value(id="S"), Value(id="M"))),
    ]


@pytest.fixture
def base_payload() -> dict:
    """Demandware NonCachedAttributes response with colour and size."""
    return {
        "product": {
            "productName": "Jet Set Tote",
            "brand": "MICHAEL Michael Kors",
            "variationAttributes": [
                {
                    "id": "color",
                    "values": [
                        {
                            "value": "0001",
                            "displayValue": "Black",
                            "selectable": True,
                            "inStock": True,
                            "images": {"swatch": [{"absURL": "https://img.example/0001.jpg"}]},
                        },
                        {"value": "0200", "displayValue": "Luggage", "selectable": True, "inStock": False},
                        {"value": "0300", "displayValue": "Retired", "selectable": False},
                    ],
                },
                {
                    "id": "size",
                    "values": [
                        {"value": "S", "displayValue": "Small", "selectable": True},
                        {"value": "L", "displayValue": "Large"},
                    ],
                },
            ],
        }
    }


@pytest.fixture
def variation_payload() -> dict:
    """Demandware Product-Variation response for one selection."""
    return {
        "product": {
            "productName": "Jet Set Tote",
            "selectedVariationProductId": "196163000001",
            "UPC": "196163000001",
            "available": True,
            "isNotifyMeActive": False,
            "availableForInStorePickup": False,
            "selectedProductUrlNoQuantity": "https://www.michaelkors.com/jet-set/35S5S2ZC7B.html",
            "price": {
                "sales": {"value": 99.0, "formatted": "$99.00", "currency": "USD"},
                "list": {"value": 198.0, "formatted": "$198.00", "currency": "USD"},
                "discount": 50,
            },
        }
    }
