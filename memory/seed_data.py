"""Demo catalog loaded into an empty store."""

from __future__ import annotations

import logging
from typing import Any, Dict, List

from memory.entity_store import EntityStore
from tryon_app.logging_config import get_logger, log_event

LOGGER = get_logger(__name__)

_UNSPLASH = "https://images.unsplash.com"

SEED_MODELS: List[Dict[str, Any]] = [
    {
        "name": "Classic Summer Dress",
        "image_url": f"{_UNSPLASH}/photo-1595777457583-95e059d581b8?w=400&h=600&fit=crop",
        "category": "casual",
        "body_shapes": ["hourglass", "pear", "rectangle"],
        "description": "Light and breezy summer dress perfect for warm days",
    },
    {
        "name": "Elegant Evening Gown",
        "image_url": f"{_UNSPLASH}/photo-1566174053879-31528523f8ae?w=400&h=600&fit=crop",
        "category": "formal",
        "body_shapes": ["hourglass", "inverted-triangle"],
        "description": "Sophisticated gown for special occasions",
    },
    {
        "name": "Casual Denim Jacket",
        "image_url": f"{_UNSPLASH}/photo-1551028719-00167b16eac5?w=400&h=600&fit=crop",
        "category": "casual",
        "body_shapes": ["rectangle", "inverted-triangle", "apple"],
        "description": "Versatile denim jacket for everyday wear",
    },
    {
        "name": "Traditional Saree",
        "image_url": f"{_UNSPLASH}/photo-1610030469983-98e550d6193c?w=400&h=600&fit=crop",
        "category": "ethnic",
        "body_shapes": ["hourglass", "pear", "rectangle"],
        "description": "Beautiful traditional saree with modern draping",
    },
    {
        "name": "Party Cocktail Dress",
        "image_url": f"{_UNSPLASH}/photo-1566174053879-31528523f8ae?w=400&h=600&fit=crop",
        "category": "party",
        "body_shapes": ["hourglass", "apple", "pear"],
        "description": "Stunning cocktail dress for evening parties",
    },
    {
        "name": "Athletic Sportswear Set",
        "image_url": f"{_UNSPLASH}/photo-1517836357463-d25dfeac3438?w=400&h=600&fit=crop",
        "category": "sportswear",
        "body_shapes": ["rectangle", "inverted-triangle", "hourglass"],
        "description": "Comfortable sportswear for active lifestyle",
    },
    {
        "name": "Business Formal Blazer",
        "image_url": f"{_UNSPLASH}/photo-1591369822096-ffd140ec948f?w=400&h=600&fit=crop",
        "category": "formal",
        "body_shapes": ["rectangle", "inverted-triangle", "apple"],
        "description": "Professional blazer for business meetings",
    },
    {
        "name": "Bohemian Maxi Dress",
        "image_url": f"{_UNSPLASH}/photo-1572804013309-59a88b7e92f1?w=400&h=600&fit=crop",
        "category": "casual",
        "body_shapes": ["pear", "rectangle", "apple"],
        "description": "Flowing maxi dress with bohemian prints",
    },
]

SEED_FABRICS: List[Dict[str, Any]] = [
    {
        "name": "Soft Cotton Blue",
        "image_url": f"{_UNSPLASH}/photo-1586105251261-72a756497a11?w=400&h=400&fit=crop",
        "texture": "cotton",
        "skin_tones": ["fair", "light", "medium"],
        "price": 45,
        "description": "Breathable cotton fabric in calming blue",
    },
    {
        "name": "Luxe Silk Ivory",
        "image_url": f"{_UNSPLASH}/photo-1558769132-cb1aea56c9fd?w=400&h=400&fit=crop",
        "texture": "silk",
        "skin_tones": ["fair", "light", "olive"],
        "price": 89,
        "description": "Premium silk with elegant drape",
    },
    {
        "name": "Warm Wool Burgundy",
        "image_url": f"{_UNSPLASH}/photo-1507682119456-c34f4913c06b?w=400&h=400&fit=crop",
        "texture": "wool",
        "skin_tones": ["medium", "olive", "tan"],
        "price": 75,
        "description": "Cozy wool blend in rich burgundy",
    },
    {
        "name": "Classic Denim Indigo",
        "image_url": f"{_UNSPLASH}/photo-1582418702059-97ebafb35d09?w=400&h=400&fit=crop",
        "texture": "denim",
        "skin_tones": ["light", "medium", "tan"],
        "price": 55,
        "description": "Durable denim in classic indigo",
    },
    {
        "name": "Airy Linen Beige",
        "image_url": f"{_UNSPLASH}/photo-1586105251261-72a756497a11?w=400&h=400&fit=crop",
        "texture": "linen",
        "skin_tones": ["olive", "tan", "deep"],
        "price": 52,
        "description": "Light linen perfect for summer",
    },
    {
        "name": "Sleek Polyester Black",
        "image_url": f"{_UNSPLASH}/photo-1558769132-cb1aea56c9fd?w=400&h=400&fit=crop",
        "texture": "polyester",
        "skin_tones": ["fair", "light", "medium", "olive", "tan", "deep"],
        "price": 38,
        "description": "Versatile polyester in timeless black",
    },
    {
        "name": "Delicate Chiffon Pink",
        "image_url": f"{_UNSPLASH}/photo-1507682119456-c34f4913c06b?w=400&h=400&fit=crop",
        "texture": "chiffon",
        "skin_tones": ["fair", "light", "medium"],
        "price": 65,
        "description": "Flowing chiffon in soft pink",
    },
    {
        "name": "Rich Velvet Emerald",
        "image_url": f"{_UNSPLASH}/photo-1582418702059-97ebafb35d09?w=400&h=400&fit=crop",
        "texture": "velvet",
        "skin_tones": ["olive", "tan", "deep"],
        "price": 95,
        "description": "Luxurious velvet in deep emerald",
    },
]


def seed_catalog(store: EntityStore) -> bool:
    """Load the demo catalog unless the store already holds models."""

    if store.list_models():
        log_event(LOGGER, logging.INFO, "catalog_seed_skipped", reason="already seeded")
        return False

    for model in SEED_MODELS:
        store.create_model(**model)
    for fabric in SEED_FABRICS:
        store.create_fabric(**fabric)
    log_event(
        LOGGER,
        logging.INFO,
        "catalog_seeded",
        model_count=len(SEED_MODELS),
        fabric_count=len(SEED_FABRICS),
    )
    return True


__all__ = ["SEED_MODELS", "SEED_FABRICS", "seed_catalog"]
