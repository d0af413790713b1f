"""Profile-aware filtering of catalog models and fabrics."""

from __future__ import annotations

from typing import List, Optional, Sequence

from models.entities import Fabric, Model
from models.taxonomy import normalize_label


def filter_models(
    models: Sequence[Model],
    body_shape: Optional[str] = None,
    category: Optional[str] = None,
) -> List[Model]:
    """Keep models of ``category`` that list ``body_shape`` as compatible.

    Either criterion is skipped when it is not given.
    """

    shape = normalize_label(body_shape) if body_shape else None
    wanted_category = normalize_label(category) if category else None
    return [
        model
        for model in models
        if (wanted_category is None or model.category == wanted_category)
        and (shape is None or shape in model.body_shapes)
    ]


def filter_fabrics(
    fabrics: Sequence[Fabric],
    skin_tone: Optional[str] = None,
    texture: Optional[str] = None,
) -> List[Fabric]:
    """Keep fabrics of ``texture``, ranking those suited to ``skin_tone`` first.

    The sort is stable, so catalog order holds within each group.
    """

    tone = normalize_label(skin_tone) if skin_tone else None
    wanted_texture = normalize_label(texture) if texture else None
    selected = [
        fabric
        for fabric in fabrics
        if wanted_texture is None or fabric.texture == wanted_texture
    ]
    if tone is None:
        return selected
    return sorted(selected, key=lambda fabric: tone not in fabric.skin_tones)


__all__ = ["filter_models", "filter_fabrics"]
