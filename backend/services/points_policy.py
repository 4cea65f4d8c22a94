"""
Points Policy - (category, weight) -> integer point award

Pure and deterministic. Used at submission time to fix a request's
calculated_points and by the API for point previews.
"""
import math
from typing import Dict, Union

from models.domain.pickup import WasteCategory

# Points per kilogram for each category
POINTS_PER_KG: Dict[WasteCategory, int] = {
    WasteCategory.SMARTPHONES_TABLETS: 50,
    WasteCategory.LAPTOPS_COMPUTERS: 30,
    WasteCategory.TVS_MONITORS: 25,
    WasteCategory.BATTERIES_POWER_BANKS: 40,
    WasteCategory.CABLES_CHARGERS: 20,
    WasteCategory.OTHER_SMALL_APPLIANCES: 15,
}

# Rate for a category outside the table
FALLBACK_POINTS_PER_KG = 10


def points_rate(category: Union[WasteCategory, str]) -> int:
    """Points-per-kg rate for a category (fallback rate when unrecognized)."""
    try:
        return POINTS_PER_KG[WasteCategory.parse(category)]
    except ValueError:
        return FALLBACK_POINTS_PER_KG


def calculate_points(category: Union[WasteCategory, str], weight_kg: float) -> int:
    """
    Compute the point award for a pickup.

    Args:
        category: WasteCategory or its display value
        weight_kg: declared weight, >= 0

    Returns:
        floor(rate * weight_kg)

    Raises:
        ValueError: if weight_kg is negative or not finite
    """
    weight = float(weight_kg)
    if not math.isfinite(weight) or weight < 0:
        raise ValueError(f"weight_kg must be a non-negative number, got {weight_kg!r}")

    return int(math.floor(points_rate(category) * weight))
