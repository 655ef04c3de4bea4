"""
Region graph for "Veche: Republic vs. Order"
Static adjacency between named territories and the targeting queries built on
top of it. All functions are pure over the current controller map.
"""

from typing import Dict, FrozenSet, List
from models import CAPITAL, ORDER, ORDER_HOME, REPUBLIC, Faction, Region


# Undirected; order_lands is the Order's home territory and is never a region
# in the state map, so the Republic can never hold it.
MAP_ADJACENCY: Dict[str, List[str]] = {
    ORDER_HOME: ['bearhill', 'gdov'],
    'bearhill': [ORDER_HOME, 'pechory'],
    'pechory': ['bearhill', 'izborsk'],
    'izborsk': ['pechory', 'ostrov', CAPITAL],
    'ostrov': ['izborsk', CAPITAL],
    CAPITAL: ['izborsk', 'ostrov', 'skrynnitsy'],
    'skrynnitsy': [CAPITAL, 'gdov'],
    'gdov': [ORDER_HOME, 'skrynnitsy'],
}


def get_neighbors(region_name: str) -> List[str]:
    """Regions sharing a border with region_name (empty for unknown names)."""
    return list(MAP_ADJACENCY.get(region_name, []))


def are_adjacent(a: str, b: str) -> bool:
    return b in MAP_ADJACENCY.get(a, [])


def valid_order_targets(regions: Dict[str, Region]) -> FrozenSet[str]:
    """
    Republic regions the Order can plausibly strike.

    Args:
        regions: Current region map

    Returns:
        Republic-controlled regions adjacent to any Order-controlled region,
        counting the Order's home territory as always Order-held
    """
    order_held = [ORDER_HOME] + [
        name for name, region in regions.items() if region.controller == ORDER
    ]
    targets = set()
    for origin in order_held:
        for neighbor in MAP_ADJACENCY.get(origin, []):
            region = regions.get(neighbor)
            if region is not None and region.controller == REPUBLIC:
                targets.add(neighbor)
    return frozenset(targets)


def valid_republic_targets(regions: Dict[str, Region]) -> FrozenSet[str]:
    """
    Order regions the Republic may try to reconquer.

    Args:
        regions: Current region map

    Returns:
        Order-controlled regions adjacent to any Republic-controlled region
    """
    targets = set()
    for name, region in regions.items():
        if region.controller != REPUBLIC:
            continue
        for neighbor in MAP_ADJACENCY.get(name, []):
            other = regions.get(neighbor)
            if other is not None and other.controller == ORDER:
                targets.add(neighbor)
    return frozenset(targets)


def count_republic_regions(regions: Dict[str, Region]) -> int:
    return sum(1 for region in regions.values() if region.controller == REPUBLIC)


def regions_for_fortress(regions: Dict[str, Region]) -> List[str]:
    """Republic regions that do not have a fortress yet."""
    return [
        name for name, region in regions.items()
        if region.controller == REPUBLIC and not region.fortress
    ]


def can_build_in(region_name: str, region: Region, faction: Faction) -> bool:
    """Merchants build only in the capital; everyone else in any Republic region."""
    if region.controller != REPUBLIC:
        return False
    if faction == Faction.MERCHANTS and region_name != CAPITAL:
        return False
    return True
