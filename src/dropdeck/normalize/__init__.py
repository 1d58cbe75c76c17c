from dropdeck.normalize.eta import calculate_eta, format_eta_display, has_significant_eta_change
from dropdeck.normalize.status_map import get_status_map, map_platform_status

__all__ = [
    "calculate_eta",
    "format_eta_display",
    "has_significant_eta_change",
    "get_status_map",
    "map_platform_status",
]
