"""Internal constants shared across the library."""

# Mean Earth radius used by the haversine distance, in meters.
EARTH_RADIUS_M = 6_371_000.0

# Fixes with an accuracy radius above this many meters raise an alert.
ACCURACY_ALERT_THRESHOLD_M = 50.0

# Number of entries kept in the rolling activity history.
ACTIVITY_HISTORY_LIMIT = 3

# Reference cadence of the location subscription.
FIX_INTERVAL_SECONDS = 7.0

POOR_ACCURACY_TITLE = "Poor GPS accuracy"

REMOTE_KEY_TEMPLATE = "buses/{vehicle_id}"

# ------------------------------------------------------------------
# Key-value storage keys
# ------------------------------------------------------------------

STORAGE_KEY_BUS_ID = "busId"
STORAGE_KEY_ROUTE_ID = "routeId"
STORAGE_KEY_ACTIVITY_LOG = "activityLog"

# ------------------------------------------------------------------
# Remote catalog paths and fallbacks
# ------------------------------------------------------------------

BUS_CATALOG_PATH = "busIds"
ROUTE_CATALOG_PATH = "routes"

DEFAULT_BUSES: tuple[tuple[str, str], ...] = (
    ("bus_001", "Bus 001"),
    ("bus_002", "Bus 002"),
    ("bus_003", "Bus 003"),
)

DEFAULT_ROUTES: tuple[tuple[str, str], ...] = (
    ("route_001", "Route A - City Center"),
    ("route_002", "Route B - Airport"),
    ("route_003", "Route C - University"),
    ("route_004", "Route D - Mall"),
)


def poor_accuracy_body(accuracy: float) -> str:
    """Notification body reporting the rounded accuracy radius."""
    return f"Current accuracy: {round(accuracy)}m"
