import os

MAPBOX_TOKEN = os.getenv("MAPBOX_TOKEN", "")
MAPBOX_DIRECTIONS_URL = os.getenv("MAPBOX_DIRECTIONS_URL", "https://api.mapbox.com/directions/v5/mapbox")
ROUTE_TIMEOUT_S = float(os.getenv("ROUTE_TIMEOUT_S", "5"))

EVENT_FEED_URL = os.getenv("EVENT_FEED_URL", "")
FEED_TIMEOUT_S = float(os.getenv("FEED_TIMEOUT_S", "10"))
MAX_INCIDENT_DISTANCE_M = float(os.getenv("MAX_INCIDENT_DISTANCE_M", "2000"))

MOVEMENT_TICK_S = float(os.getenv("MOVEMENT_TICK_S", "1.0"))
INCIDENT_TICK_S = float(os.getenv("INCIDENT_TICK_S", "30.0"))

INITIAL_LATITUDE = float(os.getenv("INITIAL_LATITUDE", "37.7749"))
INITIAL_LONGITUDE = float(os.getenv("INITIAL_LONGITUDE", "-122.4194"))
TRAVEL_PROFILE = os.getenv("TRAVEL_PROFILE", "walking")
SEED_FIXED_INCIDENT = os.getenv("SEED_FIXED_INCIDENT", "1").lower() not in ("0", "false", "no")

HOST = os.getenv("HOST", "0.0.0.0")
PORT = int(os.getenv("PORT", "8080"))
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
