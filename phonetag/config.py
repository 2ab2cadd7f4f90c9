"""Game configuration constants and settings."""

import os

# Tag radii (meters)
BASIC_TAG_RADIUS = float(os.getenv('BASIC_TAG_RADIUS', '80'))  # ~1 block
WIDE_RADIUS_TAG_RADIUS = float(os.getenv('WIDE_RADIUS_TAG_RADIUS', '300'))  # ~3-5 blocks

# Game settings
STARTING_STRIKES = int(os.getenv('STARTING_STRIKES', '3'))
DAILY_TAG_LIMIT = int(os.getenv('DAILY_TAG_LIMIT', '5'))
HOME_BASE_RADIUS = float(os.getenv('HOME_BASE_RADIUS', '50'))
SAFE_BASE_RADIUS = float(os.getenv('SAFE_BASE_RADIUS', '50'))  # used for zones stored without a radius
HIT_ZONE_RADIUS = BASIC_TAG_RADIUS  # hit zones are always basic-tag-sized
TAG_WARNING_RADIUS = float(os.getenv('TAG_WARNING_RADIUS', '457'))  # ~1500ft
COORDINATE_PRECISION = int(os.getenv('COORDINATE_PRECISION', '4'))  # decimal places, ~11m

# Player & game limits
MAX_PLAYERS_PER_GAME = int(os.getenv('MAX_PLAYERS_PER_GAME', '5'))
GAME_TITLE_MAX_LENGTH = int(os.getenv('GAME_TITLE_MAX_LENGTH', '8'))
REGISTRATION_CODE_LENGTH = int(os.getenv('REGISTRATION_CODE_LENGTH', '6'))

# Arsenal items
TRIPWIRE_RADIUS = float(os.getenv('TRIPWIRE_RADIUS', '15'))  # ~50ft
RADAR_RADIUS = float(os.getenv('RADAR_RADIUS', '610'))  # ~2000ft
RADAR_JITTER = float(os.getenv('RADAR_JITTER', '300'))
RADAR_DECOY_MIN_DISTANCE = float(os.getenv('RADAR_DECOY_MIN_DISTANCE', '1500'))
RADAR_DECOY_MAX_DISTANCE = float(os.getenv('RADAR_DECOY_MAX_DISTANCE', '3000'))

# Store credits per product
PRODUCT_QUANTITIES = {
    "basicTag": int(os.getenv('BASIC_TAG_PACK', '10')),
    "wideRadiusTag": int(os.getenv('WIDE_RADIUS_TAG_PACK', '5')),
    "radar": int(os.getenv('RADAR_PACK', '3')),
    "tripwire": int(os.getenv('TRIPWIRE_PACK', '3')),
}

# Nudges and enforcement
NUDGE_RESPONSE_WINDOW_HOURS = int(os.getenv('NUDGE_RESPONSE_WINDOW_HOURS', '6'))
ENFORCEMENT_INTERVAL_MINUTES = int(os.getenv('ENFORCEMENT_INTERVAL_MINUTES', '30'))

# Store
DATABASE_PATH = os.getenv('DATABASE_PATH', 'phonetag.db')
STORE_TIMEOUT_SECONDS = float(os.getenv('STORE_TIMEOUT_SECONDS', '5'))
TAG_CONFLICT_RETRIES = int(os.getenv('TAG_CONFLICT_RETRIES', '2'))

TIMEZONE = os.getenv('TIMEZONE', 'America/New_York')
