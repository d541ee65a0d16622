"""
Configuration constants for the fantasy cycling bidding engine.
"""

import os

# Game rules
PLAYING_YEAR = int(os.getenv('PELOTON_PLAYING_YEAR', '2026'))

SELECTION_MIN_PRICE = 1        # Selection-mode riders are never free
TOP_RANK_LIMIT = 200           # Rank cut-off for top-200-only auction periods

# WorldTour Manager / Marginal Gains roster composition
DEFAULT_MIN_RIDERS = 27        # Up to this many riders: no neo-pro restrictions
DEFAULT_MAX_NEO_PRO_AGE = 21
DEFAULT_MAX_NEO_PRO_POINTS = 250

# Game statuses in which bids are final and spent_budget is authoritative
CLOSED_GAME_STATUSES = ('active', 'finished')
CLOSED_AUCTION_STATUSES = ('closed', 'finalized')

# Snapshot cache
CACHE_DIR = 'data/auction_cache'
CACHE_DURATION_SECONDS = 5 * 60
CACHE_VERSION = 5

# Invalidation watcher wake-up interval (seconds)
INVALIDATION_POLL_INTERVAL = 1.0

# External store
STORE_DIR = os.getenv('PELOTON_STORE_DIR', 'data/store')
STORE_BASE_URL = os.getenv('PELOTON_STORE_URL', 'http://localhost:3000/api')
STORE_API_KEY = os.getenv('PELOTON_STORE_API_KEY')
REQUEST_TIMEOUT = 10           # seconds
MAX_RETRIES = 3
BIDS_PAGE_LIMIT = 1000
RIDERS_PAGE_LIMIT = 500

# Rider name matching
FUZZY_MATCH_THRESHOLD = 90

# Logging
LOG_LEVEL = 'INFO'
LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
