"""
Constants used across the match coordination system.
"""

import os

# Player profile defaults and bounds
POSITIONS = ("GK", "DEF", "MID", "FWD")
DEFAULT_POSITION = "MID"
PLAYER_ROLES = ("player", "admin")
DEFAULT_ROLE = "player"
DEFAULT_RATING = 5
MIN_RATING = 1
MAX_RATING = 10

# Group privacy
GROUP_PRIVACY_VALUES = ("public", "private")
DEFAULT_GROUP_PRIVACY = "private"

# Team formation
MIN_TEAMS = 2
MIN_PLAYERS_PER_TEAM = 3  # Preferred smallest team when the roster is under capacity

# Invite codes (no letter O or digit 0)
INVITE_CODE_ALPHABET = "ABCDEFGHIJKLMNPQRSTUVWXYZ123456789"
INVITE_CODE_LENGTH = 8
UNLIMITED_USES = -1
MAX_CODE_GENERATION_ATTEMPTS = 5

# Guests are synthetic users whose email lives on this domain
GUEST_EMAIL_DOMAIN = "temp.local"
MAX_NAME_LENGTH = 100

# Bulk import pacing
IMPORT_BATCH_SIZE = int(os.getenv("IMPORT_BATCH_SIZE", "50"))
IMPORT_BATCH_PAUSE_SECONDS = float(os.getenv("IMPORT_BATCH_PAUSE_SECONDS", "0.1"))
IMPORT_ERROR_PREVIEW_COUNT = 5
