"""
config.py - Time capsule configuration constants.
Field limits, address seeds and record layout sizes.
"""

# Field limits (UTF-8 byte lengths)
MAX_MESSAGE_LENGTH = 5000
MAX_HINT_LENGTH = 500
MAX_TITLE_LENGTH = 200

# SHA-256 hex digest length for recipient and password hashes
HASH_HEX_LENGTH = 64

# Address derivation seeds
CONFIG_SEED = "config"
CAPSULE_SEED = "capsule"

# Program id of the default deployment
DEFAULT_PROGRAM_ID = "FXmb9NmMdbtTX4RRKsBzGzSLD6NzxMKoZSgmTKNJ1jhk"

# Record layout sizes (bytes)
DISCRIMINATOR_SIZE = 8
KEY_SIZE = 32
LENGTH_PREFIX_SIZE = 4
INT64_SIZE = 8
BOOL_SIZE = 1

# Allocation charge per byte of record space, paid by the record creator
DEFAULT_RENT_PER_BYTE = 0

# Upper bounds for u64 amounts and i64 timestamps
U64_MAX = 2 ** 64 - 1
I64_MIN = -(2 ** 63)
I64_MAX = 2 ** 63 - 1

# Demo defaults
DEFAULT_PRICE = 100
DEFAULT_UNLOCK_DELAY = 3600
DEFAULT_AIRDROP = 1000
