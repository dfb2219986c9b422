"""
Kerong BLE Lock - Constants and Protocol Values
"""

# ═══════════════════════════════════════════════════════════════════════════════
# BLE UUIDs
# ═══════════════════════════════════════════════════════════════════════════════

SERVICE_UUID = "0000fff0-0000-1000-8000-00805f9b34fb"
WRITE_CHAR = "0000fff2-0000-1000-8000-00805f9b34fb"
NOTIFY_CHAR = "0000fff1-0000-1000-8000-00805f9b34fb"


# ═══════════════════════════════════════════════════════════════════════════════
# DEVICE IDENTIFICATION
# ═══════════════════════════════════════════════════════════════════════════════

NAME_PREFIX = "SN:"  # e.g. "SN:0000000799"


# ═══════════════════════════════════════════════════════════════════════════════
# FRAMING
# ═══════════════════════════════════════════════════════════════════════════════

STX = 0xF5          # Data header
ETX = 0x5F          # Data footer
HEADER_SIZE = 6     # STX CMD ASK LEN ETX SUM
RECORD_SIZE = 24    # One user record in a 0x6C listing
PASSWORD_LENGTH = 6
ID_DIGITS = 12      # Phone numbers / user ids are packed as 12 BCD digits

AUTH_TYPE_ADMIN = 0x01


# ═══════════════════════════════════════════════════════════════════════════════
# COMMANDS (lock protocol document, chapter 4)
# ═══════════════════════════════════════════════════════════════════════════════

class Command:
    """Protocol command codes"""
    PAIR = 0x0F                # 4.1 Pairing with the code on the back of the lock
    RANDOM_CODE = 0x20         # 4.2 Get random code (XOR key)
    AUTHENTICATE = 0x21        # 4.3 Admin authentication
    BATTERY = 0x60             # Battery status
    CREATE_USER = 0x68         # Create user, lock answers with a password
    DELETE_ALL_USERS = 0x6B    # Remove every user
    READ_USERS = 0x6C          # User listing (multi-part)
    SYSTEM_EXIT = 0x6F         # 4.19 Back to sleep mode
    READ_LOGS = 0x72           # Log entry


# ═══════════════════════════════════════════════════════════════════════════════
# CONFIGURATION DEFAULTS
# ═══════════════════════════════════════════════════════════════════════════════

DEFAULT_BATTERY_MIN_MV = 3962
DEFAULT_BATTERY_MAX_MV = 6000


# ═══════════════════════════════════════════════════════════════════════════════
# TIMING (seconds)
# ═══════════════════════════════════════════════════════════════════════════════

WRITE_RETRIES = 3
WRITE_RETRY_DELAY = 0.1
BATTERY_TIMEOUT = 5.0
EXIT_GRACE_PERIOD = 0.5
DELETE_SETTLE_DELAY = 1.0   # After 0x6B before the first 0x68
USER_COMMAND_DELAY = 0.5    # Between successive 0x68 commands
