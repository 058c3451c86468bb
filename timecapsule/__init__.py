# Core modules
from .program import TimeCapsuleProgram, validate_capsule_fields
from .state import State
from .transaction import Transaction
from .models import Config, TimeCapsule, CapsuleInfo, UserCapsuleInfo, capsule_space, CONFIG_SPACE

# Events
from .events import EventLog, CapsuleCreated, CapsuleClaimed

# Client helpers
from .hashing import hash_email, hash_password, sha256_hex

from .errors import (
    TimeCapsuleError,
    InvalidUnlockTime,
    MessageTooLong,
    HintTooLong,
    TitleTooLong,
    StillLocked,
    InvalidPassword,
    InvalidTreasury,
    UnauthorizedAccess,
    InvalidEmailHash,
    InvalidPasswordHash,
    LedgerError,
    AlreadyInitialized,
    InsufficientBalanceError,
    RecordNotFoundError,
    InvalidSignatureError,
    BadNonceError,
    UnknownInstructionError,
    InvalidInstructionArgsError,
)

__all__ = [
    # Core
    "TimeCapsuleProgram",
    "validate_capsule_fields",
    "State",
    "Transaction",
    "Config",
    "TimeCapsule",
    "CapsuleInfo",
    "UserCapsuleInfo",
    "capsule_space",
    "CONFIG_SPACE",
    # Events
    "EventLog",
    "CapsuleCreated",
    "CapsuleClaimed",
    # Client helpers
    "hash_email",
    "hash_password",
    "sha256_hex",
    # Errors
    "TimeCapsuleError",
    "InvalidUnlockTime",
    "MessageTooLong",
    "HintTooLong",
    "TitleTooLong",
    "StillLocked",
    "InvalidPassword",
    "InvalidTreasury",
    "UnauthorizedAccess",
    "InvalidEmailHash",
    "InvalidPasswordHash",
    "LedgerError",
    "AlreadyInitialized",
    "InsufficientBalanceError",
    "RecordNotFoundError",
    "InvalidSignatureError",
    "BadNonceError",
    "UnknownInstructionError",
    "InvalidInstructionArgsError",
]
