"""
errors.py - Error taxonomy for the time capsule program and its ledger.

Every error is a ValueError so callers that only care about "the operation
was rejected" can catch one type. Program errors carry a stable numeric code.
"""


class TimeCapsuleError(ValueError):
    """Base class for errors raised by the time capsule program."""

    code = 6000
    message = "Time capsule error"

    def __init__(self, message=None):
        super().__init__(message or self.message)

    def to_dict(self):
        return {
            "error": self.__class__.__name__,
            "code": self.code,
            "message": str(self),
        }


class InvalidUnlockTime(TimeCapsuleError):
    code = 6000
    message = "Unlock date must be in the future"


class MessageTooLong(TimeCapsuleError):
    code = 6001
    message = "Message is too long (max 5KB)"


class HintTooLong(TimeCapsuleError):
    code = 6002
    message = "Hint is too long (max 500 characters)"


class TitleTooLong(TimeCapsuleError):
    code = 6003
    message = "Title is too long (max 200 characters)"


class StillLocked(TimeCapsuleError):
    code = 6004
    message = "This time capsule is still locked"


class InvalidPassword(TimeCapsuleError):
    code = 6005
    message = "Incorrect password"


class InvalidTreasury(TimeCapsuleError):
    code = 6006
    message = "Invalid treasury wallet"


class UnauthorizedAccess(TimeCapsuleError):
    code = 6007
    message = "Unauthorized access"


class InvalidEmailHash(TimeCapsuleError):
    code = 6008
    message = "Invalid email hash (must be SHA256 64 characters)"


class InvalidPasswordHash(TimeCapsuleError):
    code = 6009
    message = "Invalid password hash (must be SHA256 64 characters)"


# =========================================================================
# LEDGER ERRORS
# =========================================================================

class LedgerError(ValueError):
    """Raised by the ledger substrate."""


class AlreadyInitialized(LedgerError):
    """A record already exists at the requested address."""


class InsufficientBalanceError(LedgerError):
    pass


class RecordNotFoundError(LedgerError):
    pass


class InvalidSignatureError(LedgerError):
    pass


class BadNonceError(LedgerError):
    pass


class UnknownInstructionError(LedgerError):
    pass


class InvalidInstructionArgsError(LedgerError):
    pass
