from timecapsule.config import (
    BOOL_SIZE,
    DISCRIMINATOR_SIZE,
    HASH_HEX_LENGTH,
    INT64_SIZE,
    KEY_SIZE,
    LENGTH_PREFIX_SIZE,
)

# price + authority + treasury
CONFIG_SPACE = DISCRIMINATOR_SIZE + INT64_SIZE + KEY_SIZE + KEY_SIZE


def byte_length(value) -> int:
    """Length of a str or bytes field as stored (UTF-8 bytes)."""
    if isinstance(value, (bytes, bytearray)):
        return len(value)
    return len(value.encode("utf-8"))


def capsule_space(encrypted_message, password_hint, message_title) -> int:
    """Record size of a capsule holding the given variable-length fields."""
    return (
        DISCRIMINATOR_SIZE
        + KEY_SIZE                                          # sender
        + LENGTH_PREFIX_SIZE + byte_length(encrypted_message)
        + INT64_SIZE                                        # unlock_timestamp
        + LENGTH_PREFIX_SIZE + HASH_HEX_LENGTH              # recipient_email_hash
        + LENGTH_PREFIX_SIZE + HASH_HEX_LENGTH              # password_hash
        + LENGTH_PREFIX_SIZE + byte_length(password_hint)
        + LENGTH_PREFIX_SIZE + byte_length(message_title)
        + INT64_SIZE                                        # created_at
        + BOOL_SIZE                                         # is_claimed
    )


class Config:
    def __init__(self, price, authority, treasury):
        self.price = price
        self.authority = authority
        self.treasury = treasury

    def to_dict(self):
        return {
            "price": self.price,
            "authority": self.authority,
            "treasury": self.treasury,
        }

    @staticmethod
    def from_dict(data: dict) -> "Config":
        return Config(
            price=data["price"],
            authority=data["authority"],
            treasury=data["treasury"],
        )

    def __repr__(self):
        return f"Config(price={self.price}, authority={self.authority[:8]}, treasury={self.treasury[:8]})"


class TimeCapsule:
    """An escrowed message with its time lock and password gate."""

    def __init__(
        self,
        sender,
        encrypted_message,
        unlock_timestamp,
        recipient_email_hash,
        password_hash,
        password_hint,
        message_title,
        created_at,
        is_claimed=False,
    ):
        self.sender = sender
        self.encrypted_message = encrypted_message  # Opaque ciphertext, never inspected
        self.unlock_timestamp = unlock_timestamp
        self.recipient_email_hash = recipient_email_hash
        self.password_hash = password_hash
        self.password_hint = password_hint
        self.message_title = message_title
        self.created_at = created_at
        self.is_claimed = is_claimed

    def to_dict(self):
        return {
            "sender": self.sender,
            "encrypted_message": self.encrypted_message,
            "unlock_timestamp": self.unlock_timestamp,
            "recipient_email_hash": self.recipient_email_hash,
            "password_hash": self.password_hash,
            "password_hint": self.password_hint,
            "message_title": self.message_title,
            "created_at": self.created_at,
            "is_claimed": self.is_claimed,
        }

    @staticmethod
    def from_dict(data: dict) -> "TimeCapsule":
        return TimeCapsule(**data)

    @property
    def space(self) -> int:
        return capsule_space(self.encrypted_message, self.password_hint, self.message_title)

    def is_unlocked(self, now) -> bool:
        return now >= self.unlock_timestamp

    def info(self) -> "CapsuleInfo":
        """Public view, safe to show before unlock."""
        return CapsuleInfo(
            sender=self.sender,
            unlock_timestamp=self.unlock_timestamp,
            password_hint=self.password_hint,
            message_title=self.message_title,
            created_at=self.created_at,
            is_claimed=self.is_claimed,
        )

    def __repr__(self):
        # Secrets stay out of logs
        return (
            f"TimeCapsule({self.sender[:8]}, title={self.message_title!r}, "
            f"unlock={self.unlock_timestamp}, claimed={self.is_claimed})"
        )


class CapsuleInfo:
    __slots__ = (
        "sender",
        "unlock_timestamp",
        "password_hint",
        "message_title",
        "created_at",
        "is_claimed",
    )

    def __init__(self, sender, unlock_timestamp, password_hint, message_title, created_at, is_claimed):
        self.sender = sender
        self.unlock_timestamp = unlock_timestamp
        self.password_hint = password_hint
        self.message_title = message_title
        self.created_at = created_at
        self.is_claimed = is_claimed

    def to_dict(self):
        return {name: getattr(self, name) for name in self.__slots__}

    def __eq__(self, other):
        return isinstance(other, CapsuleInfo) and self.to_dict() == other.to_dict()

    def __repr__(self):
        return f"CapsuleInfo({self.message_title!r}, unlock={self.unlock_timestamp}, claimed={self.is_claimed})"


class UserCapsuleInfo:
    """Row of a per-user capsule listing, filled by an external indexer."""

    def __init__(self, capsule_id, unlock_timestamp, message_title, is_claimed):
        self.capsule_id = capsule_id
        self.unlock_timestamp = unlock_timestamp
        self.message_title = message_title
        self.is_claimed = is_claimed

    def to_dict(self):
        return {
            "capsule_id": self.capsule_id,
            "unlock_timestamp": self.unlock_timestamp,
            "message_title": self.message_title,
            "is_claimed": self.is_claimed,
        }
