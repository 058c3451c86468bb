from .config import (
    CAPSULE_SEED,
    CONFIG_SEED,
    DEFAULT_PROGRAM_ID,
    HASH_HEX_LENGTH,
    I64_MAX,
    I64_MIN,
    MAX_HINT_LENGTH,
    MAX_MESSAGE_LENGTH,
    MAX_TITLE_LENGTH,
    U64_MAX,
)
from .errors import (
    BadNonceError,
    HintTooLong,
    InvalidEmailHash,
    InvalidInstructionArgsError,
    InvalidPassword,
    InvalidPasswordHash,
    InvalidSignatureError,
    InvalidTreasury,
    InvalidUnlockTime,
    MessageTooLong,
    RecordNotFoundError,
    StillLocked,
    TitleTooLong,
    UnauthorizedAccess,
    UnknownInstructionError,
)
from .events import CapsuleClaimed, CapsuleCreated, EventLog
from .models import CONFIG_SPACE, Config, TimeCapsule, byte_length
from .state import State
from contextlib import contextmanager
import hmac
import inspect
import logging
import time

logger = logging.getLogger(__name__)


def _system_clock():
    return int(time.time())


def _require_int(value, name, low, high):
    if isinstance(value, bool) or not isinstance(value, int) or not low <= value <= high:
        raise ValueError(f"{name} must be an integer in [{low}, {high}]")


def _as_bytes(value):
    if isinstance(value, str):
        return value.encode("utf-8")
    return bytes(value)


def validate_capsule_fields(
    encrypted_message,
    unlock_timestamp,
    recipient_email_hash,
    password_hash,
    password_hint,
    message_title,
    treasury,
    config,
    now,
):
    """
    Check a capsule request, raising the first violation found.
    The order is part of the contract: callers see the same error for the
    same input regardless of how many fields are wrong.
    """
    if not unlock_timestamp > now:
        raise InvalidUnlockTime()
    if byte_length(encrypted_message) > MAX_MESSAGE_LENGTH:
        raise MessageTooLong()
    if byte_length(password_hint) > MAX_HINT_LENGTH:
        raise HintTooLong()
    if byte_length(message_title) > MAX_TITLE_LENGTH:
        raise TitleTooLong()
    if byte_length(recipient_email_hash) != HASH_HEX_LENGTH:
        raise InvalidEmailHash()
    if byte_length(password_hash) != HASH_HEX_LENGTH:
        raise InvalidPasswordHash()
    if treasury != config.treasury:
        raise InvalidTreasury()


class TimeCapsuleProgram:
    """
    Time-locked, password-gated message escrow on top of a ledger State.

    Every mutating operation runs against a copy of the state which replaces
    the live state only if the whole operation succeeds, so a fee is never
    taken without the capsule being written and vice versa. Events are
    handed to the sink after that commit.
    """

    # Operation -> keyword argument that receives the transaction signer
    INSTRUCTIONS = {
        "initialize_config": "caller",
        "update_price": "caller",
        "create_capsule": "sender",
        "retrieve_message": None,
        "mark_claimed": None,
        "get_capsule_info": None,
        "get_user_capsules": "caller",
    }

    TIME_AWARE = {"create_capsule", "retrieve_message", "mark_claimed"}

    def __init__(self, state=None, program_id=DEFAULT_PROGRAM_ID, clock=None, events=None):
        self.state = state if state is not None else State()
        self.program_id = program_id
        self.clock = clock or _system_clock
        self.events = events if events is not None else EventLog()
        self._lock = self.state.lock
        self._pending = None
        self._pending_events = []

    # =========================================================================
    # ADDRESSING AND TRANSACTION PLUMBING
    # =========================================================================

    @property
    def config_address(self):
        return self.state.derive_address(self.program_id, CONFIG_SEED)

    def capsule_address(self, sender, nonce):
        return self.state.derive_address(self.program_id, CAPSULE_SEED, sender, nonce)

    @contextmanager
    def _atomic(self, operation, read_only=False):
        with self._lock:
            if self._pending is not None:
                # Nested call joins the enclosing unit
                yield self._pending
                return

            if read_only:
                try:
                    yield self.state
                except ValueError as e:
                    logger.warning("%s rejected: %s", operation, e)
                    raise
                return

            self._pending = self.state.copy()
            self._pending_events = []
            try:
                yield self._pending
                self.state.commit(self._pending)
                committed = self._pending_events
            except ValueError as e:
                logger.warning("%s rejected: %s", operation, e)
                raise
            finally:
                self._pending = None
                self._pending_events = []

        for event in committed:
            self.events.emit(event)

    def _current_state(self):
        return self._pending if self._pending is not None else self.state

    def _emit(self, event):
        self._pending_events.append(event)

    def _now(self, now):
        return self.clock() if now is None else now

    @staticmethod
    def _read(state, address, model):
        data = state.read_record(address)
        if data.pop("kind", None) != model.__name__:
            raise RecordNotFoundError(f"No {model.__name__} at {address}")
        return model.from_dict(data)

    @staticmethod
    def _record(obj):
        return {"kind": type(obj).__name__, **obj.to_dict()}

    @staticmethod
    def _check_gate(capsule, password_hash, now):
        # Lock before password, so a locked capsule never reveals whether
        # the password was right
        if not capsule.is_unlocked(now):
            raise StillLocked()
        if not hmac.compare_digest(_as_bytes(password_hash), _as_bytes(capsule.password_hash)):
            raise InvalidPassword()

    def process_transaction(self, tx, now=None):
        """
        Execute a signed instruction. The signer becomes the caller identity
        and the nonce is consumed only if the instruction succeeds.
        """
        if tx.instruction not in self.INSTRUCTIONS:
            raise UnknownInstructionError(f"Unknown instruction: {tx.instruction}")

        if not tx.verify():
            logger.error("Error: Invalid signature for tx from %s", tx.sender)
            raise InvalidSignatureError("Invalid signature")

        with self._atomic(tx.instruction) as state:
            expected_nonce = state.get_nonce(tx.sender)
            if tx.nonce != expected_nonce:
                raise BadNonceError(f"Bad nonce: expected {expected_nonce}, got {tx.nonce}")

            kwargs = dict(tx.args)
            signer_arg = self.INSTRUCTIONS[tx.instruction]
            if signer_arg:
                kwargs[signer_arg] = tx.sender
            if tx.instruction in self.TIME_AWARE:
                # Time comes from the clock, never from the signer
                kwargs["now"] = now

            handler = getattr(self, tx.instruction)
            try:
                inspect.signature(handler).bind(**kwargs)
            except TypeError as e:
                raise InvalidInstructionArgsError(f"Invalid arguments for {tx.instruction}: {e}")

            result = handler(**kwargs)

            # create_capsule consumes the nonce itself when allocating
            if state.get_nonce(tx.sender) == expected_nonce:
                state.increment_nonce(tx.sender)

        return result

    # =========================================================================
    # CONFIGURATION
    # =========================================================================

    def initialize_config(self, price, treasury, caller):
        _require_int(price, "price", 0, U64_MAX)

        with self._atomic("initialize_config") as state:
            config = Config(price=price, authority=caller, treasury=treasury)
            state.create_record(self.config_address, self._record(config), CONFIG_SPACE, payer=caller)

        logger.info("Config initialized: price=%d, treasury=%s", price, treasury)
        return config

    def get_config(self):
        with self._lock:
            return self._read(self._current_state(), self.config_address, Config)

    def update_price(self, new_price, caller):
        _require_int(new_price, "new_price", 0, U64_MAX)

        with self._atomic("update_price") as state:
            config = self._read(state, self.config_address, Config)
            if caller != config.authority:
                raise UnauthorizedAccess()

            old_price = config.price
            config.price = new_price
            state.write_record(self.config_address, self._record(config))

        logger.info("Price updated: %d -> %d", old_price, new_price)

    # =========================================================================
    # CAPSULE LIFECYCLE
    # =========================================================================

    def create_capsule(
        self,
        encrypted_message,
        unlock_timestamp,
        recipient_email_hash,
        password_hash,
        password_hint,
        message_title,
        sender,
        treasury,
        now=None,
    ):
        """
        Escrow an encrypted message until `unlock_timestamp`, charging the
        configured price to `sender`. Returns the new capsule id.
        """
        now = self._now(now)
        _require_int(unlock_timestamp, "unlock_timestamp", I64_MIN, I64_MAX)

        with self._atomic("create_capsule") as state:
            config = self._read(state, self.config_address, Config)

            validate_capsule_fields(
                encrypted_message,
                unlock_timestamp,
                recipient_email_hash,
                password_hash,
                password_hint,
                message_title,
                treasury,
                config,
                now,
            )

            # Fee snapshot: later price changes don't touch this capsule
            state.transfer(sender, treasury, config.price)

            capsule = TimeCapsule(
                sender=sender,
                encrypted_message=encrypted_message,
                unlock_timestamp=unlock_timestamp,
                recipient_email_hash=recipient_email_hash,
                password_hash=password_hash,
                password_hint=password_hint,
                message_title=message_title,
                created_at=now,
                is_claimed=False,
            )
            capsule_id = self.capsule_address(sender, state.get_nonce(sender))
            state.create_record(capsule_id, self._record(capsule), capsule.space, payer=sender)
            state.increment_nonce(sender)

            self._emit(CapsuleCreated(
                capsule_id=capsule_id,
                sender=sender,
                unlock_timestamp=unlock_timestamp,
                created_at=now,
            ))

        logger.info("Capsule %s created by %s (unlocks at %d)", capsule_id, sender, unlock_timestamp)
        return capsule_id

    def retrieve_message(self, password_hash, capsule_id, now=None):
        """Return the stored ciphertext once unlocked. Never mutates state."""
        now = self._now(now)
        with self._atomic("retrieve_message", read_only=True) as state:
            capsule = self._read(state, capsule_id, TimeCapsule)
            self._check_gate(capsule, password_hash, now)
        return capsule.encrypted_message

    def mark_claimed(self, password_hash, capsule_id, now=None):
        # TODO: confirm whether a second claim should be rejected; it currently
        # succeeds and re-emits CapsuleClaimed
        now = self._now(now)

        with self._atomic("mark_claimed") as state:
            capsule = self._read(state, capsule_id, TimeCapsule)
            self._check_gate(capsule, password_hash, now)

            capsule.is_claimed = True
            state.write_record(capsule_id, self._record(capsule))
            self._emit(CapsuleClaimed(capsule_id=capsule_id, claimed_at=now))

        logger.info("Capsule %s claimed at %d", capsule_id, now)

    def get_capsule_info(self, capsule_id):
        with self._atomic("get_capsule_info", read_only=True) as state:
            return self._read(state, capsule_id, TimeCapsule).info()

    def get_user_capsules(self, caller):
        """
        Always empty. Listing a user's capsules needs a sender index or an
        external indexer; neither is part of this program.
        """
        logger.debug("get_user_capsules(%s) has no index to consult", caller)
        return []
