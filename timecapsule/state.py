from nacl.hash import sha256
from nacl.encoding import HexEncoder
from timecapsule.config import DEFAULT_RENT_PER_BYTE
from timecapsule.errors import (
    AlreadyInitialized,
    InsufficientBalanceError,
    RecordNotFoundError,
)
import copy
import logging
import threading

logger = logging.getLogger(__name__)


class State:
    """
    In-memory ledger: identity balances, nonces and addressed records.
    """

    def __init__(self, rent_per_byte=DEFAULT_RENT_PER_BYTE):
        # { address: {'balance': int, 'nonce': int, 'space': int, 'data': dict|None} }
        self.accounts = {}
        self.rent_per_byte = rent_per_byte
        # Shared by every program operating on this ledger
        self.lock = threading.RLock()

    # =========================================================================
    # BASIC ACCOUNT METHODS
    # =========================================================================

    def get_balance(self, address: str) -> int:
        """Get account balance (0 if account doesn't exist)."""
        return self.accounts.get(address, {"balance": 0})["balance"]

    def get_nonce(self, address: str) -> int:
        """Get account nonce (0 if account doesn't exist)."""
        return self.accounts.get(address, {"nonce": 0})["nonce"]

    def exists(self, address: str) -> bool:
        """Check if account exists."""
        return address in self.accounts

    def get_account(self, address):
        if address not in self.accounts:
            self.accounts[address] = {
                'balance': 0,
                'nonce': 0,
                'space': 0,
                'data': None
            }
        return self.accounts[address]

    def increment_nonce(self, address):
        self.get_account(address)['nonce'] += 1

    def airdrop(self, address, amount):
        """Credit an identity out of thin air (demo and test funding)."""
        if not isinstance(amount, int) or amount < 0:
            raise ValueError("Airdrop amount must be a non-negative integer")
        account = self.get_account(address)
        account['balance'] += amount

    # =========================================================================
    # TRANSFERS
    # =========================================================================

    def transfer(self, sender, receiver, amount):
        """
        Move `amount` from sender to receiver, or raise without touching
        either balance.
        """
        if not isinstance(amount, int) or amount < 0:
            raise ValueError("Transfer amount must be a non-negative integer")

        if self.get_balance(sender) < amount:
            logger.warning(f"Insufficient balance for {sender}")
            raise InsufficientBalanceError(
                f"Insufficient balance: {sender} has {self.get_balance(sender)}, needs {amount}"
            )

        self.get_account(sender)['balance'] -= amount
        self.get_account(receiver)['balance'] += amount

    # =========================================================================
    # RECORDS
    # =========================================================================

    def derive_address(self, *seeds):
        raw = ":".join(str(seed) for seed in seeds).encode()
        return sha256(raw, encoder=HexEncoder).decode()[:40]

    def has_record(self, address):
        account = self.accounts.get(address)
        return account is not None and account.get('data') is not None

    def create_record(self, address, data, space, payer):
        """
        Allocate a record at `address`, charging `payer` for its space.
        Fails loudly if a record already lives there.
        """
        if self.has_record(address):
            raise AlreadyInitialized(f"Record already initialized at {address}")

        rent = space * self.rent_per_byte
        self.transfer(payer, address, rent)

        account = self.get_account(address)
        account['space'] = space
        account['data'] = copy.deepcopy(data)
        return address

    def read_record(self, address):
        if not self.has_record(address):
            raise RecordNotFoundError(f"Record not found: {address}")
        return copy.deepcopy(self.accounts[address]['data'])

    def write_record(self, address, data):
        if not self.has_record(address):
            raise RecordNotFoundError(f"Record not found: {address}")
        self.accounts[address]['data'] = copy.deepcopy(data)

    def copy(self):
        """
        Return an independent copy of state for transactional validation.
        """
        with self.lock:
            snapshot = State(rent_per_byte=self.rent_per_byte)
            snapshot.accounts = copy.deepcopy(self.accounts)
        return snapshot

    def commit(self, snapshot):
        """Adopt the accounts of a validated copy, keeping this object live."""
        with self.lock:
            self.accounts = snapshot.accounts
