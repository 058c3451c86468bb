import json
import time
import hashlib
from nacl.signing import SigningKey, VerifyKey
from nacl.encoding import HexEncoder
from nacl.exceptions import BadSignatureError, CryptoError


class Transaction:
    """A signed instruction for the time capsule program."""

    def __init__(self, sender, instruction, args=None, nonce=0, signature=None, timestamp=None):
        self.sender = sender            # Public key (Hex str), becomes the caller identity
        self.instruction = instruction  # Program operation name
        self.args = dict(args or {})
        self.nonce = nonce
        self.timestamp = round(timestamp * 1000) if timestamp is not None else round(time.time() * 1000) # Integer milliseconds for determinism
        self.signature = signature      # Hex str

    def to_dict(self):
        return {
            "sender": self.sender,
            "instruction": self.instruction,
            "args": self.args,
            "nonce": self.nonce,
            "timestamp": self.timestamp,
            "signature": self.signature,
        }

    @staticmethod
    def from_dict(data: dict) -> "Transaction":
        """Create transaction from dictionary."""
        return Transaction(
            sender=data["sender"],
            instruction=data["instruction"],
            args=data.get("args"),
            nonce=data["nonce"],
            signature=data.get("signature"),
            timestamp=data.get("timestamp") / 1000 if data.get("timestamp") else None,
        )

    def hash(self) -> str:
        """Get unique hash of this transaction."""
        return hashlib.sha256(self.hash_payload).hexdigest()

    @property
    def hash_payload(self):
        """Returns the bytes to be signed."""
        payload = {
            "sender": self.sender,
            "instruction": self.instruction,
            "args": self.args,
            "nonce": self.nonce,
            "timestamp": self.timestamp,
        }
        return json.dumps(payload, sort_keys=True).encode("utf-8")

    def sign(self, signing_key: SigningKey):
        # Validate that the signing key matches the sender
        if signing_key.verify_key.encode(encoder=HexEncoder).decode() != self.sender:
            raise ValueError("Signing key does not match sender")
        signed = signing_key.sign(self.hash_payload)
        self.signature = signed.signature.hex()

    def verify(self):
        if not self.signature:
            return False

        try:
            verify_key = VerifyKey(self.sender, encoder=HexEncoder)
            verify_key.verify(self.hash_payload, bytes.fromhex(self.signature))
            return True

        except (BadSignatureError, CryptoError, ValueError, TypeError):
            # Covers:
            # - Invalid signature
            # - Malformed public key hex
            # - Invalid hex in signature
            return False

    def __repr__(self):
        return f"Tx({self.sender[:8]}, {self.instruction}, nonce={self.nonce})"
