import argparse
import logging
import time
from nacl.signing import SigningKey
from nacl.encoding import HexEncoder

from timecapsule import (
    State,
    TimeCapsuleError,
    TimeCapsuleProgram,
    Transaction,
    hash_email,
    hash_password,
)
from timecapsule.config import DEFAULT_AIRDROP, DEFAULT_PRICE, DEFAULT_UNLOCK_DELAY


logger = logging.getLogger(__name__)


def create_wallet():
    sk = SigningKey.generate()
    pk = sk.verify_key.encode(encoder=HexEncoder).decode()
    return sk, pk


def signed(sk, program, instruction, **args):
    """Build and sign a transaction with the signer's next nonce."""
    sender = sk.verify_key.encode(encoder=HexEncoder).decode()
    tx = Transaction(
        sender=sender,
        instruction=instruction,
        args=args,
        nonce=program.state.get_nonce(sender),
    )
    tx.sign(sk)
    return tx


def run_demo(price, unlock_in):
    state = State()
    program = TimeCapsuleProgram(state)
    program.events.subscribe(lambda event: logger.info("Event: %s", event.to_dict()))

    authority_sk, authority_pk = create_wallet()
    treasury_sk, treasury_pk = create_wallet()
    alice_sk, alice_pk = create_wallet()

    logger.info("Authority Address: %s...", authority_pk[:10])
    logger.info("Treasury Address: %s...", treasury_pk[:10])
    logger.info("Alice Address: %s...", alice_pk[:10])

    program.state.airdrop(alice_pk, DEFAULT_AIRDROP + price)

    # -------------------------------
    # Configuration
    # -------------------------------

    logger.info("[1] Config: price=%d, treasury=%s...", price, treasury_pk[:10])
    program.process_transaction(
        signed(authority_sk, program, "initialize_config", price=price, treasury=treasury_pk)
    )

    # -------------------------------
    # Capsule Creation
    # -------------------------------

    now = int(time.time())
    password_hash = hash_password("correct horse battery staple")

    logger.info("[2] Alice seals a capsule unlocking in %d seconds", unlock_in)
    capsule_id = program.process_transaction(
        signed(
            alice_sk,
            program,
            "create_capsule",
            encrypted_message="c2VhbGVkIGJ5IGFsaWNl",
            unlock_timestamp=now + unlock_in,
            recipient_email_hash=hash_email("bob@example.com"),
            password_hash=password_hash,
            password_hint="The usual phrase",
            message_title="For Bob",
            treasury=treasury_pk,
        ),
        now=now,
    )
    logger.info("Capsule ID: %s", capsule_id)
    logger.info("Treasury Balance: %d", program.state.get_balance(treasury_pk))
    logger.info("Alice Balance: %d", program.state.get_balance(alice_pk))

    # -------------------------------
    # Retrieval
    # -------------------------------

    logger.info("[3] Public info: %s", program.get_capsule_info(capsule_id).to_dict())

    logger.info("[4] Retrieval before unlock")
    try:
        program.retrieve_message(password_hash, capsule_id, now=now + unlock_in // 2)
    except TimeCapsuleError as e:
        logger.info("Refused: %s", e)

    later = now + unlock_in + 100

    logger.info("[5] Retrieval after unlock with a wrong password")
    try:
        program.retrieve_message(hash_password("wrong"), capsule_id, now=later)
    except TimeCapsuleError as e:
        logger.info("Refused: %s", e)

    logger.info("[6] Retrieval after unlock with the right password")
    message = program.retrieve_message(password_hash, capsule_id, now=later)
    logger.info("Encrypted message: %s", message)

    program.mark_claimed(password_hash, capsule_id, now=later)
    logger.info("[7] Claimed: %s", program.get_capsule_info(capsule_id).is_claimed)

    return program, capsule_id


def main():
    parser = argparse.ArgumentParser(description="Time capsule escrow demo")
    parser.add_argument("--price", type=int, default=DEFAULT_PRICE, help="Fee per capsule")
    parser.add_argument("--unlock-in", type=int, default=DEFAULT_UNLOCK_DELAY, help="Seconds until unlock")
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if args.unlock_in <= 0:
        parser.error("--unlock-in must be positive")

    run_demo(args.price, args.unlock_in)


if __name__ == "__main__":
    main()
