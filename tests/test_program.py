import threading
import unittest
from nacl.signing import SigningKey
from nacl.encoding import HexEncoder

from timecapsule import (
    State,
    TimeCapsuleProgram,
    CapsuleCreated,
    CapsuleClaimed,
    AlreadyInitialized,
    HintTooLong,
    InsufficientBalanceError,
    InvalidEmailHash,
    InvalidPassword,
    InvalidPasswordHash,
    InvalidTreasury,
    InvalidUnlockTime,
    MessageTooLong,
    RecordNotFoundError,
    StillLocked,
    TitleTooLong,
    UnauthorizedAccess,
    capsule_space,
)

NOW = 1_700_000_000


def new_identity():
    sk = SigningKey.generate()
    return sk.verify_key.encode(encoder=HexEncoder).decode()


class ProgramTestCase(unittest.TestCase):

    def setUp(self):
        self.state = State()
        self.program = TimeCapsuleProgram(self.state, clock=lambda: NOW)

        self.authority = new_identity()
        self.treasury = new_identity()
        self.alice = new_identity()
        self.bob = new_identity()

        self.program.state.airdrop(self.alice, 1000)
        self.program.initialize_config(100, self.treasury, self.authority)

        self.password_hash = "b" * 64

    def create(self, **overrides):
        params = {
            "encrypted_message": "abc",
            "unlock_timestamp": NOW + 3600,
            "recipient_email_hash": "a" * 64,
            "password_hash": self.password_hash,
            "password_hint": "Your favourite colour",
            "message_title": "My first capsule",
            "sender": self.alice,
            "treasury": self.treasury,
            "now": NOW,
        }
        params.update(overrides)
        return self.program.create_capsule(**params)

    def balances(self):
        return (
            self.program.state.get_balance(self.alice),
            self.program.state.get_balance(self.treasury),
        )


class TestConfig(ProgramTestCase):

    def test_initialize_sets_authority_to_caller(self):
        config = self.program.get_config()
        self.assertEqual(config.price, 100)
        self.assertEqual(config.authority, self.authority)
        self.assertEqual(config.treasury, self.treasury)

    def test_initialize_twice_fails(self):
        with self.assertRaises(AlreadyInitialized):
            self.program.initialize_config(5, self.bob, self.bob)

        # Original config untouched
        self.assertEqual(self.program.get_config().authority, self.authority)

    def test_commits_land_in_the_given_state(self):
        self.assertIs(self.program.state, self.state)
        self.assertTrue(self.state.has_record(self.program.config_address))

        self.create()
        self.assertEqual(self.state.get_balance(self.alice), 900)
        self.assertEqual(self.state.get_balance(self.treasury), 100)

    def test_separate_deployments_have_separate_configs(self):
        other = TimeCapsuleProgram(self.state, program_id="other-program")
        other.initialize_config(7, self.bob, self.bob)

        self.assertNotEqual(other.config_address, self.program.config_address)
        self.assertEqual(other.get_config().price, 7)
        self.assertEqual(self.program.get_config().price, 100)

    def test_deployments_share_one_ledger(self):
        other = TimeCapsuleProgram(self.state, program_id="other-program")
        other.initialize_config(50, self.bob, self.bob)

        self.create()
        other.create_capsule("abc", NOW + 10, "a" * 64, "b" * 64, "", "", self.alice, self.bob, now=NOW)

        # One ledger: both fees come out of the same balance
        self.assertEqual(self.state.get_balance(self.alice), 850)
        self.assertEqual(self.program.state.get_balance(self.alice), 850)
        self.assertEqual(other.state.get_balance(self.alice), 850)
        self.assertEqual(self.state.get_balance(self.treasury), 100)
        self.assertEqual(self.state.get_balance(self.bob), 50)

    def test_initialize_with_non_string_identity(self):
        program = TimeCapsuleProgram(State(), program_id="numeric-ids")
        config = program.initialize_config(1, 42, 7)

        self.assertEqual(config.treasury, 42)
        self.assertEqual(program.get_config().authority, 7)

    def test_update_price_by_authority(self):
        self.program.update_price(250, self.authority)
        self.assertEqual(self.program.get_config().price, 250)

    def test_update_price_to_zero_allowed(self):
        self.program.update_price(0, self.authority)
        self.assertEqual(self.program.get_config().price, 0)

    def test_update_price_unauthorized(self):
        for caller in (self.alice, self.treasury):
            with self.assertRaises(UnauthorizedAccess):
                self.program.update_price(1, caller)
        self.assertEqual(self.program.get_config().price, 100)

    def test_update_price_rejects_negative(self):
        with self.assertRaises(ValueError):
            self.program.update_price(-1, self.authority)

    def test_new_price_applies_to_next_capsule(self):
        self.program.update_price(30, self.authority)
        self.create()
        self.assertEqual(self.balances(), (970, 30))

    def test_create_without_config_fails(self):
        bare = TimeCapsuleProgram(State())
        bare.state.airdrop(self.alice, 1000)
        with self.assertRaises(RecordNotFoundError):
            bare.create_capsule("abc", NOW + 10, "a" * 64, "b" * 64, "", "", self.alice, self.treasury, now=NOW)


class TestCreateCapsule(ProgramTestCase):

    def test_scenario_a_create_charges_fee(self):
        capsule_id = self.create()

        self.assertEqual(self.balances(), (900, 100))
        info = self.program.get_capsule_info(capsule_id)
        self.assertFalse(info.is_claimed)
        self.assertEqual(info.sender, self.alice)
        self.assertEqual(info.created_at, NOW)
        self.assertEqual(info.unlock_timestamp, NOW + 3600)

    def test_create_emits_event(self):
        capsule_id = self.create()

        events = self.program.events.of_type(CapsuleCreated)
        self.assertEqual(len(events), 1)
        self.assertEqual(events[0].capsule_id, capsule_id)
        self.assertEqual(events[0].sender, self.alice)
        self.assertEqual(events[0].unlock_timestamp, NOW + 3600)
        self.assertEqual(events[0].created_at, NOW)

    def test_record_space_follows_field_lengths(self):
        capsule_id = self.create(encrypted_message="x" * 1234)
        account = self.program.state.accounts[capsule_id]
        self.assertEqual(account["space"], capsule_space("x" * 1234, "Your favourite colour", "My first capsule"))

    def test_capsules_get_distinct_ids(self):
        first = self.create()
        second = self.create()
        self.assertNotEqual(first, second)
        self.assertEqual(self.balances(), (800, 200))

    def test_uses_clock_when_now_omitted(self):
        capsule_id = self.create(now=None)
        self.assertEqual(self.program.get_capsule_info(capsule_id).created_at, NOW)

    def test_limits_are_inclusive(self):
        capsule_id = self.create(
            encrypted_message="m" * 5000,
            password_hint="h" * 500,
            message_title="t" * 200,
        )
        self.assertIsNotNone(self.program.get_capsule_info(capsule_id))

    def test_validation_errors(self):
        cases = [
            ({"unlock_timestamp": NOW}, InvalidUnlockTime),
            ({"unlock_timestamp": NOW - 1}, InvalidUnlockTime),
            ({"encrypted_message": "m" * 5001}, MessageTooLong),
            ({"password_hint": "h" * 501}, HintTooLong),
            ({"message_title": "t" * 201}, TitleTooLong),
            ({"recipient_email_hash": "a" * 63}, InvalidEmailHash),
            ({"recipient_email_hash": "a" * 65}, InvalidEmailHash),
            ({"password_hash": "b" * 63}, InvalidPasswordHash),
            ({"treasury": self.bob}, InvalidTreasury),
        ]
        for overrides, error in cases:
            with self.subTest(error=error.__name__, overrides=list(overrides)):
                with self.assertRaises(error):
                    self.create(**overrides)

                # Nothing persisted, nothing paid
                self.assertEqual(self.balances(), (1000, 0))
                self.assertEqual(self.program.events.of_type(CapsuleCreated), [])

    def test_validation_order(self):
        # Everything wrong at once: the unlock time is reported first
        with self.assertRaises(InvalidUnlockTime):
            self.create(unlock_timestamp=NOW, encrypted_message="m" * 6000, treasury=self.bob)

        with self.assertRaises(MessageTooLong):
            self.create(encrypted_message="m" * 6000, password_hint="h" * 600)

        with self.assertRaises(InvalidEmailHash):
            self.create(recipient_email_hash="short", password_hash="short", treasury=self.bob)

    def test_lengths_are_utf8_bytes(self):
        # 2 bytes per character
        with self.assertRaises(TitleTooLong):
            self.create(message_title="é" * 101)

    def test_scenario_e_bad_email_hash_leaves_no_trace(self):
        accounts_before = set(self.program.state.accounts)

        with self.assertRaises(InvalidEmailHash):
            self.create(recipient_email_hash="a" * 65)

        self.assertEqual(set(self.program.state.accounts), accounts_before)
        self.assertEqual(self.balances(), (1000, 0))
        self.assertEqual(self.program.state.get_nonce(self.alice), 0)

    def test_insufficient_balance_aborts_creation(self):
        accounts_before = set(self.program.state.accounts)

        with self.assertRaises(InsufficientBalanceError):
            self.create(sender=self.bob)

        self.assertEqual(set(self.program.state.accounts), accounts_before)
        self.assertEqual(self.program.state.get_balance(self.treasury), 0)
        self.assertEqual(len(self.program.events), 0)

    def test_failed_allocation_refunds_fee(self):
        # Occupy the slot the next capsule would be written to
        slot = self.program.capsule_address(self.alice, 0)
        self.program.state.create_record(slot, {"kind": "Squatter"}, 0, payer=self.bob)

        with self.assertRaises(AlreadyInitialized):
            self.create()

        self.assertEqual(self.balances(), (1000, 0))

    def test_rent_charged_by_size(self):
        program = TimeCapsuleProgram(State(rent_per_byte=2))
        program.state.airdrop(self.authority, 10_000)
        program.state.airdrop(self.alice, 10_000)
        program.initialize_config(100, self.treasury, self.authority)

        capsule_id = program.create_capsule(
            "abc", NOW + 10, "a" * 64, "b" * 64, "hint", "title", self.alice, self.treasury, now=NOW
        )

        space = capsule_space("abc", "hint", "title")
        self.assertEqual(program.state.get_balance(capsule_id), space * 2)
        self.assertEqual(program.state.get_balance(self.alice), 10_000 - 100 - space * 2)


class TestRetrieveAndClaim(ProgramTestCase):

    def setUp(self):
        super().setUp()
        self.capsule_id = self.create()

    def test_scenario_b_still_locked(self):
        with self.assertRaises(StillLocked):
            self.program.retrieve_message(self.password_hash, self.capsule_id, now=NOW + 1800)

    def test_locked_check_precedes_password_check(self):
        with self.assertRaises(StillLocked):
            self.program.retrieve_message("c" * 64, self.capsule_id, now=NOW + 1800)
        with self.assertRaises(StillLocked):
            self.program.mark_claimed("c" * 64, self.capsule_id, now=NOW + 1800)

    def test_scenario_c_wrong_password(self):
        with self.assertRaises(InvalidPassword):
            self.program.retrieve_message("c" * 64, self.capsule_id, now=NOW + 3700)

    def test_password_comparison_is_exact(self):
        near_misses = ["b" * 63 + "c", "B" * 64, "b" * 63, "b" * 64 + " "]
        for candidate in near_misses:
            with self.subTest(candidate=candidate):
                with self.assertRaises(InvalidPassword):
                    self.program.retrieve_message(candidate, self.capsule_id, now=NOW + 3700)
                with self.assertRaises(InvalidPassword):
                    self.program.mark_claimed(candidate, self.capsule_id, now=NOW + 3700)
        self.assertFalse(self.program.get_capsule_info(self.capsule_id).is_claimed)

    def test_scenario_d_retrieve_and_claim(self):
        message = self.program.retrieve_message(self.password_hash, self.capsule_id, now=NOW + 3700)
        self.assertEqual(message, "abc")

        self.program.mark_claimed(self.password_hash, self.capsule_id, now=NOW + 3700)
        self.assertTrue(self.program.get_capsule_info(self.capsule_id).is_claimed)

        claims = self.program.events.of_type(CapsuleClaimed)
        self.assertEqual(len(claims), 1)
        self.assertEqual(claims[0].capsule_id, self.capsule_id)
        self.assertEqual(claims[0].claimed_at, NOW + 3700)

    def test_unlocks_exactly_at_timestamp(self):
        message = self.program.retrieve_message(self.password_hash, self.capsule_id, now=NOW + 3600)
        self.assertEqual(message, "abc")

    def test_retrieve_is_read_only_and_repeatable(self):
        accounts_before = self.program.state.accounts.copy()
        for _ in range(3):
            self.program.retrieve_message(self.password_hash, self.capsule_id, now=NOW + 3700)

        self.assertEqual(self.program.state.accounts, accounts_before)
        self.assertFalse(self.program.get_capsule_info(self.capsule_id).is_claimed)
        self.assertEqual(self.program.events.of_type(CapsuleClaimed), [])

    def test_retrieve_after_claim_still_works(self):
        self.program.mark_claimed(self.password_hash, self.capsule_id, now=NOW + 3700)
        message = self.program.retrieve_message(self.password_hash, self.capsule_id, now=NOW + 3800)
        self.assertEqual(message, "abc")

    def test_failed_claim_leaves_capsule_unclaimed(self):
        with self.assertRaises(StillLocked):
            self.program.mark_claimed(self.password_hash, self.capsule_id, now=NOW)
        self.assertFalse(self.program.get_capsule_info(self.capsule_id).is_claimed)
        self.assertEqual(self.program.events.of_type(CapsuleClaimed), [])

    def test_double_claim_succeeds_and_re_emits(self):
        # Open question: a second claim is not rejected. If the intended
        # contract is "claim once", this test must change along with the guard.
        self.program.mark_claimed(self.password_hash, self.capsule_id, now=NOW + 3700)
        self.program.mark_claimed(self.password_hash, self.capsule_id, now=NOW + 3800)

        self.assertTrue(self.program.get_capsule_info(self.capsule_id).is_claimed)
        claims = self.program.events.of_type(CapsuleClaimed)
        self.assertEqual([c.claimed_at for c in claims], [NOW + 3700, NOW + 3800])

    def test_unknown_capsule(self):
        with self.assertRaises(RecordNotFoundError):
            self.program.retrieve_message(self.password_hash, "f" * 40, now=NOW + 3700)

    def test_config_address_is_not_a_capsule(self):
        with self.assertRaises(RecordNotFoundError):
            self.program.get_capsule_info(self.program.config_address)


class TestConcurrency(ProgramTestCase):

    def run_threads(self, targets):
        errors = []

        def guarded(target):
            try:
                target()
            except Exception as e:
                errors.append(e)

        threads = [threading.Thread(target=guarded, args=(target,)) for target in targets]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=10)
        self.assertEqual(errors, [])

    def test_concurrent_creations_all_commit(self):
        senders = [new_identity() for _ in range(8)]
        for sender in senders:
            self.state.airdrop(sender, 100)

        ids = []
        self.run_threads([
            lambda sender=sender: ids.append(self.create(sender=sender))
            for sender in senders
        ])

        self.assertEqual(len(set(ids)), 8)
        self.assertEqual(self.state.get_balance(self.treasury), 8 * 100)
        for sender in senders:
            self.assertEqual(self.state.get_balance(sender), 0)
        self.assertEqual(len(self.program.events.of_type(CapsuleCreated)), 8)

    def test_concurrent_creations_by_one_sender(self):
        self.run_threads([self.create for _ in range(5)])

        self.assertEqual(self.state.get_nonce(self.alice), 5)
        self.assertEqual(self.balances(), (500, 500))

    def test_concurrent_claims_both_succeed(self):
        capsule_id = self.create()

        self.run_threads([
            lambda: self.program.mark_claimed(self.password_hash, capsule_id, now=NOW + 3700)
            for _ in range(2)
        ])

        self.assertTrue(self.program.get_capsule_info(capsule_id).is_claimed)
        self.assertEqual(len(self.program.events.of_type(CapsuleClaimed)), 2)

    def test_deployments_on_one_ledger_serialize(self):
        other = TimeCapsuleProgram(self.state, program_id="other-program", clock=lambda: NOW)
        other.initialize_config(100, self.treasury, self.authority)

        def create_in(program):
            return lambda: program.create_capsule(
                "abc", NOW + 10, "a" * 64, "b" * 64, "", "", self.alice, self.treasury, now=NOW
            )

        self.run_threads([create_in(self.program), create_in(other)] * 5)

        self.assertEqual(self.balances(), (0, 1000))


class TestQueries(ProgramTestCase):

    def test_info_hides_secrets(self):
        capsule_id = self.create(encrypted_message="top secret")
        info = self.program.get_capsule_info(capsule_id).to_dict()

        self.assertEqual(
            set(info),
            {"sender", "unlock_timestamp", "password_hint", "message_title", "created_at", "is_claimed"},
        )
        self.assertNotIn("top secret", info.values())
        self.assertNotIn(self.password_hash, info.values())

    def test_info_available_while_locked(self):
        capsule_id = self.create()
        self.assertEqual(self.program.get_capsule_info(capsule_id).password_hint, "Your favourite colour")

    def test_user_capsules_is_empty(self):
        self.create()
        self.assertEqual(self.program.get_user_capsules(self.alice), [])
        self.assertEqual(self.program.get_user_capsules(self.bob), [])


if __name__ == '__main__':
    unittest.main()
