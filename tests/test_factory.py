import threading

import pytest
from web3 import Web3

from pairfactory import (
    MAX_PROTOCOL_FEE,
    ZERO_ADDRESS,
    CloneDeployer,
    ConfigurationError,
    DeploymentFailed,
    ERC721Collection,
    FeeTooLarge,
    ImmutableArgs,
    InitializationFailed,
    PairFactory,
    PairVariant,
    PermissionDenied,
    Revert,
    ZeroAddress,
)

from conftest import GENESIS_TIME, THIRTY_DAYS


def names(factory, name=""):
    return [e["name"] for e in factory.events(name)]


# =============================================================================
# FEES
# =============================================================================

def test_fee_ceiling(factory, owner):
    factory.change_fee_multiplier(owner, 5 * 10 ** 16)
    assert factory.fee_multiplier == 5 * 10 ** 16

    with pytest.raises(FeeTooLarge) as info:
        factory.change_fee_multiplier(owner, 15 * 10 ** 16)
    assert info.value.maximum == MAX_PROTOCOL_FEE

    assert factory.fee_multiplier == 5 * 10 ** 16
    assert names(factory, "ProtocolFeeMultiplierUpdate") == ["ProtocolFeeMultiplierUpdate"]


def test_fee_at_ceiling_is_accepted(factory, owner):
    factory.change_fee_multiplier(owner, MAX_PROTOCOL_FEE)
    assert factory.fee_multiplier == MAX_PROTOCOL_FEE


@pytest.mark.parametrize("bad", [-1, 1.5, "100", True])
def test_fee_must_be_non_negative_int(factory, owner, bad):
    with pytest.raises(ConfigurationError):
        factory.change_fee_multiplier(owner, bad)


def test_fee_changes_are_owner_only(factory, alice):
    with pytest.raises(PermissionDenied):
        factory.change_fee_multiplier(alice, 1)
    with pytest.raises(PermissionDenied):
        factory.change_fee_recipient(alice, alice)


def test_change_fee_recipient(factory, owner, alice):
    factory.change_fee_recipient(owner, alice)
    assert factory.fee_recipient == alice
    assert factory.events("ProtocolFeeRecipientUpdate")[-1]["args"] == {"recipient": alice}

    with pytest.raises(ZeroAddress):
        factory.change_fee_recipient(owner, ZERO_ADDRESS)
    assert factory.fee_recipient == alice


def test_deploy_validates_settings(ledger, owner, templates):
    native, token = templates[PairVariant.NATIVE], templates[PairVariant.TOKEN]
    with pytest.raises(ZeroAddress):
        PairFactory.deploy(ledger, owner, ZERO_ADDRESS, token, fee_recipient=owner)
    with pytest.raises(ZeroAddress):
        PairFactory.deploy(ledger, owner, native, token, fee_recipient=ZERO_ADDRESS)
    with pytest.raises(FeeTooLarge):
        PairFactory.deploy(ledger, owner, native, token, fee_recipient=owner,
                           fee_multiplier=MAX_PROTOCOL_FEE + 1)


def test_pairs_read_live_fee(ledger, factory, owner, alice, native_pair):
    assert ledger.call(alice, native_pair, "protocol_fee_multiplier") == 0
    factory.change_fee_multiplier(owner, 10 ** 16)
    assert ledger.call(alice, native_pair, "protocol_fee_multiplier") == 10 ** 16


# =============================================================================
# PAIR CREATION
# =============================================================================

def test_create_native_pair(ledger, factory, alice, nft):
    predicted = factory.predict_pair_address(PairVariant.NATIVE, nft, THIRTY_DAYS)

    pair = factory.create_pair(alice, PairVariant.NATIVE, nft, alice, THIRTY_DAYS, 7)

    assert pair == predicted
    assert ledger.call(alice, nft, "owner_of", 7) == pair
    assert factory.is_pair(pair, PairVariant.NATIVE)
    assert not factory.is_pair(pair, PairVariant.TOKEN)
    assert factory.pair_variant(pair) == PairVariant.NATIVE
    assert factory.pair_count == 1

    new_pair = factory.events("NewPair")
    assert new_pair[-1]["args"] == {"pair": pair, "variant": "native"}


def test_pair_state_after_initialize(ledger, factory, alice, nft, native_pair):
    assert ledger.call(alice, native_pair, "owner") == alice
    assert ledger.call(alice, native_pair, "factory") == factory.address
    assert ledger.call(alice, native_pair, "nft") == nft
    assert ledger.call(alice, native_pair, "duration") == THIRTY_DAYS
    assert ledger.call(alice, native_pair, "lock_until") == GENESIS_TIME + THIRTY_DAYS
    assert ledger.call(alice, native_pair, "token") is None
    assert ledger.call(alice, native_pair, "pair_variant") == PairVariant.NATIVE


def test_zero_asset_recipient_means_pair(ledger, factory, alice, nft):
    pair = factory.create_pair(alice, "native", nft, ZERO_ADDRESS, 60, 1)
    assert ledger.call(alice, pair, "asset_recipient") == pair


def test_initialize_only_once(ledger, factory, alice, native_pair):
    with pytest.raises(Revert, match="Already initialized"):
        ledger.call(factory.address, native_pair, "initialize", alice, alice, THIRTY_DAYS)
    with pytest.raises(Revert, match="Only the factory"):
        ledger.call(alice, native_pair, "initialize", alice, alice, THIRTY_DAYS)


def test_create_token_pair(ledger, factory, alice, token, token_pair):
    assert factory.is_pair(token_pair, PairVariant.TOKEN)
    assert not factory.is_pair(token_pair, PairVariant.NATIVE)
    assert ledger.call(alice, token_pair, "token") == token


def test_successive_pairs_get_distinct_addresses(factory, alice, nft):
    first = factory.create_pair(alice, PairVariant.NATIVE, nft, alice, 60, 1)
    second = factory.create_pair(alice, PairVariant.NATIVE, nft, alice, 60, 2)
    assert first != second
    assert factory.is_pair(first, PairVariant.NATIVE)
    assert factory.is_pair(second, PairVariant.NATIVE)


@pytest.mark.parametrize("variant,with_token", [
    ("bogus", False),
    (PairVariant.TOKEN, False),
    (PairVariant.NATIVE, True),
])
def test_create_rejects_bad_variant_args(factory, alice, nft, token, variant, with_token):
    with pytest.raises(ConfigurationError):
        factory.create_pair(alice, variant, nft, alice, 60, 1,
                            token=token if with_token else None)
    assert factory.pair_count == 0


def test_create_rejects_zero_nft(factory, alice):
    with pytest.raises(ZeroAddress):
        factory.create_pair(alice, PairVariant.NATIVE, ZERO_ADDRESS, alice, 60, 1)


def test_failed_creation_leaves_no_trace(ledger, factory, alice, bob, nft):
    predicted = factory.predict_pair_address(PairVariant.NATIVE, nft, THIRTY_DAYS)

    # bob owns nothing in the collection
    with pytest.raises(InitializationFailed):
        factory.create_pair(bob, PairVariant.NATIVE, nft, bob, THIRTY_DAYS, 4)

    assert ledger.get_code(predicted) == b""
    assert factory.pair_count == 0
    assert factory.events("NewPair") == []
    assert ledger.call(alice, nft, "owner_of", 4) == alice


def test_missing_nft_id_fails_initialization(factory, alice, nft):
    with pytest.raises(InitializationFailed):
        factory.create_pair(alice, PairVariant.NATIVE, nft, alice, 60, 99)


def test_unexpected_setup_error_is_wrapped(ledger, factory, alice, nft):
    predicted = factory.predict_pair_address(PairVariant.NATIVE, nft, 60)

    # an unhashable id blows up inside the collection, not as a revert
    with pytest.raises(InitializationFailed):
        factory.create_pair(alice, PairVariant.NATIVE, nft, alice, 60, [7])

    assert factory.pair_count == 0
    assert ledger.get_code(predicted) == b""


class StallingCollection(ERC721Collection):
    """Blocks inside transfer_from until released, then refuses."""

    def __init__(self, entered, release):
        super().__init__("Stalling", "STL")
        self.entered = entered
        self.release = release

    def transfer_from(self, ctx, owner, to, token_id):
        self.entered.set()
        self.release.wait(5)
        ctx.require(False, "transfer refused")


def test_readers_never_see_pending_creation(ledger, factory, owner, alice):
    entered, release = threading.Event(), threading.Event()
    collection = ledger.deploy(owner, StallingCollection(entered, release))
    predicted = factory.predict_pair_address(PairVariant.NATIVE, collection, 60)
    failures, seen = [], []

    def create():
        try:
            factory.create_pair(alice, PairVariant.NATIVE, collection, alice, 60, 1)
        except InitializationFailed as e:
            failures.append(e)

    def read():
        seen.append((factory.is_pair(predicted, PairVariant.NATIVE),
                     factory.pair_variant(predicted),
                     factory.pair_count,
                     factory.status()["pair_count"]))

    writer = threading.Thread(target=create, daemon=True)
    writer.start()
    assert entered.wait(5)

    reader = threading.Thread(target=read, daemon=True)
    reader.start()
    reader.join(0.2)
    assert reader.is_alive()

    release.set()
    writer.join(5)
    reader.join(5)

    assert len(failures) == 1
    assert seen == [(False, None, 0, 0)]
    assert ledger.get_code(predicted) == b""


def test_front_run_creation_fails(ledger, factory, alice, nft):
    predicted = factory.predict_pair_address(PairVariant.NATIVE, nft, 60)
    ledger.install_code(predicted, b"\x00")

    with pytest.raises(DeploymentFailed):
        factory.create_pair(alice, PairVariant.NATIVE, nft, alice, 60, 1)
    assert factory.pair_count == 0


# =============================================================================
# RECOGNITION
# =============================================================================

def test_is_pair_rejects_non_pairs(factory, alice, templates, nft):
    assert not factory.is_pair(alice, PairVariant.NATIVE)
    assert not factory.is_pair(factory.address, PairVariant.NATIVE)
    assert not factory.is_pair(nft, PairVariant.NATIVE)
    assert not factory.is_pair(templates[PairVariant.NATIVE], PairVariant.NATIVE)
    assert not factory.is_pair("0xdeadbeef", PairVariant.NATIVE)
    assert factory.pair_variant(alice) is None


def test_is_pair_unknown_variant_is_false(factory, native_pair):
    assert factory.is_pair(native_pair, "bogus") is False


def test_is_pair_accepts_variant_tag(factory, native_pair):
    assert factory.is_pair(native_pair, "native")
    assert factory.is_pair(native_pair, "NATIVE")


def test_other_factory_pairs_are_not_ours(ledger, owner, alice, templates, factory, nft):
    rival = PairFactory.deploy(ledger, owner, templates[PairVariant.NATIVE],
                               templates[PairVariant.TOKEN], fee_recipient=owner)
    ledger.call(alice, nft, "set_approval_for_all", rival.address, True)
    foreign = rival.create_pair(alice, PairVariant.NATIVE, nft, alice, THIRTY_DAYS, 2)

    assert rival.is_pair(foreign, PairVariant.NATIVE)
    assert not factory.is_pair(foreign, PairVariant.NATIVE)


def test_hand_deployed_clone_with_our_factory_embedded(ledger, factory, templates, nft, alice):
    # Same bytes a genuine pair would have, but deployed by someone else
    args = ImmutableArgs(factory=factory.address, nft=nft, duration=60).pack()
    impostor = CloneDeployer(ledger).deploy(alice, templates[PairVariant.NATIVE], args,
                                            bytes(Web3.keccak(text="impostor")))
    # Bytecode identity is what membership checks
    assert factory.is_pair(impostor, PairVariant.NATIVE)
    with pytest.raises(Revert):
        ledger.call(alice, impostor, "initialize", alice, alice, 60)


def test_factory_view_is_pair(ledger, factory, alice, native_pair):
    assert ledger.call(alice, factory.address, "is_pair", native_pair, "native") is True
    assert ledger.call(alice, factory.address, "is_pair", alice, "native") is False


# =============================================================================
# DEPOSITS
# =============================================================================

def test_deposit_nft_into_pair(ledger, factory, alice, nft, native_pair):
    assert factory.deposit_nft(alice, nft, 8, native_pair) is True
    assert ledger.call(alice, nft, "owner_of", 8) == native_pair
    assert factory.events("NFTDeposit")[-1]["args"] == {"recipient": native_pair, "nft_id": 8}


def test_deposit_nfts_batch(ledger, factory, alice, nft, native_pair):
    assert factory.deposit_nfts(alice, nft, [1, 2, 3], native_pair) == 3
    assert len(factory.events("NFTDeposit")) == 3


def test_deposit_nft_to_non_pair_is_silent(ledger, factory, alice, bob, nft):
    assert factory.deposit_nft(alice, nft, 5, bob) is False
    assert ledger.call(alice, nft, "owner_of", 5) == bob
    assert factory.events("NFTDeposit") == []


def test_failed_batch_moves_nothing(ledger, factory, alice, nft, native_pair):
    with pytest.raises(Revert):
        factory.deposit_nfts(alice, nft, [1, 99], native_pair)
    assert ledger.call(alice, nft, "owner_of", 1) == alice
    assert factory.events("NFTDeposit") == []


def test_foreign_token_deposit_emits_nothing(ledger, factory, alice, foreign_token, token_pair):
    assert factory.deposit_token(alice, foreign_token, token_pair, 100) is False
    assert ledger.call(alice, foreign_token, "balance_of", token_pair) == 100
    assert factory.events("TokenDeposit") == []


def test_token_deposit_into_matching_pair(ledger, factory, alice, token, token_pair):
    assert factory.deposit_token(alice, token, token_pair, 250) is True
    assert ledger.call(alice, token, "balance_of", token_pair) == 250
    assert factory.events("TokenDeposit")[-1]["args"] == {"recipient": token_pair, "amount": 250}


def test_token_deposit_into_native_pair_emits_nothing(ledger, factory, alice, token, native_pair):
    assert factory.deposit_token(alice, token, native_pair, 10) is False
    assert ledger.call(alice, token, "balance_of", native_pair) == 10


# =============================================================================
# FUNDS & OWNERSHIP
# =============================================================================

def test_withdraw_native_fees(ledger, factory, owner, alice):
    factory.change_fee_recipient(owner, alice)
    factory.receive(owner, 1000)
    before = ledger.balance_of(alice)

    assert factory.withdraw_native_fees(owner) == 1000
    assert ledger.balance_of(factory.address) == 0
    assert ledger.balance_of(alice) == before + 1000


def test_withdraw_is_owner_only(factory, owner, alice):
    factory.receive(owner, 10)
    with pytest.raises(PermissionDenied):
        factory.withdraw_native_fees(alice)


def test_withdraw_token_fees(ledger, factory, owner, alice, token):
    ledger.call(alice, token, "transfer", factory.address, 500)

    factory.withdraw_token_fees(owner, token, 300)
    assert ledger.call(alice, token, "balance_of", owner) == 300
    assert ledger.call(alice, token, "balance_of", factory.address) == 200


def test_transfer_ownership(factory, owner, alice):
    factory.transfer_ownership(owner, alice)
    assert factory.owner == alice
    assert factory.events("OwnershipTransferred")[-1]["args"] == {
        "previous_owner": owner, "new_owner": alice
    }

    with pytest.raises(PermissionDenied):
        factory.change_fee_multiplier(owner, 1)
    factory.change_fee_multiplier(alice, 1)

    with pytest.raises(ZeroAddress):
        factory.transfer_ownership(alice, ZERO_ADDRESS)


def test_status(factory, owner, native_pair):
    status = factory.status()
    assert status["owner"] == owner
    assert status["pair_count"] == 1
    assert status["max_protocol_fee"] == MAX_PROTOCOL_FEE
    assert set(status["templates"]) == {"native", "token"}
