import pytest

from pairfactory import (
    ERC20Token,
    ERC721Collection,
    Ledger,
    PairFactory,
    PairTemplate,
    PairVariant,
)

GENESIS_TIME = 1_700_000_000
THIRTY_DAYS = 30 * 24 * 3600
NFT_IDS = range(10)
TOKEN_SUPPLY = 10 ** 24


@pytest.fixture
def ledger():
    return Ledger(chain_id=1, timestamp=GENESIS_TIME)


@pytest.fixture
def owner(ledger):
    return ledger.create_account("owner", balance=10 ** 21)


@pytest.fixture
def alice(ledger):
    return ledger.create_account("alice", balance=10 ** 21)


@pytest.fixture
def bob(ledger):
    return ledger.create_account("bob", balance=10 ** 21)


@pytest.fixture
def templates(ledger, owner):
    return {
        PairVariant.NATIVE: ledger.deploy(owner, PairTemplate(PairVariant.NATIVE)),
        PairVariant.TOKEN: ledger.deploy(owner, PairTemplate(PairVariant.TOKEN)),
    }


@pytest.fixture
def factory(ledger, owner, templates):
    return PairFactory.deploy(ledger, owner, templates[PairVariant.NATIVE],
                              templates[PairVariant.TOKEN], fee_recipient=owner)


@pytest.fixture
def nft(ledger, owner, alice, factory):
    """Collection with ids 0..9 owned by alice, factory approved as operator."""
    address = ledger.deploy(owner, ERC721Collection("Test Apes", "APE"))
    for token_id in NFT_IDS:
        ledger.call(owner, address, "mint", alice, token_id)
    ledger.call(alice, address, "set_approval_for_all", factory.address, True)
    return address


def _funded_token(ledger, owner, alice, factory, name, symbol):
    address = ledger.deploy(owner, ERC20Token(name, symbol))
    ledger.call(owner, address, "mint", alice, TOKEN_SUPPLY)
    ledger.call(alice, address, "approve", factory.address, TOKEN_SUPPLY)
    return address


@pytest.fixture
def token(ledger, owner, alice, factory):
    return _funded_token(ledger, owner, alice, factory, "Test Dollar", "TUSD")


@pytest.fixture
def foreign_token(ledger, owner, alice, factory):
    return _funded_token(ledger, owner, alice, factory, "Other Coin", "OTH")


@pytest.fixture
def native_pair(factory, alice, nft):
    return factory.create_pair(alice, PairVariant.NATIVE, nft, alice, THIRTY_DAYS, 7)


@pytest.fixture
def token_pair(factory, alice, nft, token):
    return factory.create_pair(alice, PairVariant.TOKEN, nft, alice, THIRTY_DAYS, 3, token=token)
