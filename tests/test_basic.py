import pytest

from tokendealer import AsyncTokenDealer, DealerConfig, TokenDealer, UsageStore


def test_construct_sync():
    TokenDealer()
    TokenDealer(store=UsageStore(10), group="search", wait=True)


@pytest.mark.asyncio
async def test_construct_async():
    AsyncTokenDealer(config=DealerConfig(group="g", wait=30.0))


def test_config_object_wins_over_kwargs():
    d = TokenDealer(config=DealerConfig(group="from-config"), group="from-kwargs")
    assert d.config.group == "from-config"


def test_private_store_uses_max_entries():
    d = TokenDealer(max_entries=3)
    assert d.store.max_entries == 3  # noqa: PLR2004


def test_dealers_do_not_share_state_unless_given_the_same_store():
    a, b = TokenDealer(), TokenDealer()
    assert a.store is not b.store
    shared = UsageStore()
    assert TokenDealer(store=shared).store is TokenDealer(store=shared).store


def test_bad_wait_rejected():
    with pytest.raises(TypeError):
        TokenDealer(wait="sometimes")
