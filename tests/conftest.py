import logging
from types import SimpleNamespace

import pytest

from config import load_settings
from doubles import BASE_ENV, WALLET, DummyWeb3


@pytest.fixture
def base_env():
    return dict(BASE_ENV)


@pytest.fixture
def settings(base_env):
    return load_settings(base_env)


@pytest.fixture
def test_logger():
    return logging.getLogger("fusion_demo.tests")


@pytest.fixture
def session(settings, test_logger):
    return SimpleNamespace(
        settings=settings,
        w3=DummyWeb3(),
        signer=SimpleNamespace(address=WALLET),
        smart_account=None,
        relay=None,
        logger=test_logger,
        address=WALLET,
    )
