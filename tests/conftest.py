"""
Shared fixtures for enject tests
"""

import pytest

from enject.kdf import KdfParams
from enject.secret import SecretString

# Very low cost so the suite stays fast
FAST_PARAMS = KdfParams(m_cost=1024, t_cost=1, p_cost=1)
TEST_SALT = bytes(range(32))


@pytest.fixture
def fast_params():
    return FAST_PARAMS


@pytest.fixture
def salt():
    return TEST_SALT


@pytest.fixture
def password():
    return SecretString("test-password-do-not-use")


@pytest.fixture
def store_path(tmp_path):
    return tmp_path / "store"
