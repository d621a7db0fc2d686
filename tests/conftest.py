import os
import warnings

import pytest

# Ignore warnings from app.shared
warnings.filterwarnings("ignore", category=DeprecationWarning, module="app.shared.*")

# Set test environment variables
os.environ.setdefault("JWT_SECRET", "test-jwt-secret")
os.environ.setdefault("ENCRYPTION_KEY", "test-encryption-key")

# Import database fixtures so they are available to all tests
from tests.fixtures.mongo_fixtures import *  # noqa: E402, F403

from app.domain.vault.credential_vault import CredentialVault  # noqa: E402

TEST_JWT_SECRET = "test-jwt-secret"


@pytest.fixture
def vault() -> CredentialVault:
    """Vault with a fixed test key."""
    return CredentialVault("unit-test-encryption-key")


@pytest.fixture
def jwt_secret() -> str:
    return TEST_JWT_SECRET
