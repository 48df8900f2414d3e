"""
Shared fixtures: an in-memory banking system and account factories
"""

import itertools

import pytest

from saxon_bank.config import SaxonConfig
from saxon_bank.context import RequestContext
from saxon_bank.storage import InMemoryStorage
from saxon_bank.system import BankingSystem


_counter = itertools.count(1)


def customer_fields(**overrides):
    """Valid registration data for a new US customer"""
    n = next(_counter)
    fields = {
        "email": f"customer{n}@example.com",
        "password": "s3cure-passw0rd",
        "name": f"Customer {n}",
        "date_of_birth": "1990-04-21",
        "country": "United States",
        "address_line1": f"{n} Main Street",
        "city": "Springfield",
        "zip_code": "62701",
        "state": "IL",
    }
    fields.update(overrides)
    return fields


@pytest.fixture
def config():
    return SaxonConfig(storage_backend="memory", database_path=":memory:",
                       jwt_secret="test-secret", log_level="WARNING")


@pytest.fixture
def system(config):
    banking_system = BankingSystem(config, storage=InMemoryStorage())
    yield banking_system
    banking_system.close()


@pytest.fixture
def register(system):
    """Factory: register a customer and return the Account"""
    def _register(**overrides):
        return system.account_manager.register(**customer_fields(**overrides))
    return _register


@pytest.fixture
def admin(system):
    return system.account_manager.ensure_admin("admin@saxonbank.com", "Saxon Admin", "admin-passw0rd")


@pytest.fixture
def admin_ctx(admin):
    return RequestContext.for_account(admin.id, is_admin=True)


def ctx_for(account):
    return RequestContext.for_account(account.id, is_admin=account.is_admin)


@pytest.fixture
def funded(system, register):
    """Factory: register a customer and deposit an opening balance"""
    def _funded(amount="100.00", **overrides):
        account = register(**overrides)
        system.ledger.deposit(ctx_for(account), account.id, amount)
        return system.account_manager.get_account(account.id)
    return _funded
