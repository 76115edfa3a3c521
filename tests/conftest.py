"""Shared fixtures."""

import keyring
import pytest
from keyring.backend import KeyringBackend
from keyring.errors import KeyringError, PasswordDeleteError


class MemoryKeyring(KeyringBackend):
    """Dict-backed keyring so tests never touch the real keychain."""

    priority = 1

    def __init__(self):
        super().__init__()
        self.entries: dict[tuple[str, str], str] = {}
        self.fail_on_set: set[str] = set()
        self.fail_reads = False

    def get_password(self, service, username):
        if self.fail_reads:
            raise KeyringError("keychain locked")
        return self.entries.get((service, username))

    def set_password(self, service, username, password):
        if username in self.fail_on_set:
            raise KeyringError(f"cannot write {username}")
        self.entries[(service, username)] = password

    def delete_password(self, service, username):
        try:
            del self.entries[(service, username)]
        except KeyError:
            raise PasswordDeleteError(username)


@pytest.fixture
def memory_keyring():
    """Install an in-memory keyring backend for the duration of a test."""
    previous = keyring.get_keyring()
    backend = MemoryKeyring()
    keyring.set_keyring(backend)
    yield backend
    keyring.set_keyring(previous)
