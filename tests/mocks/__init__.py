"""Test mocks for manualboot.

Provides mock implementations for testing:
- FakeRemoteRunner: Simulates a remote host reachable over SSH
"""

from .fake_remote import FakeHostBehaviour, FakeRemoteRunner, FakeSession

__all__ = ["FakeRemoteRunner", "FakeHostBehaviour", "FakeSession"]
