"""Test helper utilities."""

from tests.helpers.mock_chatwoot import HostSeeder, MockChatwoot, RecordedRequest

__all__ = [
    "HostSeeder",
    "MockChatwoot",
    "RecordedRequest",
]
