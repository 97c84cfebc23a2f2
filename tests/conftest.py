"""Root test configuration for RestGuard.

Clears RESTGUARD_* environment variables so a developer's shell settings never
leak into config or guard tests. Tests that exercise env overrides set them
explicitly with monkeypatch.
"""

import pytest

_ENV_VARS = ("RESTGUARD_CONFIG", "RESTGUARD_DEBUG", "RESTGUARD_API_PREFIX")


@pytest.fixture(autouse=True)
def clean_restguard_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Run every test with no RESTGUARD_* overrides in the environment."""
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)
