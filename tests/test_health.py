# tests/test_health.py
from typing import Any


def test_health_responds(client: Any) -> None:
    """The health check answers without authentication."""
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json() == {"status": "ok"}


def test_app_state_is_wired(client: Any) -> None:
    """Startup installs a presence registry behind the connection hub."""
    state = client.app.state
    assert state.hub.registry is state.presence
