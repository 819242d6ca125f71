"""
Shared pytest fixtures for knockout tournament manager tests.

Running tests:
    pytest tests/
"""
import pytest
import sys
import os

# Add src directory to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from knockout.elimination import build_bracket


@pytest.fixture
def temp_data_dir(tmp_path, monkeypatch):
    """Point every data file of the app at a temporary directory.

    The user named 'admin' gets the admin role.
    """
    import app as app_module

    monkeypatch.setattr(app_module, 'DATA_DIR', str(tmp_path))
    monkeypatch.setattr(app_module, 'USERS_FILE', str(tmp_path / 'users.yaml'))
    monkeypatch.setattr(app_module, 'TEAMS_FILE', str(tmp_path / 'teams.yaml'))
    monkeypatch.setattr(app_module, 'CHAMPIONS_FILE', str(tmp_path / 'champions.yaml'))
    monkeypatch.setattr(app_module, 'ADMIN_USERS', {'admin'})
    return tmp_path


@pytest.fixture
def client(temp_data_dir):
    """Create an unauthenticated test client."""
    from app import app
    app.config['TESTING'] = True
    with app.test_client() as client:
        yield client


def login_as(client, username):
    """Put username in the client's session without going through /api/login."""
    with client.session_transaction() as sess:
        sess['user'] = username


@pytest.fixture
def admin_client(client):
    """Test client logged in as the admin user."""
    login_as(client, 'admin')
    return client


@pytest.fixture
def five_entrants():
    return ["A", "B", "C", "D", "E"]


@pytest.fixture
def sixteen_entrants():
    return [f"Team {i + 1}" for i in range(16)]


@pytest.fixture
def seeded_bracket(five_entrants):
    """Deterministic bracket for five entrants."""
    return build_bracket(five_entrants, seed=42)
