import pytest, os, sys

# Ensure the app module is in path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

# No key file in tests; the service falls back to an ephemeral signing key
os.environ.setdefault("PHASEGATE_SIGNING_KEY_PATH", "/nonexistent/phasegate_signing_key.json")
os.environ.setdefault("PHASEGATE_LOG_LEVEL", "ERROR")

# Initialize app at module load time
from app import main
from app.main import app, _startup

_startup()

# Fresh limiter windows and role sessions for each test
@pytest.fixture(autouse=True)
def _reset_state():
    main.review_limiter.reset()
    main.ROLE_SESSIONS.clear()
    yield
