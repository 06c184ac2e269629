"""
Configuration module for PhaseGate.

Settings come from environment variables at import. Custom ecosystem
profiles are JSON files named by PHASEGATE_PROFILE_PATH and cached with a TTL.
"""

import json
import os
import threading
import time
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

# ============================================================
# Environment Configuration
# ============================================================

ENV = os.getenv("PHASEGATE_ENV", "dev")  # dev|stage|prod

# Generator cap; the generator never exceeds 15 regardless
HYPOTHESIS_CAP = int(os.getenv("PHASEGATE_HYPOTHESIS_CAP", "15"))

# Economic realism threshold; unset leaves the predicate unknown
FEASIBILITY_THRESHOLD = os.getenv("PHASEGATE_FEASIBILITY_THRESHOLD") or None

# Colon-separated JSON profile files registered over the built-ins
PROFILE_PATH = os.getenv("PHASEGATE_PROFILE_PATH", "")

# Signing configuration
SIGNING_KEY_PATH = os.getenv("PHASEGATE_SIGNING_KEY_PATH", "secrets/phasegate_signing_key.json")

# Logging
LOG_LEVEL = os.getenv("PHASEGATE_LOG_LEVEL", "INFO")
LOG_JSON = os.getenv("PHASEGATE_LOG_JSON", "1").lower() in ("1", "true", "yes")

# Rate limits (requests per minute)
REVIEW_RPM = int(os.getenv("REVIEW_RPM", "60"))

# Open role sessions held by one service process
ROLE_SESSION_LIMIT = int(os.getenv("PHASEGATE_ROLE_SESSION_LIMIT", "1000"))

# Cache TTL (seconds)
CONFIG_CACHE_TTL = int(os.getenv("CONFIG_CACHE_TTL", "60"))


# ============================================================
# Custom Profile Files
# ============================================================

class ProfileFileCache:
    """
    Thread-safe cache of custom profile JSON files.

    An entry is reloaded once its TTL has passed or the file's mtime changes,
    so edited profiles are picked up without a restart.
    """

    def __init__(self, ttl_seconds: int = 60):
        self._entries: Dict[str, Tuple[float, float, Dict[str, Any]]] = {}
        self._lock = threading.RLock()
        self._ttl = ttl_seconds

    def load(self, path: str) -> Dict[str, Any]:
        """Profile document at path; raises ValueError unless it is a JSON object."""
        mtime = os.path.getmtime(path)
        with self._lock:
            entry = self._entries.get(path)
            if entry and entry[1] == mtime and time.time() - entry[0] <= self._ttl:
                return entry[2]

            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
            if not isinstance(data, dict):
                raise ValueError(f"Profile file {path} must hold a JSON object")

            self._entries[path] = (time.time(), mtime, data)
            return data

    def clear(self, path: Optional[str] = None) -> None:
        with self._lock:
            if path:
                self._entries.pop(path, None)
            else:
                self._entries.clear()


_profile_cache = ProfileFileCache(ttl_seconds=CONFIG_CACHE_TTL)


def profile_paths() -> List[str]:
    """Custom profile files named by PHASEGATE_PROFILE_PATH."""
    return [p for p in PROFILE_PATH.split(os.pathsep) if p]


def load_custom_profiles() -> List[Dict[str, Any]]:
    """Load every custom profile file with caching."""
    return [_profile_cache.load(p) for p in profile_paths()]


def invalidate_config_cache() -> None:
    """Drop every cached profile file."""
    _profile_cache.clear()


# ============================================================
# Validation
# ============================================================

def validate_config() -> Dict[str, bool]:
    """
    Validate configuration values and referenced files.
    Returns dict of check name -> ok.
    """
    checks = {
        "hypothesis_cap": 1 <= HYPOTHESIS_CAP,
        "role_session_limit": 1 <= ROLE_SESSION_LIMIT,
        "signing_key": Path(SIGNING_KEY_PATH).exists(),
    }
    for i, path in enumerate(profile_paths()):
        checks[f"profile_{i}"] = Path(path).exists()
    return checks


# ============================================================
# Feature Flags
# ============================================================

def is_production() -> bool:
    """Check if running in production mode."""
    return ENV == "prod"


def is_debug() -> bool:
    """Check if debug mode is enabled."""
    return os.getenv("PHASEGATE_DEBUG", "").lower() in ("1", "true", "yes")
