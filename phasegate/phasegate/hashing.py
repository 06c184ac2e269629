"""
PhaseGate Hashing

All hashes use SHA-256 over canonical JSON with lowercase hexadecimal output.
Hashes bind a review outcome to the exact corpus, profiles and evidence it was
computed from.
"""

import hashlib
from typing import Any, Union

from .canonicalization import canonicalize


def sha256_hash(data: Union[bytes, str]) -> str:
    """
    Compute SHA-256 hash in PhaseGate format.

    Returns:
        Hash string in format "sha256:abcdef..."
    """
    if isinstance(data, str):
        data = data.encode('utf-8')

    digest = hashlib.sha256(data).hexdigest().lower()
    return f"sha256:{digest}"


def content_hash(obj: Any) -> str:
    """Hash of the canonical JSON form of any serializable object."""
    return sha256_hash(canonicalize(obj))


def unit_hash(unit: dict) -> str:
    """unit_hash = SHA-256(CJE(code_unit))"""
    return content_hash(unit)


def corpus_hash(corpus: dict) -> str:
    """corpus_hash = SHA-256(CJE(corpus))"""
    return content_hash(corpus)


def profile_hash(profile: dict) -> str:
    """profile_hash = SHA-256(CJE(ecosystem_profile))"""
    return content_hash(profile)


def evidence_hash(evidence: dict) -> str:
    """evidence_hash = SHA-256(CJE(auditor_evidence))"""
    return content_hash(evidence)


def short_id(prefix: str, obj: Any, length: int = 12) -> str:
    """
    Deterministic short identifier derived from content.

    Example: short_id("H", {...}) -> "H-3f9a0c1b22de"
    """
    digest = content_hash(obj).split(":", 1)[1]
    return f"{prefix}-{digest[:length]}"


def verify_hash(declared_hash: str, data: Union[bytes, str]) -> bool:
    """Verify that data matches a declared hash."""
    if not declared_hash.startswith("sha256:"):
        return False
    return sha256_hash(data) == declared_hash
