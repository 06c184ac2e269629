"""
PhaseGate Cryptographic Signing

Review records are signed with Ed25519 (RFC 8032) over their canonical JSON
body so a third party can check who issued them.
"""

import base64
import binascii
import json
import os
from dataclasses import dataclass
from datetime import datetime, timezone, timedelta
from typing import Any, Dict, Optional

from nacl.exceptions import BadSignatureError
from nacl.signing import SigningKey, VerifyKey

from .hashing import content_hash


def b64e(data: bytes) -> str:
    return base64.b64encode(data).decode("utf-8")


def b64d(text: str) -> bytes:
    return base64.b64decode(text.encode("utf-8"), validate=True)


def format_time(value: datetime) -> str:
    return value.isoformat().replace("+00:00", "Z")


def parse_time(value: str) -> datetime:
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


@dataclass
class KeyPair:
    """Ed25519 key pair."""
    key_id: str
    signing_key: bytes
    verify_key: bytes
    valid_from: datetime
    valid_until: datetime
    key_type: str = "REVIEW_SIGNING"
    algorithm: str = "Ed25519"

    def to_trust_store_entry(self) -> Dict[str, Any]:
        """Convert to trust store entry format."""
        return {
            "key_id": self.key_id,
            "key_type": self.key_type,
            "algorithm": self.algorithm,
            "public_key": b64e(self.verify_key),
            "valid_from": format_time(self.valid_from),
            "valid_until": format_time(self.valid_until),
            "key_usage": ["sign_reviews"]
        }

    def to_key_file(self) -> Dict[str, Any]:
        """Private key file form. Keep out of version control."""
        return {
            "kid": self.key_id,
            "private_key_b64": b64e(self.signing_key),
            "valid_from": format_time(self.valid_from),
            "valid_until": format_time(self.valid_until),
            "key_type": self.key_type,
        }

    @classmethod
    def from_key_file(cls, data: Dict[str, Any]) -> 'KeyPair':
        required = ["kid", "private_key_b64", "valid_from", "valid_until"]
        missing = [f for f in required if f not in data]
        if missing:
            raise ValueError(f"Missing required key file fields: {missing}")

        signing_key = SigningKey(b64d(data["private_key_b64"]))
        return cls(
            key_id=data["kid"],
            signing_key=bytes(signing_key),
            verify_key=bytes(signing_key.verify_key),
            valid_from=parse_time(data["valid_from"]),
            valid_until=parse_time(data["valid_until"]),
            key_type=data.get("key_type", "REVIEW_SIGNING"),
        )


class SigningService:
    """
    Review record signing service.

    Holds one or more key pairs; the first generated or added key is active.
    """

    def __init__(self):
        self._keys: Dict[str, KeyPair] = {}
        self._active_key_id: Optional[str] = None

    def generate_key_pair(
        self,
        key_id: str,
        key_type: str = "REVIEW_SIGNING",
        validity_days: int = 90
    ) -> KeyPair:
        """
        Generate a new Ed25519 key pair.

        Args:
            key_id: Unique key identifier (e.g., "kid:phasegate-review-001")
            key_type: Key type
            validity_days: Validity period in days

        Returns:
            KeyPair with signing and verification keys
        """
        signing_key = SigningKey.generate()
        now = datetime.now(timezone.utc)

        key_pair = KeyPair(
            key_id=key_id,
            signing_key=bytes(signing_key),
            verify_key=bytes(signing_key.verify_key),
            valid_from=now,
            valid_until=now + timedelta(days=validity_days),
            key_type=key_type
        )
        self.add_key_pair(key_pair)
        return key_pair

    def add_key_pair(self, key_pair: KeyPair) -> None:
        self._keys[key_pair.key_id] = key_pair
        if self._active_key_id is None:
            self._active_key_id = key_pair.key_id

    @property
    def active_key_id(self) -> Optional[str]:
        return self._active_key_id

    def sign(self, data: bytes, key_id: Optional[str] = None) -> Dict[str, Any]:
        """
        Sign data with Ed25519.

        Args:
            data: Data to sign
            key_id: Key to use (default: active key)

        Returns:
            Signature dict with key_id, algorithm, and base64 signature
        """
        key_id = key_id or self._active_key_id
        if not key_id:
            raise ValueError("No signing key available")

        key_pair = self._keys.get(key_id)
        if not key_pair:
            raise ValueError(f"Key not found: {key_id}")

        now = datetime.now(timezone.utc)
        if now < key_pair.valid_from or now > key_pair.valid_until:
            raise ValueError(f"Key {key_id} is not currently valid")

        signature = SigningKey(key_pair.signing_key).sign(data).signature

        return {
            "signer_role": "PhaseGate",
            "key_id": key_id,
            "algorithm": "Ed25519",
            "sig": b64e(signature)
        }

    def get_trust_store(self) -> Dict[str, Any]:
        """Generate a trust store from registered keys."""
        now = datetime.now(timezone.utc)

        store = {
            "trust_store_version": now.strftime("%Y-%m-%d-001"),
            "effective_from": format_time(now),
            "keys": [kp.to_trust_store_entry() for kp in self._keys.values()]
        }
        store["trust_store_hash"] = content_hash(store)
        return store


def verify_ed25519(data: bytes, signature_b64: str, public_key_b64: str) -> bool:
    """
    Verify an Ed25519 signature.

    Returns:
        True if signature is valid, False otherwise (including malformed input)
    """
    try:
        verify_key = VerifyKey(b64d(public_key_b64))
        verify_key.verify(data, b64d(signature_b64))
        return True
    except (BadSignatureError, binascii.Error, ValueError, TypeError):
        return False


def save_key_file(key_pair: KeyPair, path: str) -> None:
    """Write a private key file readable only by the owner."""
    directory = os.path.dirname(path)
    if directory:
        os.makedirs(directory, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        json.dump(key_pair.to_key_file(), f, indent=2)
    os.chmod(path, 0o600)


def load_signing_service(path: str) -> SigningService:
    """Signing service holding the key from a private key file."""
    with open(path, "r", encoding="utf-8") as f:
        key_pair = KeyPair.from_key_file(json.load(f))
    service = SigningService()
    service.add_key_pair(key_pair)
    return service
