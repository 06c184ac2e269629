"""
PhaseGate Ecosystem Profiles

One generic engine is parameterized by one profile per ecosystem. A profile
carries the phase lexicon, the external-call and dead-guard patterns, the
curated historical exploit table and any severity remaps.

Profiles are versioned and content-hashed so a review outcome can be bound to
the exact rules it was computed with.
"""

import json
import re
from dataclasses import dataclass, field
from typing import Any, Dict, FrozenSet, List, Optional, Pattern, Tuple

from .hashing import profile_hash
from .phases import PhaseLabel, sorted_labels
from .severity import SeverityClassifier, normalize_overrides, parse_impact, UnmappedImpactError
from .units import Ecosystem


VERSION_PATTERN = re.compile(r'^[0-9]+\.[0-9]+\.[0-9]+$')
PROFILE_ID_PATTERN = re.compile(r'^[a-z][a-z0-9_.]*$')
EXPLOIT_ID_PATTERN = re.compile(r'^[a-z][a-z0-9_.-]*$')

DEFAULT_ORDERING_IMPACT = "indirect fund loss, permissionless, no special conditions"

PATTERN_FLAGS = re.MULTILINE


def _compile(pattern: str, what: str) -> Pattern:
    try:
        return re.compile(pattern, PATTERN_FLAGS)
    except re.error as e:
        raise ValueError(f"Invalid {what} pattern {pattern!r}: {e}")


@dataclass
class LexiconRule:
    """A phase and the pattern whose matches exhibit it."""
    phase: PhaseLabel
    pattern: str

    def to_dict(self) -> Dict[str, Any]:
        return {"phase": PhaseLabel(self.phase).value, "pattern": self.pattern}


@dataclass
class CallPattern:
    """
    Pattern for an external call. An optional named group "callee" captures
    the called function or message name used to resolve the call.
    """
    pattern: str
    description: str = ""

    def to_dict(self) -> Dict[str, Any]:
        d = {"pattern": self.pattern}
        if self.description:
            d["description"] = self.description
        return d


@dataclass
class ExploitReference:
    """
    Historical exploit entry.

    An entry applies to a unit when its phase and all `requires` phases are
    present, no `excludes` phase is present, and `trigger` (if set) matches
    the unit text. A `stale_read` entry further needs a snapshot read the
    classifier proves stale within the unit.
    """
    id: str
    title: str
    phase: PhaseLabel
    impact: str
    requires: FrozenSet[PhaseLabel] = frozenset()
    excludes: FrozenSet[PhaseLabel] = frozenset()
    trigger: Optional[str] = None
    incident: Optional[str] = None
    description: str = ""
    stale_read: bool = False

    _trigger_regex: Optional[Pattern] = field(default=None, init=False, repr=False, compare=False)

    def __post_init__(self):
        self.phase = PhaseLabel(self.phase)
        self.requires = frozenset(PhaseLabel(p) for p in self.requires)
        self.excludes = frozenset(PhaseLabel(p) for p in self.excludes)
        if not EXPLOIT_ID_PATTERN.match(self.id):
            raise ValueError(f"Invalid exploit id '{self.id}'")
        if self.trigger:
            self._trigger_regex = _compile(self.trigger, f"trigger for exploit {self.id}")
        try:
            parse_impact(self.impact)
        except UnmappedImpactError as e:
            raise ValueError(f"Exploit {self.id} has unmapped impact: {e}")

    def applies_to(self, labels: FrozenSet[PhaseLabel], text: str) -> bool:
        if self.phase not in labels:
            return False
        if not self.requires <= labels:
            return False
        if self.excludes & labels:
            return False
        if self._trigger_regex is not None and not self._trigger_regex.search(text):
            return False
        return True

    def reference(self) -> str:
        """Human-readable similar-exploit reference."""
        if self.incident:
            return f"{self.title} ({self.incident})"
        return self.title

    def to_dict(self) -> Dict[str, Any]:
        d = {
            "id": self.id,
            "title": self.title,
            "phase": self.phase.value,
            "impact": self.impact,
            "requires": sorted_labels(self.requires),
            "excludes": sorted_labels(self.excludes),
        }
        if self.trigger:
            d["trigger"] = self.trigger
        if self.incident:
            d["incident"] = self.incident
        if self.description:
            d["description"] = self.description
        if self.stale_read:
            d["stale_read"] = True
        return d

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ExploitReference':
        required = ["id", "title", "phase", "impact"]
        missing = [f for f in required if f not in data]
        if missing:
            raise ValueError(f"Missing required exploit fields: {missing}")
        return cls(
            id=data["id"],
            title=data["title"],
            phase=data["phase"],
            impact=data["impact"],
            requires=frozenset(data.get("requires", ())),
            excludes=frozenset(data.get("excludes", ())),
            trigger=data.get("trigger"),
            incident=data.get("incident"),
            description=data.get("description", ""),
            stale_read=bool(data.get("stale_read", False)),
        )


@dataclass
class EcosystemProfile:
    """
    Rules for one ecosystem.

    Contains:
    - id: Unique profile identifier (e.g. "cosmos_sdk.default")
    - version: Semantic version
    - ecosystem: Ecosystem the profile applies to
    - lexicon: Ordered phase lexicon rules
    - external_calls: Cross-module / cross-contract call patterns
    - dead_guards: Patterns for guards that are always false
    - exploits: Curated historical exploit table
    - severity_overrides: Remaps of existing severity table entries
    - ordering_reference / ordering_impact: Reference and impact for the
      validation-after-mutation ordering hypothesis
    """
    id: str
    version: str
    ecosystem: Ecosystem
    lexicon: List[LexiconRule]
    external_calls: List[CallPattern] = field(default_factory=list)
    dead_guards: List[str] = field(default_factory=list)
    exploits: List[ExploitReference] = field(default_factory=list)
    severity_overrides: Dict[str, str] = field(default_factory=dict)
    ordering_reference: str = ""
    ordering_impact: str = DEFAULT_ORDERING_IMPACT

    _hash: Optional[str] = field(default=None, init=False, repr=False, compare=False)
    _lexicon: List[Tuple[PhaseLabel, Pattern]] = field(default_factory=list, init=False, repr=False, compare=False)
    _calls: List[Pattern] = field(default_factory=list, init=False, repr=False, compare=False)
    _dead_guards: List[Pattern] = field(default_factory=list, init=False, repr=False, compare=False)

    def __post_init__(self):
        self.ecosystem = Ecosystem(self.ecosystem)
        self._validate()
        self._hash = None

    def _validate(self):
        """Validate profile structure and compile every pattern."""
        if not PROFILE_ID_PATTERN.match(self.id):
            raise ValueError(f"Invalid profile id '{self.id}': must match pattern")

        if not VERSION_PATTERN.match(self.version):
            raise ValueError(f"Invalid version '{self.version}': must be semantic version")

        if not self.lexicon:
            raise ValueError("Profile must have at least one lexicon rule")

        self._lexicon = [
            (PhaseLabel(rule.phase), _compile(rule.pattern, f"{PhaseLabel(rule.phase).value} lexicon"))
            for rule in self.lexicon
        ]
        self._calls = [_compile(c.pattern, "external call") for c in self.external_calls]
        self._dead_guards = [_compile(p, "dead guard") for p in self.dead_guards]

        exploit_ids = set()
        for exploit in self.exploits:
            if exploit.id in exploit_ids:
                raise ValueError(f"Duplicate exploit id: {exploit.id}")
            exploit_ids.add(exploit.id)

        normalize_overrides(self.severity_overrides)

        try:
            parse_impact(self.ordering_impact)
        except UnmappedImpactError as e:
            raise ValueError(f"Invalid ordering impact: {e}")

    def compiled_lexicon(self) -> List[Tuple[PhaseLabel, Pattern]]:
        return self._lexicon

    def compiled_calls(self) -> List[Pattern]:
        return self._calls

    def compiled_dead_guards(self) -> List[Pattern]:
        return self._dead_guards

    def get_exploit(self, exploit_id: str) -> Optional[ExploitReference]:
        for exploit in self.exploits:
            if exploit.id == exploit_id:
                return exploit
        return None

    def severity_classifier(self) -> SeverityClassifier:
        return SeverityClassifier(self.severity_overrides)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "id": self.id,
            "version": self.version,
            "ecosystem": self.ecosystem.value,
            "lexicon": [r.to_dict() for r in self.lexicon],
            "external_calls": [c.to_dict() for c in self.external_calls],
            "dead_guards": list(self.dead_guards),
            "exploits": [e.to_dict() for e in self.exploits],
            "severity_overrides": dict(self.severity_overrides),
            "ordering_reference": self.ordering_reference,
            "ordering_impact": self.ordering_impact,
        }

    def get_hash(self) -> str:
        """Compute and cache the profile hash."""
        if self._hash is None:
            self._hash = profile_hash(self.to_dict())
        return self._hash

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'EcosystemProfile':
        """Create EcosystemProfile from dictionary."""
        required = ["id", "version", "ecosystem", "lexicon"]
        missing = [f for f in required if f not in data]
        if missing:
            raise ValueError(f"Missing required fields: {missing}")

        return cls(
            id=data["id"],
            version=data["version"],
            ecosystem=data["ecosystem"],
            lexicon=[LexiconRule(phase=PhaseLabel(r["phase"]), pattern=r["pattern"]) for r in data["lexicon"]],
            external_calls=[
                CallPattern(pattern=c["pattern"], description=c.get("description", ""))
                for c in data.get("external_calls", [])
            ],
            dead_guards=list(data.get("dead_guards", [])),
            exploits=[ExploitReference.from_dict(e) for e in data.get("exploits", [])],
            severity_overrides=dict(data.get("severity_overrides", {})),
            ordering_reference=data.get("ordering_reference", ""),
            ordering_impact=data.get("ordering_impact", DEFAULT_ORDERING_IMPACT),
        )


def load_profile_file(path: str) -> EcosystemProfile:
    """Load a profile from a JSON file."""
    with open(path, "r", encoding="utf-8") as f:
        return EcosystemProfile.from_dict(json.load(f))


class ProfileRegistry:
    """
    Registry for managing ecosystem profiles.

    Supports versioning and ecosystem mapping.
    """

    def __init__(self):
        self._profiles: Dict[str, Dict[str, EcosystemProfile]] = {}  # id -> version -> profile
        self._ecosystem_map: Dict[Ecosystem, str] = {}  # ecosystem -> profile id

    def register(self, profile: EcosystemProfile, set_as_default: bool = True):
        """Register a profile."""
        if profile.id not in self._profiles:
            self._profiles[profile.id] = {}

        self._profiles[profile.id][profile.version] = profile

        if set_as_default:
            self._ecosystem_map[profile.ecosystem] = profile.id

    def get(self, profile_id: str, version: Optional[str] = None) -> Optional[EcosystemProfile]:
        """Get a profile by id and optionally version."""
        if profile_id not in self._profiles:
            return None

        versions = self._profiles[profile_id]

        if version:
            return versions.get(version)

        if not versions:
            return None

        latest = max(versions.keys(), key=lambda v: [int(x) for x in v.split(".")])
        return versions[latest]

    def get_for_ecosystem(self, ecosystem: Ecosystem) -> Optional[EcosystemProfile]:
        """Get the default profile for an ecosystem."""
        profile_id = self._ecosystem_map.get(Ecosystem(ecosystem))
        if profile_id:
            return self.get(profile_id)
        return None

    def active_profiles(self) -> List[EcosystemProfile]:
        """Default profile of each mapped ecosystem, in ecosystem order."""
        return [
            self.get_for_ecosystem(eco)
            for eco in Ecosystem
            if eco in self._ecosystem_map
        ]

    def profile_hashes(self) -> Dict[str, str]:
        """Hash of each active profile, keyed by ecosystem."""
        return {p.ecosystem.value: p.get_hash() for p in self.active_profiles()}

    def list_profiles(self) -> List[str]:
        """List all registered profile ids."""
        return list(self._profiles.keys())
