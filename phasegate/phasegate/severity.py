"""
PhaseGate Severity Classification

Pure lookup from an impact descriptor to an ordinal severity.

An impact descriptor is the triple (category, privilege, conditions), e.g.
"direct fund loss, permissionless, no special conditions". The table is closed:
a descriptor that does not parse, or parses to a combination the table does not
contain, raises UnmappedImpactError. There is no default severity.
"""

import re
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional, Tuple, Union


class UnmappedImpactError(LookupError):
    """Impact descriptor has no entry in the severity table."""

    def __init__(self, descriptor: str, reason: str = "no severity table entry"):
        self.descriptor = descriptor
        self.reason = reason
        super().__init__(f"Unmapped impact descriptor '{descriptor}': {reason}")


class Severity(str, Enum):
    """Ordinal severities, highest first."""
    CRITICAL_HIGH = "CRITICAL/HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"
    INFO = "INFO"

    @property
    def rank(self) -> int:
        """Higher rank is more severe."""
        return _RANKS[self]


_RANKS = {
    Severity.CRITICAL_HIGH: 3,
    Severity.MEDIUM: 2,
    Severity.LOW: 1,
    Severity.INFO: 0,
}


class ImpactCategory(str, Enum):
    DIRECT_FUND_LOSS = "direct fund loss"
    INDIRECT_FUND_LOSS = "indirect fund loss"
    PERMANENT_DOS = "permanent DoS"
    TEMPORARY_DOS = "temporary DoS"
    ACCESS_CONTROL_BYPASS = "access-control bypass"
    INFORMATIONAL = "informational"


class Privilege(str, Enum):
    PERMISSIONLESS = "permissionless"
    PRIVILEGED = "privileged"


class Conditions(str, Enum):
    NONE = "no special conditions"
    SPECIAL = "special conditions"


# Accepted spellings, matched after lowercasing and collapsing whitespace.
_CATEGORY_SYNONYMS = {
    "direct fund loss": ImpactCategory.DIRECT_FUND_LOSS,
    "direct loss of funds": ImpactCategory.DIRECT_FUND_LOSS,
    "theft of funds": ImpactCategory.DIRECT_FUND_LOSS,
    "indirect fund loss": ImpactCategory.INDIRECT_FUND_LOSS,
    "indirect loss of funds": ImpactCategory.INDIRECT_FUND_LOSS,
    "permanent dos": ImpactCategory.PERMANENT_DOS,
    "permanent denial of service": ImpactCategory.PERMANENT_DOS,
    "permanent freezing of funds": ImpactCategory.PERMANENT_DOS,
    "temporary dos": ImpactCategory.TEMPORARY_DOS,
    "temporary denial of service": ImpactCategory.TEMPORARY_DOS,
    "temporary freezing of funds": ImpactCategory.TEMPORARY_DOS,
    "access-control bypass": ImpactCategory.ACCESS_CONTROL_BYPASS,
    "access control bypass": ImpactCategory.ACCESS_CONTROL_BYPASS,
    "authorization bypass": ImpactCategory.ACCESS_CONTROL_BYPASS,
    "informational": ImpactCategory.INFORMATIONAL,
    "info": ImpactCategory.INFORMATIONAL,
}

_PRIVILEGE_SYNONYMS = {
    "permissionless": Privilege.PERMISSIONLESS,
    "unprivileged": Privilege.PERMISSIONLESS,
    "any user": Privilege.PERMISSIONLESS,
    "privileged": Privilege.PRIVILEGED,
    "admin only": Privilege.PRIVILEGED,
    "requires privileged role": Privilege.PRIVILEGED,
}

_CONDITION_SYNONYMS = {
    "no special conditions": Conditions.NONE,
    "no preconditions": Conditions.NONE,
    "special conditions": Conditions.SPECIAL,
    "requires special conditions": Conditions.SPECIAL,
}

_SPLIT = re.compile(r'\s*[,;]\s*')


@dataclass(frozen=True)
class ImpactDescriptor:
    """Parsed impact descriptor. Informational descriptors carry no modifiers."""
    category: ImpactCategory
    privilege: Optional[Privilege] = None
    conditions: Optional[Conditions] = None

    def key(self) -> Tuple[ImpactCategory, Optional[Privilege], Optional[Conditions]]:
        return (self.category, self.privilege, self.conditions)

    def to_text(self) -> str:
        parts = [self.category.value]
        if self.privilege:
            parts.append(self.privilege.value)
        if self.conditions:
            parts.append(self.conditions.value)
        return ", ".join(parts)

    def to_dict(self) -> Dict[str, Optional[str]]:
        return {
            "category": self.category.value,
            "privilege": self.privilege.value if self.privilege else None,
            "conditions": self.conditions.value if self.conditions else None,
        }


def parse_impact(text: Union[str, ImpactDescriptor]) -> ImpactDescriptor:
    """
    Parse descriptor text into an ImpactDescriptor.

    Raises:
        UnmappedImpactError: unknown term, repeated dimension, or a
            non-informational category missing privilege or conditions
    """
    if isinstance(text, ImpactDescriptor):
        return text
    if not isinstance(text, str) or not text.strip():
        raise UnmappedImpactError(str(text), "empty descriptor")

    category = privilege = conditions = None
    for raw in _SPLIT.split(text.strip()):
        term = " ".join(raw.lower().split())
        if not term:
            continue
        if term in _CATEGORY_SYNONYMS:
            if category is not None:
                raise UnmappedImpactError(text, "more than one impact category")
            category = _CATEGORY_SYNONYMS[term]
        elif term in _PRIVILEGE_SYNONYMS:
            if privilege is not None:
                raise UnmappedImpactError(text, "more than one privilege level")
            privilege = _PRIVILEGE_SYNONYMS[term]
        elif term in _CONDITION_SYNONYMS:
            if conditions is not None:
                raise UnmappedImpactError(text, "more than one conditions term")
            conditions = _CONDITION_SYNONYMS[term]
        else:
            raise UnmappedImpactError(text, f"unknown term '{raw}'")

    if category is None:
        raise UnmappedImpactError(text, "no impact category")

    if category == ImpactCategory.INFORMATIONAL:
        return ImpactDescriptor(category)

    if privilege is None or conditions is None:
        raise UnmappedImpactError(text, "privilege and conditions are required")

    return ImpactDescriptor(category, privilege, conditions)


def _entries(category, perm_none, perm_special, priv_none, priv_special):
    return {
        (category, Privilege.PERMISSIONLESS, Conditions.NONE): perm_none,
        (category, Privilege.PERMISSIONLESS, Conditions.SPECIAL): perm_special,
        (category, Privilege.PRIVILEGED, Conditions.NONE): priv_none,
        (category, Privilege.PRIVILEGED, Conditions.SPECIAL): priv_special,
    }


# Closed severity table. Profiles may remap entries, never add new ones.
SEVERITY_TABLE: Dict[Tuple, Severity] = {
    **_entries(ImpactCategory.DIRECT_FUND_LOSS,
               Severity.CRITICAL_HIGH, Severity.CRITICAL_HIGH, Severity.MEDIUM, Severity.LOW),
    **_entries(ImpactCategory.INDIRECT_FUND_LOSS,
               Severity.MEDIUM, Severity.MEDIUM, Severity.LOW, Severity.LOW),
    **_entries(ImpactCategory.PERMANENT_DOS,
               Severity.CRITICAL_HIGH, Severity.MEDIUM, Severity.LOW, Severity.LOW),
    **_entries(ImpactCategory.TEMPORARY_DOS,
               Severity.MEDIUM, Severity.LOW, Severity.LOW, Severity.INFO),
    **_entries(ImpactCategory.ACCESS_CONTROL_BYPASS,
               Severity.CRITICAL_HIGH, Severity.MEDIUM, Severity.MEDIUM, Severity.LOW),
    (ImpactCategory.INFORMATIONAL, None, None): Severity.INFO,
}


# Platform labels used in the report's severity mapping section
PLATFORM_LABELS: Dict[str, Dict[Severity, str]] = {
    "Immunefi": {
        Severity.CRITICAL_HIGH: "Critical / High",
        Severity.MEDIUM: "Medium",
        Severity.LOW: "Low",
        Severity.INFO: "None",
    },
    "Code4rena": {
        Severity.CRITICAL_HIGH: "High (3)",
        Severity.MEDIUM: "Medium (2)",
        Severity.LOW: "QA (Low)",
        Severity.INFO: "QA (Non-critical)",
    },
    "Sherlock": {
        Severity.CRITICAL_HIGH: "High",
        Severity.MEDIUM: "Medium",
        Severity.LOW: "Invalid (Low/Info)",
        Severity.INFO: "Invalid (Low/Info)",
    },
    "Cantina": {
        Severity.CRITICAL_HIGH: "High",
        Severity.MEDIUM: "Medium",
        Severity.LOW: "Low",
        Severity.INFO: "Informational",
    },
}


def platform_mapping(severity: Severity) -> Dict[str, str]:
    """Label of a severity on each supported audit platform."""
    return {platform: labels[severity] for platform, labels in PLATFORM_LABELS.items()}


def normalize_overrides(overrides: Optional[Dict[str, str]]) -> Dict[Tuple, Severity]:
    """
    Validate severity overrides.

    Keys are descriptor text and must name an existing table entry; values are
    severity names.

    Raises:
        ValueError: override key is not in the table or value is unknown
    """
    normalized: Dict[Tuple, Severity] = {}
    for descriptor_text, severity_value in (overrides or {}).items():
        try:
            key = parse_impact(descriptor_text).key()
        except UnmappedImpactError as e:
            raise ValueError(f"Invalid severity override key: {e}")
        if key not in SEVERITY_TABLE:
            raise ValueError(f"Severity override for unknown entry: {descriptor_text}")
        try:
            normalized[key] = Severity(severity_value)
        except ValueError:
            raise ValueError(
                f"Invalid severity '{severity_value}': must be one of {[s.value for s in Severity]}"
            )
    return normalized


class SeverityClassifier:
    """
    Maps impact descriptors to severities.

    Overrides come from an ecosystem profile and remap existing entries.
    """

    def __init__(self, overrides: Optional[Dict[str, str]] = None):
        self._overrides = normalize_overrides(overrides)

    def classify(self, impact: Union[str, ImpactDescriptor]) -> Severity:
        """
        Classify an impact descriptor.

        Raises:
            UnmappedImpactError: the descriptor has no table entry
        """
        descriptor = parse_impact(impact)
        key = descriptor.key()
        if key in self._overrides:
            return self._overrides[key]
        if key not in SEVERITY_TABLE:
            raise UnmappedImpactError(descriptor.to_text())
        return SEVERITY_TABLE[key]


def classify_severity(impact: Union[str, ImpactDescriptor]) -> Severity:
    """Classify against the base table without overrides."""
    return SeverityClassifier().classify(impact)
