"""
PhaseGate Phase Classifier

Labels a code unit with the semantic phases its text exhibits, by matching the
unit text against the lexicon of its ecosystem profile.

Design principles:
- Deterministic (same unit and lexicon always give the same labels)
- Pure (no I/O, no state carried between calls)
- No error conditions: an ecosystem without a profile yields the empty set
- An empty set means "unclassified, requires manual review", never "safe"
"""

from enum import Enum
from typing import Any, Dict, FrozenSet, Iterable, List, Optional, Set, Tuple

from .units import CodeUnit, Ecosystem


class PhaseLabel(str, Enum):
    """Semantic phases of contract logic."""
    SNAPSHOT = "SNAPSHOT"       # state read into a local
    ACCOUNTING = "ACCOUNTING"   # share / price / rounding arithmetic
    VALIDATION = "VALIDATION"   # guard, check or assertion
    MUTATION = "MUTATION"       # in-memory state change
    COMMIT = "COMMIT"           # persistent state write
    EVENTS = "EVENTS"           # emitted event or log
    ERROR = "ERROR"             # abort, panic or discarded error


PHASE_ORDER = [
    PhaseLabel.SNAPSHOT,
    PhaseLabel.ACCOUNTING,
    PhaseLabel.VALIDATION,
    PhaseLabel.MUTATION,
    PhaseLabel.COMMIT,
    PhaseLabel.EVENTS,
    PhaseLabel.ERROR,
]


def sorted_labels(labels: Iterable[PhaseLabel]) -> List[str]:
    """Labels in canonical phase order, as strings."""
    present = set(labels)
    return [p.value for p in PHASE_ORDER if p in present]


# (offset, phase, matched text)
Occurrence = Tuple[int, PhaseLabel, str]
# (offset, matched text, callee)
ExternalCall = Tuple[int, str, str]


class PhaseClassifier:
    """
    Lexicon-driven phase classifier.

    Args:
        profiles: Ecosystem profiles; the first profile seen for an ecosystem
            is the one used for its units
    """

    def __init__(self, profiles: Iterable[Any] = ()):
        self._profiles: Dict[Ecosystem, Any] = {}
        for profile in profiles:
            self._profiles.setdefault(profile.ecosystem, profile)

    def profile_for(self, ecosystem: Ecosystem) -> Optional[Any]:
        return self._profiles.get(Ecosystem(ecosystem))

    def classify(self, unit: CodeUnit) -> FrozenSet[PhaseLabel]:
        """Return the set of phase labels present in the unit text."""
        return frozenset(phase for _, phase, _ in self.occurrences(unit))

    def classify_all(self, units: Iterable[CodeUnit]) -> Dict[str, FrozenSet[PhaseLabel]]:
        """Classify units, keyed by unit id in declaration order."""
        return {unit.unit_id: self.classify(unit) for unit in units}

    def occurrences(self, unit: CodeUnit) -> List[Occurrence]:
        """Every lexicon match in the unit, in textual order."""
        profile = self.profile_for(unit.ecosystem)
        if profile is None:
            return []

        found: List[Occurrence] = []
        for phase, regex in profile.compiled_lexicon():
            for match in regex.finditer(unit.text):
                found.append((match.start(), phase, match.group(0)))
        found.sort(key=lambda o: (o[0], PHASE_ORDER.index(o[1]), o[2]))
        return found

    def first_offset(self, unit: CodeUnit, phase: PhaseLabel) -> Optional[int]:
        for offset, found_phase, _ in self.occurrences(unit):
            if found_phase == phase:
                return offset
        return None

    def mutation_before_validation(self, unit: CodeUnit) -> bool:
        """True when the first MUTATION textually precedes the first VALIDATION."""
        mutation = self.first_offset(unit, PhaseLabel.MUTATION)
        validation = self.first_offset(unit, PhaseLabel.VALIDATION)
        if mutation is None or validation is None:
            return False
        return mutation < validation

    def external_calls(self, unit: CodeUnit) -> List[ExternalCall]:
        """Cross-module, cross-contract or cross-layer calls in the unit."""
        profile = self.profile_for(unit.ecosystem)
        if profile is None:
            return []

        calls: Dict[int, ExternalCall] = {}
        for regex in profile.compiled_calls():
            for match in regex.finditer(unit.text):
                if match.start() in calls:
                    continue
                callee = match.groupdict().get("callee") or match.group(0)
                calls[match.start()] = (match.start(), match.group(0), callee)
        return [calls[offset] for offset in sorted(calls)]

    def stale_reads(self, unit: CodeUnit) -> Set[str]:
        """
        Snapshot reads proven stale within the unit.

        A read is stale when an external call follows it and a MUTATION or
        COMMIT follows that call: the write acts on a value the callee may
        already have changed.
        """
        calls = self.external_calls(unit)
        if not calls:
            return set()

        occurrences = self.occurrences(unit)
        writes = [o for o, p, _ in occurrences if p in (PhaseLabel.MUTATION, PhaseLabel.COMMIT)]

        stale: Set[str] = set()
        for offset, phase, text in occurrences:
            if phase != PhaseLabel.SNAPSHOT:
                continue
            for call_offset, _, _ in calls:
                if call_offset > offset and any(w > call_offset for w in writes):
                    stale.add(text.strip())
                    break
        return stale

    def snapshot_reads(self, unit: CodeUnit) -> Set[str]:
        return {text.strip() for _, phase, text in self.occurrences(unit) if phase == PhaseLabel.SNAPSHOT}

    def has_dead_guard(self, unit: CodeUnit) -> bool:
        """True when the unit contains a guard that is always false."""
        return bool(self.dead_regions(unit))

    def dead_regions(self, unit: CodeUnit) -> List[Tuple[int, int]]:
        """
        Text spans (start, end) that never execute.

        A conditional guard kills only the block or statement it controls; a
        failing require or assert kills the rest of the unit.
        """
        profile = self.profile_for(unit.ecosystem)
        if profile is None:
            return []

        regions = set()
        for regex in profile.compiled_dead_guards():
            for match in regex.finditer(unit.text):
                regions.add(_guarded_region(unit.text, match))
        return sorted(regions)

    def in_dead_code(self, unit: CodeUnit, offsets: Iterable[int]) -> bool:
        """True when every offset lies inside a dead region (False for no offsets)."""
        offsets = list(offsets)
        regions = self.dead_regions(unit)
        if not offsets or not regions:
            return False
        return all(any(start <= o < end for start, end in regions) for o in offsets)


def _matching_brace(text: str, open_at: int) -> int:
    depth = 0
    for i in range(open_at, len(text)):
        if text[i] == '{':
            depth += 1
        elif text[i] == '}':
            depth -= 1
            if depth == 0:
                return i
    return len(text) - 1


def _guarded_region(text: str, match) -> Tuple[int, int]:
    """Span controlled by one always-false guard match."""
    start = match.start()
    guard = match.group(0)

    if guard.lstrip().startswith(("require", "assert")):
        return start, len(text)

    if guard.rstrip().endswith('{'):
        return start, _matching_brace(text, match.end() - 1) + 1

    # Call form such as If(Int(0), ...): the guard spans its own argument list
    depth = guard.count('(') - guard.count(')')
    if depth > 0:
        for i in range(match.end(), len(text)):
            if text[i] == '(':
                depth += 1
            elif text[i] == ')':
                depth -= 1
                if depth == 0:
                    return start, i + 1
        return start, len(text)

    # Statement form: the following block, or the statement up to ';'
    depth = 0
    for i in range(match.end(), len(text)):
        c = text[i]
        if c == '(':
            depth += 1
        elif c == ')':
            depth -= 1
        elif depth <= 0 and c == '{':
            return start, _matching_brace(text, i) + 1
        elif depth <= 0 and c == ';':
            return start, i + 1
    return start, len(text)
