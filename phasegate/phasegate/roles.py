"""
PhaseGate Agent Roles

Four review roles are invoked by a tag in free text:

    [AUDIT AGENT: Protocol Mapper]

The roles form a finite state machine with no automated transitions:

    Protocol Mapper -> Attack Hypothesis Generator -> Code Path Explorer -> Adversarial Reviewer

Only a human message carrying a tag (or an explicit activate call) moves the
session. A role may be re-activated; skipping ahead or moving back is refused.

The Protocol Mapper records invariants. When a later role contradicts one, the
contradiction is recorded and stays open until a human resolves it. Nothing is
reconciled automatically, and the session cannot close while any is open.
"""

import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from .hashing import short_id
from .logging_config import review_log


class UnknownRoleError(ValueError):
    """Invocation tag names a role that does not exist, or tags conflict."""


class RoleTransitionError(RuntimeError):
    """Requested role change is not permitted from the current role."""


class AgentRole(str, Enum):
    PROTOCOL_MAPPER = "Protocol Mapper"
    HYPOTHESIS_GENERATOR = "Attack Hypothesis Generator"
    CODE_PATH_EXPLORER = "Code Path Explorer"
    ADVERSARIAL_REVIEWER = "Adversarial Reviewer"


ROLE_ORDER = [
    AgentRole.PROTOCOL_MAPPER,
    AgentRole.HYPOTHESIS_GENERATOR,
    AgentRole.CODE_PATH_EXPLORER,
    AgentRole.ADVERSARIAL_REVIEWER,
]


class AuditStage(str, Enum):
    """Five-stage audit workflow. A checklist, not a control system."""
    EXPLORATION = "Exploration"
    HYPOTHESIS_GENERATION = "Hypothesis Generation"
    VALIDATION = "Validation"
    DEEP_ANALYSIS = "Deep Analysis"
    REVIEW = "Review"


STAGE_ROLES = {
    AuditStage.EXPLORATION: AgentRole.PROTOCOL_MAPPER,
    AuditStage.HYPOTHESIS_GENERATION: AgentRole.HYPOTHESIS_GENERATOR,
    AuditStage.VALIDATION: AgentRole.CODE_PATH_EXPLORER,
    AuditStage.DEEP_ANALYSIS: AgentRole.CODE_PATH_EXPLORER,
    AuditStage.REVIEW: AgentRole.ADVERSARIAL_REVIEWER,
}

INVOCATION_PATTERN = re.compile(r'\[AUDIT AGENT:\s*(?P<role>[^\]]+?)\s*\]')


def parse_invocation(text: str) -> Optional[AgentRole]:
    """
    Extract the role selected by an invocation tag.

    Returns:
        The role, or None when the text carries no tag

    Raises:
        UnknownRoleError: a tag names an unknown role, or tags name different roles
    """
    roles = []
    for match in INVOCATION_PATTERN.finditer(text or ""):
        name = " ".join(match.group("role").split())
        try:
            roles.append(AgentRole(name))
        except ValueError:
            raise UnknownRoleError(
                f"Unknown audit agent role '{name}': must be one of {[r.value for r in AgentRole]}"
            )

    if not roles:
        return None
    if len(set(roles)) > 1:
        raise UnknownRoleError(f"Conflicting role tags: {[r.value for r in roles]}")
    return roles[0]


def _now() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


@dataclass
class Invariant:
    invariant_id: str
    statement: str
    recorded_by: AgentRole

    def to_dict(self) -> Dict[str, Any]:
        return {
            "invariant_id": self.invariant_id,
            "statement": self.statement,
            "recorded_by": self.recorded_by.value,
        }


@dataclass
class Contradiction:
    """A later role's claim against a recorded invariant."""
    contradiction_id: str
    invariant_id: str
    role: AgentRole
    claim: str
    raised_at: str
    resolution: Optional[str] = None
    resolved_by: Optional[str] = None

    @property
    def is_open(self) -> bool:
        return self.resolution is None

    def to_dict(self) -> Dict[str, Any]:
        d = {
            "contradiction_id": self.contradiction_id,
            "invariant_id": self.invariant_id,
            "role": self.role.value,
            "claim": self.claim,
            "raised_at": self.raised_at,
            "open": self.is_open,
        }
        if self.resolution is not None:
            d["resolution"] = self.resolution
            d["resolved_by"] = self.resolved_by
        return d


@dataclass
class RoleMessage:
    author: str
    text: str
    role: Optional[AgentRole]
    received_at: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "author": self.author,
            "text": self.text,
            "role": self.role.value if self.role else None,
            "received_at": self.received_at,
        }


@dataclass
class RoleSession:
    """
    Role state machine for one audit conversation.

    The session starts with no active role; the first activation must be the
    Protocol Mapper.
    """
    session_id: str
    active_role: Optional[AgentRole] = None
    invariants: List[Invariant] = field(default_factory=list)
    contradictions: List[Contradiction] = field(default_factory=list)
    messages: List[RoleMessage] = field(default_factory=list)
    closed: bool = False

    def activate(self, role: AgentRole) -> AgentRole:
        """
        Move to a role. Staying on the current role or moving to the next one
        is allowed; anything else raises RoleTransitionError.
        """
        role = AgentRole(role)
        if self.closed:
            raise RoleTransitionError(f"Session {self.session_id} is closed")

        if self.active_role is None:
            allowed = ROLE_ORDER[0]
            if role != allowed:
                raise RoleTransitionError(f"Session must start with {allowed.value}, not {role.value}")
        elif role != self.active_role:
            current = ROLE_ORDER.index(self.active_role)
            if current == len(ROLE_ORDER) - 1:
                raise RoleTransitionError(f"{self.active_role.value} is terminal")
            if ROLE_ORDER.index(role) != current + 1:
                raise RoleTransitionError(
                    f"Cannot move from {self.active_role.value} to {role.value}; "
                    f"next role is {ROLE_ORDER[current + 1].value}"
                )

        previous = self.active_role
        self.active_role = role
        if previous != role:
            review_log.role_transition(self.session_id, previous.value if previous else None, role.value)
        return role

    def handle_message(self, text: str, author: str = "human") -> Optional[AgentRole]:
        """
        Record a message and apply its invocation tag, if any.

        Returns:
            The role active after the message
        """
        role = parse_invocation(text)
        if role is not None:
            self.activate(role)
        self.messages.append(RoleMessage(author=author, text=text, role=role, received_at=_now()))
        return self.active_role

    def record_invariant(self, statement: str) -> Invariant:
        """Record a protocol invariant. Only the Protocol Mapper records invariants."""
        if self.active_role != AgentRole.PROTOCOL_MAPPER:
            raise RoleTransitionError("Invariants are recorded by the Protocol Mapper")
        invariant = Invariant(
            invariant_id=short_id("INV", {"session": self.session_id, "statement": statement}),
            statement=statement,
            recorded_by=self.active_role,
        )
        if all(i.invariant_id != invariant.invariant_id for i in self.invariants):
            self.invariants.append(invariant)
        return invariant

    def get_invariant(self, invariant_id: str) -> Optional[Invariant]:
        for invariant in self.invariants:
            if invariant.invariant_id == invariant_id:
                return invariant
        return None

    def challenge(self, invariant_id: str, claim: str) -> Contradiction:
        """Record that the active role contradicts a recorded invariant."""
        invariant = self.get_invariant(invariant_id)
        if invariant is None:
            raise KeyError(f"Unknown invariant: {invariant_id}")
        if self.active_role is None or self.active_role == AgentRole.PROTOCOL_MAPPER:
            raise RoleTransitionError("Only a later role can contradict a recorded invariant")

        contradiction = Contradiction(
            contradiction_id=f"C-{len(self.contradictions) + 1}",
            invariant_id=invariant_id,
            role=self.active_role,
            claim=claim,
            raised_at=_now(),
        )
        self.contradictions.append(contradiction)
        review_log.contradiction(self.session_id, contradiction.contradiction_id,
                                 invariant.statement, self.active_role.value)
        return contradiction

    def open_contradictions(self) -> List[Contradiction]:
        return [c for c in self.contradictions if c.is_open]

    def resolve_contradiction(self, contradiction_id: str, resolution: str, resolved_by: str) -> Contradiction:
        """Human resolution of a contradiction."""
        if not resolved_by or not resolution:
            raise ValueError("A contradiction is resolved by a named human with a resolution")
        for contradiction in self.contradictions:
            if contradiction.contradiction_id == contradiction_id:
                if not contradiction.is_open:
                    raise ValueError(f"Contradiction {contradiction_id} already resolved")
                contradiction.resolution = resolution
                contradiction.resolved_by = resolved_by
                return contradiction
        raise KeyError(f"Unknown contradiction: {contradiction_id}")

    def close(self) -> None:
        """Close the session. Refused while contradictions are open."""
        pending = self.open_contradictions()
        if pending:
            raise RoleTransitionError(
                f"{len(pending)} open contradiction(s) must be resolved by a human before closing"
            )
        self.closed = True

    def stages(self) -> List[AuditStage]:
        """Audit stages the active role works in."""
        return [stage for stage, role in STAGE_ROLES.items() if role == self.active_role]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "session_id": self.session_id,
            "active_role": self.active_role.value if self.active_role else None,
            "stages": [s.value for s in self.stages()],
            "invariants": [i.to_dict() for i in self.invariants],
            "contradictions": [c.to_dict() for c in self.contradictions],
            "messages": len(self.messages),
            "closed": self.closed,
        }
