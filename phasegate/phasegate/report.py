"""
PhaseGate Report Rendering

Renders a finding as the markdown skeleton an auditor completes before
submission. Only text is produced; writing files is left to the caller.
"""

from typing import Iterable, List, Optional

from .findings import Finding
from .phases import PhaseLabel


def _mark(value: Optional[bool]) -> str:
    if value is None:
        return "UNKNOWN"
    return "PASS" if value else "FAIL"


_MITIGATIONS = {
    PhaseLabel.SNAPSHOT: "Re-read state after external calls, or update state before calling out (checks-effects-interactions).",
    PhaseLabel.ACCOUNTING: "Round against the caller and bound inputs so share and price math cannot be skewed.",
    PhaseLabel.VALIDATION: "Validate every caller-controlled input before it reaches state.",
    PhaseLabel.MUTATION: "Move the check before the mutation it guards.",
    PhaseLabel.COMMIT: "Guard the write with an explicit authorization check.",
    PhaseLabel.EVENTS: "Emit events only after the state change has succeeded.",
    PhaseLabel.ERROR: "Handle the error path explicitly instead of aborting or discarding it.",
}


def render_finding(finding: Finding) -> str:
    """Render one finding as markdown."""
    h = finding.hypothesis
    result = finding.gate_result
    lines: List[str] = []

    lines.append(f"# [{finding.severity.value}] {h.description}")
    lines.append("")

    lines.append("## Triage Dashboard")
    lines.append("")
    lines.append("| Field | Value |")
    lines.append("|---|---|")
    lines.append(f"| Finding | {finding.finding_id} |")
    lines.append(f"| Hypothesis | {h.hypothesis_id} |")
    lines.append(f"| Severity | {finding.severity.value} |")
    lines.append(f"| Phase | {h.phase.value} |")
    lines.append(f"| Location | `{finding.location}` |")
    lines.append(f"| Impact | {finding.impact} |")
    if h.similar_exploit:
        lines.append(f"| Similar exploit | {h.similar_exploit} |")
    lines.append("")

    lines.append("## Validation Checks")
    lines.append("")
    lines.append("| Check | Result | Detail |")
    lines.append("|---|---|---|")
    details = {e.gate_id: e.observed or e.required or "" for e in result.evaluations}
    for name, value in result.predicates().items():
        lines.append(f"| {name} | {_mark(value)} | {details.get(name, '')} |")
    lines.append("")

    lines.append("## Executive Proof")
    lines.append("")
    lines.append(f"{h.description}. The unit at `{finding.location}` is reachable, reads fresh state, "
                 f"has every external call accounted for, and the attack cost is below the "
                 f"feasibility threshold.")
    lines.append("")

    lines.append("## Root Cause")
    lines.append("")
    lines.append(finding.root_cause)
    lines.append("")

    lines.append("## Severity Platform Mapping")
    lines.append("")
    lines.append("| Platform | Label |")
    lines.append("|---|---|")
    for platform, label in finding.platform_labels().items():
        lines.append(f"| {platform} | {label} |")
    lines.append("")

    lines.append("## Recommended Mitigation")
    lines.append("")
    lines.append(_MITIGATIONS[h.phase])
    lines.append("")

    return "\n".join(lines)


def render_findings(findings: Iterable[Finding]) -> str:
    """Render several findings, most severe first."""
    ordered = sorted(findings, key=lambda f: -f.severity.rank)
    return "\n---\n\n".join(render_finding(f) for f in ordered)
