"""Pattern-based danger checker for shell commands.

Every signature in ``DANGER_SIGNATURES`` is tested against the raw command
text, in table order. Overlapping signatures are all reported: ``rm -rf /``
yields both the root-delete and the generic recursive-delete finding.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Iterable, Literal

RiskLevel = Literal["low", "medium", "high", "critical"]


@dataclass(frozen=True, slots=True)
class DangerSignature:
    pattern: re.Pattern[str]
    risk_level: RiskLevel
    reason: str

    def matches(self, command: str) -> bool:
        return self.pattern.search(command) is not None


@dataclass(frozen=True, slots=True)
class RiskFinding:
    risk_level: RiskLevel
    reason: str

    def to_payload(self) -> dict[str, str]:
        return {"risk": self.risk_level, "reason": self.reason}


@dataclass(frozen=True, slots=True)
class ClassificationResult:
    input: str
    findings: tuple[RiskFinding, ...]
    has_danger: bool
    guidance: str

    def to_payload(self) -> dict[str, Any]:
        """Tool result shape handed back to the model."""
        return {
            "type": "danger_check",
            "command": self.input,
            "risks": [finding.to_payload() for finding in self.findings],
            "hasDanger": self.has_danger,
            "instruction": self.guidance,
        }


def _signature(pattern: str, risk_level: RiskLevel, reason: str) -> DangerSignature:
    return DangerSignature(pattern=re.compile(pattern), risk_level=risk_level, reason=reason)


DANGER_SIGNATURES: tuple[DangerSignature, ...] = (
    _signature(r"rm\s+-rf?\s+/", "critical", "Deletes root filesystem"),
    _signature(r"rm\s+-rf", "high", "Recursive force delete without confirmation"),
    _signature(r"mkfs", "critical", "Formats filesystem, destroys all data"),
    _signature(r"dd\s+.*of=/dev/", "critical", "Overwrites disk device directly"),
    _signature(r">\s*/dev/sd[a-z]", "critical", "Overwrites disk device"),
    _signature(r"chmod\s+-R\s+777", "high", "Removes all file permission security"),
    _signature(r"chown\s+-R", "medium", "Recursive ownership change"),
    _signature(r":\(\)\{\s*:\|:\s*&\s*\};\s*:", "critical", "Fork bomb - crashes system"),
    _signature(r">\s*/etc/passwd", "critical", "Overwrites user database"),
    _signature(r"curl.*\|\s*(ba)?sh", "high", "Executes remote script without review"),
    _signature(r"wget.*\|\s*(ba)?sh", "high", "Executes remote script without review"),
)


def render_guidance(command: str, findings: Iterable[RiskFinding]) -> str:
    findings = list(findings)
    if not findings:
        return f"""✅ No obvious dangers detected in: {command}

However, always:
1. Understand what a command does before running it
2. Test with dry-run flags when available
3. Have backups for important data
4. Use sudo only when necessary"""

    risk_lines = "\n".join(
        f"- [{finding.risk_level.upper()}] {finding.reason}" for finding in findings
    )
    return f"""⚠️ DANGER DETECTED in command: {command}

Risks found:
{risk_lines}

Provide:
1. **Why It's Dangerous**: Detailed explanation of what could go wrong
2. **Safer Alternative**: A safer way to accomplish the same goal
3. **If You Must Proceed**: Precautions and backup steps
4. **Recovery Options**: What to do if something goes wrong"""


def classify(
    command: str,
    signatures: Iterable[DangerSignature] = DANGER_SIGNATURES,
) -> ClassificationResult:
    findings = tuple(
        RiskFinding(risk_level=signature.risk_level, reason=signature.reason)
        for signature in signatures
        if signature.matches(command)
    )
    return ClassificationResult(
        input=command,
        findings=findings,
        has_danger=bool(findings),
        guidance=render_guidance(command, findings),
    )
