"""Security policy, risk classification and auditing for remote tools."""

from bibble.security.audit import AuditLog, AuditLogEntry
from bibble.security.classifier import ToolRisk, classify_tool_risk, describe_risk
from bibble.security.policy import (
    ConfirmationRequest,
    SecurityDecision,
    SecurityPolicyEngine,
)

__all__ = [
    "AuditLog",
    "AuditLogEntry",
    "ToolRisk",
    "classify_tool_risk",
    "describe_risk",
    "ConfirmationRequest",
    "SecurityDecision",
    "SecurityPolicyEngine",
]
