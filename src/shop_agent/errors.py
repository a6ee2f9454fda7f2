"""Gateway error taxonomy.

Gates report these through result objects; only ``SchemaDrift`` is raised to
the process boundary. Nothing here is retried.
"""

from __future__ import annotations


class GatewayError(RuntimeError):
    code = "GATEWAY_ERROR"

    def __init__(self, message: str, details: dict | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ValidationError(GatewayError):
    """Shape or range violation in an agent-produced document."""

    code = "VALIDATION_ERROR"


class PolicyViolation(GatewayError):
    """A confirmed action tripped a BLOCK policy."""

    code = "POLICY_VIOLATION"


class ScopeViolation(GatewayError):
    """Attempt to read or act on another tenant's data."""

    code = "SCOPE_VIOLATION"


class UnsupportedOperation(GatewayError):
    """Unknown tool or collection."""

    code = "UNSUPPORTED_OPERATION"


class ExecutionFailure(GatewayError):
    code = "EXECUTION_FAILURE"


class SchemaDrift(GatewayError):
    """Declarative and executable schemas disagree. Fatal at startup."""

    code = "SCHEMA_DRIFT"

    def __init__(self, mismatches: list[str]) -> None:
        lines = [
            "Schema consistency check failed: declarative JSON schemas and executable validators disagree.",
            *(f"  - {item}" for item in mismatches),
            "Update one side so both describe the same contract.",
        ]
        super().__init__("\n".join(lines), {"mismatches": list(mismatches)})
        self.mismatches = list(mismatches)
