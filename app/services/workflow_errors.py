"""Error taxonomy for the loan origination workflow.

Each error carries a stable ``code`` so clients can tell a duplicate request
(retry with a new token) from contention (retry shortly) from a validation
failure (do not retry).
"""

from __future__ import annotations

from typing import Any


class LoanWorkflowError(Exception):
    code: str = "loan_workflow_error"
    status_code: int = 400

    def __init__(self, message: str, *, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        return self.message


class NotFound(LoanWorkflowError):
    code = "not_found"
    status_code = 404


class LoanNotFound(NotFound):
    code = "loan_not_found"

    def __init__(self, loan_id) -> None:
        super().__init__("Loan not found", details={"loan_id": str(loan_id)})


class ApprovalNotFound(NotFound):
    code = "approval_not_found"

    def __init__(self, loan_id) -> None:
        super().__init__("Loan approval not found", details={"loan_id": str(loan_id)})


class DisbursementNotFound(NotFound):
    code = "disbursement_not_found"

    def __init__(self, loan_id) -> None:
        super().__init__("Loan disbursement not found", details={"loan_id": str(loan_id)})


class InvalidTransition(LoanWorkflowError):
    code = "invalid_transition"
    status_code = 409

    def __init__(self, from_state: str, to_state: str, cause: str) -> None:
        super().__init__(
            f"invalid transition {from_state} -> {to_state}: {cause}",
            details={"from": from_state, "to": to_state, "cause": cause},
        )
        self.from_state = from_state
        self.to_state = to_state
        self.cause = cause


class ValidationFailed(LoanWorkflowError):
    code = "validation_failed"
    status_code = 400


class DuplicateRequest(LoanWorkflowError):
    code = "duplicate_request"
    status_code = 409

    def __init__(self, key: str) -> None:
        super().__init__(
            "Duplicate request: idempotency key already used",
            details={"idempotency_key": key},
        )


class LockContended(LoanWorkflowError):
    code = "lock_contended"
    status_code = 423


class ConcurrentUpdate(LockContended):
    code = "concurrent_update"
    status_code = 409


class CollaboratorUnavailable(LoanWorkflowError):
    code = "collaborator_unavailable"
    status_code = 503

    def __init__(self, collaborator: str, message: str) -> None:
        super().__init__(message, details={"collaborator": collaborator})
        self.collaborator = collaborator


class InvestorNotFound(NotFound):
    code = "investor_not_found"

    def __init__(self, investor_id) -> None:
        super().__init__("Investor not found", details={"investor_id": str(investor_id)})


class InvestorAlreadyRegistered(LoanWorkflowError):
    code = "investor_already_registered"
    status_code = 409

    def __init__(self, email: str) -> None:
        super().__init__("An investor with this email already exists", details={"email": email})
