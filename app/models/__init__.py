from app.models.investment import Investment
from app.models.investor import Investor
from app.models.loan import Loan
from app.models.loan_approval import LoanApproval
from app.models.loan_disbursement import LoanDisbursement

__all__ = [
    "Investment",
    "Investor",
    "Loan",
    "LoanApproval",
    "LoanDisbursement",
]
