from .accounts import Account, User, Budget, MoneyAccount
from .transactions import Transaction, TransactionKind, InvalidTransactionError
from .reports import (
    TransactionsReport,
    ReportArtifact,
    REPORT_STATUS_IN_PROCESS,
    REPORT_STATUS_COMPLETED,
    REPORT_STATUS_FAILED,
    TERMINAL_REPORT_STATUSES,
)
from .jobs import (
    QueuedJob,
    JOB_STATUS_PENDING,
    JOB_STATUS_RUNNING,
    JOB_STATUS_DEAD,
    JOB_STATUS_DONE,
)

__all__ = [
    'Account', 'User', 'Budget', 'MoneyAccount',
    'Transaction', 'TransactionKind', 'InvalidTransactionError',
    'TransactionsReport', 'ReportArtifact',
    'REPORT_STATUS_IN_PROCESS', 'REPORT_STATUS_COMPLETED', 'REPORT_STATUS_FAILED',
    'TERMINAL_REPORT_STATUSES',
    'QueuedJob', 'JOB_STATUS_PENDING', 'JOB_STATUS_RUNNING', 'JOB_STATUS_DEAD', 'JOB_STATUS_DONE',
]
