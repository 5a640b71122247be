"""
Pytest fixtures for cashbook backend tests.

Provides an in-memory database, inline job queue, suppressed mail and a
small ledger (one account, one user, two money accounts) to build on.
"""

from __future__ import annotations

from datetime import date

import pytest
from cashbook import create_app
from cashbook.extensions import db
from cashbook.jobs import job_queue
from cashbook.models import Account, User, Budget, MoneyAccount, Transaction, TransactionKind
from cashbook.time_utils import months_ago, today


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'DATA_RETENTION_MONTHS': 6,
        'REPORT_EXPORT_BATCH_SIZE': 1000,
        'JOBS_INLINE': True,
        'MAIL_SUPPRESS_SEND': True,
        'MAIL_DEFAULT_FROM': 'reports@cashbook.test',
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        job_queue.inline = True
        app.extensions['mail_outbox'] = []

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def account(db_session):
    account = Account(name="Test Account")
    db_session.add(account)
    db_session.commit()
    return account


@pytest.fixture(scope='function')
def user(db_session, account):
    user = User(account_id=account.id, name="Ana", email="ana@example.com")
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture(scope='function')
def cash(db_session, account, user):
    money_account = MoneyAccount(account_id=account.id, user_id=user.id, name="Cash")
    db_session.add(money_account)
    db_session.commit()
    return money_account


@pytest.fixture(scope='function')
def bank(db_session, account, user):
    money_account = MoneyAccount(account_id=account.id, user_id=user.id, name="Bank")
    db_session.add(money_account)
    db_session.commit()
    return money_account


@pytest.fixture(scope='function')
def budget(db_session, account):
    budget = Budget(account_id=account.id, name="Groceries")
    db_session.add(budget)
    db_session.commit()
    return budget


@pytest.fixture(scope='function')
def other_account(db_session):
    """Second owner account with its own user and money account."""
    account = Account(name="Other Account")
    db_session.add(account)
    db_session.flush()
    user = User(account_id=account.id, name="Bo", email="bo@example.com")
    db_session.add(user)
    db_session.flush()
    money_account = MoneyAccount(account_id=account.id, user_id=user.id, name="Other Cash")
    db_session.add(money_account)
    db_session.commit()
    return account


def add_transaction(
    money_account: MoneyAccount,
    amount_cents: int,
    *,
    kind: TransactionKind | None = None,
    on: date | None = None,
    months_back: int | None = None,
    description: str | None = None,
    user: User | None = None,
    budget: Budget | None = None,
    fixed: bool = False,
) -> Transaction:
    """Post a row directly, the way ledger collaborators would."""
    if kind is None:
        kind = TransactionKind.INCOMING if amount_cents > 0 else TransactionKind.EXPENSE
    if on is None:
        on = months_ago(months_back) if months_back is not None else today()
    txn = Transaction(
        account_id=money_account.account_id,
        money_account_id=money_account.id,
        kind=kind,
        amount_cents=amount_cents,
        transaction_date=on,
        description=description,
        user_id=user.id if user else None,
        budget_id=budget.id if budget else None,
        fixed=fixed,
    )
    db.session.add(txn)
    db.session.commit()
    return txn


def balance(money_account: MoneyAccount) -> int:
    return db.session.get(MoneyAccount, money_account.id).balance_cents


def actor_headers(user: User) -> dict:
    """Helper to create actor headers."""
    return {'X-User-Id': str(user.id)}
