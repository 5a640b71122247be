from __future__ import annotations

from sqlalchemy import func

from ..extensions import db


class Account(db.Model):
    """
    Owner account: the household/tenant every ledger row belongs to.

    Users, money accounts, budgets, transactions and transactions reports are
    all scoped to exactly one account. Transfers never cross accounts.
    """
    __tablename__ = "accounts"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def __repr__(self) -> str:
        return f"<Account id={self.id} name={self.name!r}>"

    def money_accounts_balance(self) -> int:
        """Sum of every money account balance, in cents."""
        from .transactions import Transaction

        total = db.session.query(func.coalesce(func.sum(Transaction.amount_cents), 0)).filter(
            Transaction.account_id == self.id
        ).scalar()
        return int(total or 0)


class User(db.Model):
    __tablename__ = "users"
    __table_args__ = (
        db.UniqueConstraint("email", name="uq_users_email"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    account_id = db.Column(db.Integer, db.ForeignKey("accounts.id"), nullable=False, index=True)
    name = db.Column(db.String(255), nullable=False)
    email = db.Column(db.String(255), nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    account = db.relationship("Account", backref=db.backref("users", lazy=True))

    def __repr__(self) -> str:
        return f"<User id={self.id} email={self.email!r}>"


class Budget(db.Model):
    __tablename__ = "budgets"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    account_id = db.Column(db.Integer, db.ForeignKey("accounts.id"), nullable=False, index=True)
    name = db.Column(db.String(255), nullable=False)

    account = db.relationship("Account", backref=db.backref("budgets", lazy=True))


class MoneyAccount(db.Model):
    """
    Ledger partition inside an owner account (cash, bank, savings...).

    The balance is never stored: it is the SUM of the amounts of every
    transaction still attached to this money account. Purged rows are gone,
    and the cutoff row that replaced them carries their net.
    """
    __tablename__ = "money_accounts"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    account_id = db.Column(db.Integer, db.ForeignKey("accounts.id"), nullable=False, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)
    name = db.Column(db.String(255), nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    account = db.relationship("Account", backref=db.backref("money_accounts", lazy=True))
    user = db.relationship("User", backref=db.backref("money_accounts", lazy=True))

    def __repr__(self) -> str:
        return f"<MoneyAccount id={self.id} name={self.name!r}>"

    @property
    def balance_cents(self) -> int:
        from .transactions import Transaction

        total = db.session.query(func.coalesce(func.sum(Transaction.amount_cents), 0)).filter(
            Transaction.money_account_id == self.id
        ).scalar()
        return int(total or 0)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "account_id": self.account_id,
            "user_id": self.user_id,
            "name": self.name,
            "balance_cents": self.balance_cents,
        }
