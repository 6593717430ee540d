"""
SQL transaction store (SQLAlchemy).

SQLite is the default backend. Every state transition runs as one
transaction: a conditional UPDATE on the transaction row plus an
insert-or-nothing on the ledger claim table, rolled back as a unit when
either write affects no row.
"""

import threading
from contextlib import contextmanager, nullcontext
from datetime import datetime
from typing import Dict, List, Optional

import structlog
from sqlalchemy import (
    BigInteger,
    Column,
    Date,
    DateTime,
    Float,
    ForeignKey,
    String,
    Text,
    UniqueConstraint,
    create_engine,
    event,
    select,
    update,
)
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool
from tenacity import retry, retry_if_exception, stop_after_attempt, wait_exponential

from ..errors import NotFoundError, StateConflictError
from ..models import (
    BankTransaction,
    ConflictCode,
    Direction,
    MatchMethod,
    TransactionStatus,
)
from .base import TransactionStore

logger = structlog.get_logger()

Base = declarative_base()


class TransactionRow(Base):
    __tablename__ = "bank_transactions"

    id = Column(String(36), primary_key=True)
    transaction_date = Column(Date, nullable=False, index=True)
    value_date = Column(Date, nullable=True)
    label = Column(Text, nullable=False)
    bank_reference = Column(String, nullable=True)
    # bank_reference with NULL folded to '' so the dedup constraint sees it
    dedup_reference = Column(String, nullable=False, default="")
    amount_cents = Column(BigInteger, nullable=False)
    currency = Column(String(3), nullable=False, default="MAD")
    direction = Column(String(10), nullable=False)
    status = Column(String(16), nullable=False, default=TransactionStatus.UNMATCHED.value, index=True)
    confidence_score = Column(Float, nullable=True)
    linked_ledger_id = Column(String, nullable=True)
    notes = Column(Text, nullable=True)
    reconciled_at = Column(DateTime, nullable=True)
    reconciled_by = Column(String, nullable=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    __table_args__ = (
        UniqueConstraint(
            "transaction_date", "amount_cents", "label", "dedup_reference",
            name="uq_bank_transactions_dedup",
        ),
    )


class LedgerClaimRow(Base):
    __tablename__ = "ledger_claims"

    ledger_id = Column(String, primary_key=True)
    transaction_id = Column(String(36), ForeignKey("bank_transactions.id"), nullable=False, unique=True)
    claimed_at = Column(DateTime, nullable=False)


def _is_locked(error: BaseException) -> bool:
    return isinstance(error, OperationalError) and "locked" in str(error).lower()


# Writers on SQLite serialize on the database lock; back off and retry
_retry_on_lock = retry(
    retry=retry_if_exception(_is_locked),
    stop=stop_after_attempt(5),
    wait=wait_exponential(multiplier=0.05, min=0.05, max=1),
    reraise=True,
)


def _to_transaction(row: TransactionRow) -> BankTransaction:
    return BankTransaction(
        id=row.id,
        transaction_date=row.transaction_date,
        value_date=row.value_date,
        label=row.label,
        bank_reference=row.bank_reference,
        amount_cents=row.amount_cents,
        currency=row.currency,
        direction=Direction(row.direction),
        status=TransactionStatus(row.status),
        confidence_score=row.confidence_score,
        linked_ledger_id=row.linked_ledger_id,
        notes=row.notes,
        reconciled_at=row.reconciled_at,
        reconciled_by=row.reconciled_by,
        created_at=row.created_at,
    )


class SqlTransactionStore(TransactionStore):
    """
    SQLAlchemy-backed store.

    Args:
        database_url: e.g. 'sqlite:///reconciliation.db'. 'sqlite://' gives a
            private in-memory database shared by all sessions of this store;
            its sessions run one at a time.
        echo: Log emitted SQL
    """

    def __init__(self, database_url: str, echo: bool = False):
        self.database_url = database_url
        self.engine = self._create_engine(database_url, echo)
        self.SessionLocal = sessionmaker(bind=self.engine, autoflush=False, expire_on_commit=False)
        # A StaticPool hands every thread the same DBAPI connection, so
        # sessions must not overlap on it
        self._connection_lock = threading.RLock() if isinstance(self.engine.pool, StaticPool) else None
        Base.metadata.create_all(bind=self.engine)

        if self.engine.dialect.name == "sqlite":
            self._insert = sqlite_insert
        elif self.engine.dialect.name == "postgresql":
            self._insert = pg_insert
        else:
            raise ValueError(f"Unsupported database dialect: {self.engine.dialect.name}")

        logger.info("SQL transaction store ready", dialect=self.engine.dialect.name)

    @staticmethod
    def _create_engine(database_url: str, echo: bool):
        if not database_url.startswith("sqlite"):
            return create_engine(database_url, echo=echo)

        kwargs = {"connect_args": {"check_same_thread": False, "timeout": 30}}
        if database_url in ("sqlite://", "sqlite:///:memory:"):
            kwargs["poolclass"] = StaticPool
        engine = create_engine(database_url, echo=echo, **kwargs)

        # pysqlite's own transaction handling defers BEGIN; take the write
        # lock up front so conditional writes cannot interleave.
        @event.listens_for(engine, "connect")
        def _disable_pysqlite_begin(dbapi_connection, connection_record):
            dbapi_connection.isolation_level = None

        @event.listens_for(engine, "begin")
        def _begin_immediate(conn):
            conn.exec_driver_sql("BEGIN IMMEDIATE")

        return engine

    @contextmanager
    def session_scope(self):
        with self._connection_lock or nullcontext():
            session = self.SessionLocal()
            try:
                yield session
                session.commit()
            except Exception:
                session.rollback()
                raise
            finally:
                session.close()

    @_retry_on_lock
    def add_if_absent(self, transaction: BankTransaction) -> bool:
        stmt = self._insert(TransactionRow.__table__).values(
            id=transaction.id,
            transaction_date=transaction.transaction_date,
            value_date=transaction.value_date,
            label=transaction.label,
            bank_reference=transaction.bank_reference,
            dedup_reference=transaction.bank_reference or "",
            amount_cents=transaction.amount_cents,
            currency=transaction.currency,
            direction=transaction.direction.value,
            status=transaction.status.value,
            confidence_score=transaction.confidence_score,
            linked_ledger_id=transaction.linked_ledger_id,
            notes=transaction.notes,
            reconciled_at=transaction.reconciled_at,
            reconciled_by=transaction.reconciled_by,
            created_at=transaction.created_at,
        ).on_conflict_do_nothing()

        with self.session_scope() as session:
            result = session.execute(stmt)
            return result.rowcount > 0

    def get(self, transaction_id: str) -> Optional[BankTransaction]:
        with self.session_scope() as session:
            row = session.get(TransactionRow, transaction_id)
            return _to_transaction(row) if row else None

    def list_transactions(
        self,
        status: Optional[TransactionStatus] = None,
    ) -> List[BankTransaction]:
        query = select(TransactionRow).order_by(
            TransactionRow.transaction_date.desc(), TransactionRow.id
        )
        if status is not None:
            query = query.where(TransactionRow.status == status.value)
        with self.session_scope() as session:
            return [_to_transaction(row) for row in session.scalars(query)]

    def claims(self) -> Dict[str, str]:
        with self.session_scope() as session:
            rows = session.execute(select(LedgerClaimRow.ledger_id, LedgerClaimRow.transaction_id))
            return {ledger_id: transaction_id for ledger_id, transaction_id in rows}

    @_retry_on_lock
    def commit_reconciliation(
        self,
        transaction_id: str,
        ledger_id: str,
        score: float,
        method: MatchMethod,
        actor: Optional[str],
        committed_at: datetime,
    ) -> BankTransaction:
        reconciled_by = actor if method == MatchMethod.MANUAL else MatchMethod.AUTO.value

        with self.session_scope() as session:
            result = session.execute(
                update(TransactionRow)
                .where(
                    TransactionRow.id == transaction_id,
                    TransactionRow.status == TransactionStatus.UNMATCHED.value,
                )
                .values(
                    status=TransactionStatus.RECONCILED.value,
                    linked_ledger_id=ledger_id,
                    confidence_score=score,
                    reconciled_at=committed_at,
                    reconciled_by=reconciled_by,
                )
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                row = session.get(TransactionRow, transaction_id)
                if row is None:
                    raise NotFoundError("transaction", transaction_id)
                raise StateConflictError(
                    ConflictCode.ALREADY_RECONCILED,
                    f"Transaction {transaction_id} is already {row.status}",
                )

            claim = session.execute(
                self._insert(LedgerClaimRow.__table__)
                .values(ledger_id=ledger_id, transaction_id=transaction_id, claimed_at=committed_at)
                .on_conflict_do_nothing(index_elements=["ledger_id"])
            )
            if claim.rowcount == 0:
                holder = session.scalar(
                    select(LedgerClaimRow.transaction_id).where(LedgerClaimRow.ledger_id == ledger_id)
                )
                # Raising inside the scope rolls back the status update above
                raise StateConflictError(
                    ConflictCode.LEDGER_ALREADY_CLAIMED,
                    f"Ledger record {ledger_id} is already claimed",
                    details={"claimed_by": holder},
                )

            row = session.get(TransactionRow, transaction_id)
            return _to_transaction(row)

    @_retry_on_lock
    def mark_ignored(self, transaction_id: str, reason: str) -> BankTransaction:
        with self.session_scope() as session:
            result = session.execute(
                update(TransactionRow)
                .where(
                    TransactionRow.id == transaction_id,
                    TransactionRow.status == TransactionStatus.UNMATCHED.value,
                )
                .values(status=TransactionStatus.IGNORED.value, notes=reason)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                row = session.get(TransactionRow, transaction_id)
                if row is None:
                    raise NotFoundError("transaction", transaction_id)
                raise StateConflictError(
                    ConflictCode.ALREADY_RESOLVED,
                    f"Transaction {transaction_id} is already {row.status}",
                )
            row = session.get(TransactionRow, transaction_id)
            return _to_transaction(row)

    def close(self) -> None:
        self.engine.dispose()
