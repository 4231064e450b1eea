"""SQLAlchemy models for cambio database."""

from datetime import datetime, UTC
from sqlalchemy import (
    JSON,
    Column,
    Integer,
    String,
    ForeignKey,
    DateTime,
    Date,
    Numeric,
    Boolean,
    UniqueConstraint,
    create_engine,
)
from sqlalchemy.orm import declarative_base, relationship, sessionmaker, Session

Base = declarative_base()

AMOUNT = Numeric(18, 2)


def _now() -> datetime:
    return datetime.now(UTC)


class Client(Base):
    """Client model. The house account is a client row with the configured name."""

    __tablename__ = "clients"

    id = Column(Integer, primary_key=True)
    name = Column(String, unique=True, nullable=False)
    notes = Column(String, nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=_now, nullable=False)

    # Relationships
    transactions = relationship("Transaction", back_populates="client")
    balances = relationship("Balance", back_populates="client")


class Asset(Base):
    """Asset model."""

    __tablename__ = "assets"

    id = Column(Integer, primary_key=True)
    name = Column(String, unique=True, nullable=False)
    is_percentage = Column(Boolean, default=False, nullable=False)
    is_immutable = Column(Boolean, default=False, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=_now, nullable=False)

    # Relationships
    denominations = relationship(
        "Denomination", back_populates="asset", cascade="all, delete-orphan"
    )


class Denomination(Base):
    """Physical note value of an asset."""

    __tablename__ = "denominations"

    id = Column(Integer, primary_key=True)
    asset_id = Column(Integer, ForeignKey("assets.id"), nullable=False)
    value = Column(AMOUNT, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)

    __table_args__ = (UniqueConstraint("asset_id", "value", name="uq_asset_denomination_value"),)

    # Relationships
    asset = relationship("Asset", back_populates="denominations")


class Transaction(Base):
    """Transaction model."""

    __tablename__ = "transactions"

    id = Column(Integer, primary_key=True)
    client_id = Column(Integer, ForeignKey("clients.id"), nullable=False)
    date = Column(Date, nullable=False)
    state = Column(String, nullable=False, default="PENDING")
    notes = Column(String, nullable=True)
    parent_transaction_id = Column(Integer, ForeignKey("transactions.id"), nullable=True)
    settles_parent = Column(Boolean, default=False, nullable=False)
    created_by = Column(String, nullable=True)
    created_at = Column(DateTime, default=_now, nullable=False)
    updated_at = Column(DateTime, default=_now, onupdate=_now, nullable=False)

    # Relationships
    client = relationship("Client", back_populates="transactions")
    parent = relationship("Transaction", remote_side=[id], backref="children")
    movements = relationship(
        "Movement",
        back_populates="transaction",
        cascade="all, delete-orphan",
        order_by="Movement.id",
    )


class Movement(Base):
    """Transaction detail (movement) model."""

    __tablename__ = "movements"

    id = Column(Integer, primary_key=True)
    transaction_id = Column(Integer, ForeignKey("transactions.id"), nullable=False)
    asset_id = Column(Integer, ForeignKey("assets.id"), nullable=False)
    movement_type = Column(String, nullable=False)
    amount = Column(AMOUNT, nullable=False)
    percentage_difference = Column(Numeric(9, 4), nullable=True)
    notes = Column(String, nullable=True)
    created_by = Column(String, nullable=True)

    # Relationships
    transaction = relationship("Transaction", back_populates="movements")
    bill_details = relationship(
        "BillDetail",
        back_populates="movement",
        cascade="all, delete-orphan",
        order_by="BillDetail.id",
    )


class BillDetail(Base):
    """Denomination breakdown of a movement."""

    __tablename__ = "bill_details"

    id = Column(Integer, primary_key=True)
    movement_id = Column(Integer, ForeignKey("movements.id"), nullable=False)
    denomination_id = Column(Integer, ForeignKey("denominations.id"), nullable=False)
    quantity = Column(Integer, nullable=False)

    # Relationships
    movement = relationship("Movement", back_populates="bill_details")


class Balance(Base):
    """Running balance per (client, asset)."""

    __tablename__ = "balances"

    id = Column(Integer, primary_key=True)
    client_id = Column(Integer, ForeignKey("clients.id"), nullable=False)
    asset_id = Column(Integer, ForeignKey("assets.id"), nullable=False)
    amount = Column(AMOUNT, nullable=False, default=0)
    last_transaction_id = Column(Integer, ForeignKey("transactions.id"), nullable=True)
    updated_at = Column(DateTime, default=_now, onupdate=_now, nullable=False)

    __table_args__ = (UniqueConstraint("client_id", "asset_id", name="uq_balance_client_asset"),)

    # Relationships
    client = relationship("Client", back_populates="balances")


class PendingBalance(Base):
    """Outstanding residual of a parent transaction per (client, asset)."""

    __tablename__ = "pending_balances"

    id = Column(Integer, primary_key=True)
    client_id = Column(Integer, ForeignKey("clients.id"), nullable=False)
    asset_id = Column(Integer, ForeignKey("assets.id"), nullable=False)
    transaction_id = Column(Integer, ForeignKey("transactions.id"), nullable=False)
    amount = Column(AMOUNT, nullable=False, default=0)

    __table_args__ = (
        UniqueConstraint(
            "client_id", "asset_id", "transaction_id", name="uq_pending_client_asset_transaction"
        ),
    )


class Reconciliation(Base):
    """Reconciliation trace between a source and a target transaction."""

    __tablename__ = "reconciliations"

    id = Column(Integer, primary_key=True)
    source_transaction_id = Column(Integer, ForeignKey("transactions.id"), nullable=False)
    target_transaction_id = Column(Integer, ForeignKey("transactions.id"), nullable=False)
    amount = Column(AMOUNT, nullable=False)
    notes = Column(String, nullable=True)
    created_by = Column(String, nullable=True)
    created_at = Column(DateTime, default=_now, nullable=False)


class AuditLog(Base):
    """Audit log model."""

    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True)
    entity_type = Column(String, nullable=False)
    entity_id = Column(String, nullable=False)
    action = Column(String, nullable=False)
    payload = Column(JSON, nullable=False, default=dict)
    actor_id = Column(String, nullable=True)
    created_at = Column(DateTime, default=_now, nullable=False)


def create_session_factory(database_url: str) -> sessionmaker[Session]:
    """Create a SQLAlchemy session factory.

    The engine runs every transaction at SERIALIZABLE isolation so concurrent
    balance updates on the same row serialize instead of losing writes.
    """
    engine = create_engine(database_url, echo=False, isolation_level="SERIALIZABLE")
    Base.metadata.create_all(engine)
    return sessionmaker(bind=engine)
