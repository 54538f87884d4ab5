"""SQLAlchemy ORM models for the merchant document collections"""

import uuid
from sqlalchemy import Column, String, Boolean, Float, DateTime, Integer, ForeignKey, Text, JSON
from sqlalchemy.orm import declarative_base, relationship
from sqlalchemy.sql import func

Base = declarative_base()


class Merchant(Base):
    """Merchant profile keyed by lower-cased wallet address"""

    __tablename__ = "merchants"

    address = Column(String(42), primary_key=True)
    business_name = Column(Text, nullable=True)
    business_category = Column(Text, nullable=True)
    location = Column(Text, nullable=True)
    kyc_status = Column(Text, nullable=True)
    registered_at = Column(DateTime(timezone=True), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True, index=True)
    last_updated = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    transactions = relationship("MerchantTransaction", back_populates="merchant", cascade="all, delete-orphan")
    loans = relationship("MerchantLoan", back_populates="merchant", cascade="all, delete-orphan")


class MerchantTransaction(Base):
    """Payment received by a merchant"""

    __tablename__ = "transactions"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    merchant_address = Column(String(42), ForeignKey("merchants.address", ondelete="CASCADE"), nullable=False, index=True)
    customer_address = Column(String(42), nullable=True)
    amount = Column(Float, nullable=False)
    currency = Column(Text, nullable=False)
    tx_hash = Column(Text, nullable=True, unique=True)
    timestamp = Column(DateTime(timezone=True), nullable=True)
    status = Column(Text, nullable=False, default="confirmed")
    type = Column(Text, nullable=True)
    notes = Column(Text, nullable=True)

    merchant = relationship("Merchant", back_populates="transactions")


class MerchantLoan(Base):
    """Loan record with lifecycle timestamps"""

    __tablename__ = "loans"

    id = Column(String(64), primary_key=True, default=lambda: str(uuid.uuid4()))
    merchant_address = Column(String(42), ForeignKey("merchants.address", ondelete="CASCADE"), nullable=False, index=True)
    amount = Column(Float, nullable=False)
    status = Column(Text, nullable=False, default="draft")
    purpose = Column(Text, nullable=True)
    requested_at = Column(DateTime(timezone=True), nullable=True)
    approved_at = Column(DateTime(timezone=True), nullable=True)
    disbursed_at = Column(DateTime(timezone=True), nullable=True)
    due_date = Column(DateTime(timezone=True), nullable=True)
    repaid_at = Column(DateTime(timezone=True), nullable=True)

    merchant = relationship("Merchant", back_populates="loans")


class CreditScore(Base):
    """Latest computed score per merchant, kept even when the ledger write fails"""

    __tablename__ = "credit_scores"

    address = Column(String(42), primary_key=True)
    score = Column(Integer, nullable=False)
    factors = Column(JSON, nullable=False)
    weights = Column(JSON, nullable=False)
    score_metadata = Column("metadata", JSON, nullable=True)
    calculated_at = Column(DateTime(timezone=True), nullable=False)
    last_updated = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
