"""ORM tables backing the merchant knowledge base and user corrections."""
import uuid

from sqlalchemy import Boolean, Column, DateTime, Float, ForeignKey, Index, JSON, String, Text, UniqueConstraint

from spendsort.models import utcnow
from spendsort.storage.database import Base


def _uuid() -> str:
    return str(uuid.uuid4())


class Category(Base):
    __tablename__ = "categories"

    id = Column(String(36), primary_key=True, default=_uuid)
    slug = Column(String(100), unique=True, nullable=False, index=True)
    name = Column(String(255), nullable=False)


class Subcategory(Base):
    __tablename__ = "subcategories"

    id = Column(String(36), primary_key=True, default=_uuid)
    # Slugs repeat across parents, e.g. transportation/gas and rent-and-utilities/gas
    slug = Column(String(100), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    category_id = Column(String(36), ForeignKey("categories.id"), nullable=False)

    __table_args__ = (
        UniqueConstraint("category_id", "slug", name="uq_subcategory_parent_slug"),
    )


class MerchantKnowledge(Base):
    __tablename__ = "merchant_knowledge"

    id = Column(String(36), primary_key=True, default=_uuid)
    merchant_name = Column(String(255), unique=True, nullable=False, index=True)
    normalized_name = Column(String(255), nullable=False)
    category_id = Column(String(36), ForeignKey("categories.id"), nullable=True)
    confidence_score = Column(Float, nullable=False, default=0.9)
    source = Column(String(32), nullable=False, default="seed")
    # `metadata` is reserved on declarative classes
    meta = Column("metadata", JSON, nullable=False, default=dict)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)


class Transaction(Base):
    """Only the columns correction mining reads; the rest of the ledger lives elsewhere."""
    __tablename__ = "transactions"

    id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(String(36), nullable=True, index=True)
    merchant_name = Column(String(255), nullable=True)
    description = Column(Text, nullable=False, default="")
    amount = Column(Float, nullable=False, default=0.0)
    category_id = Column(String(36), ForeignKey("categories.id"), nullable=True)
    subcategory_id = Column(String(36), ForeignKey("subcategories.id"), nullable=True)
    user_corrected = Column(Boolean, nullable=False, default=False)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    __table_args__ = (
        Index("ix_transactions_corrected", "user_corrected", "updated_at"),
    )
