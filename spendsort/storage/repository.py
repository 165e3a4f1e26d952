"""
Persistence interface for the categorization core.

The core reads and writes the merchant knowledge base, reads user-corrected
transactions and resolves category slugs to ids. Everything goes through
`KnowledgeRepository`; `SQLKnowledgeRepository` is the SQLAlchemy-backed
implementation.
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from collections import Counter
from datetime import datetime, timezone
from typing import Dict, List, Optional, Tuple

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from spendsort.models import (
    CorrectionRecord,
    KnowledgeSource,
    MerchantKnowledgeEntry,
    as_utc,
    utcnow,
)
from spendsort.preprocessing.normalize import normalize
from spendsort.storage.schema import Category, MerchantKnowledge, Subcategory, Transaction
from spendsort.utils.exceptions import KnowledgeBaseError
from spendsort.utils.logger import get_logger

log = get_logger("storage")

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


class KnowledgeRepository(ABC):
    """Narrow persistence interface consumed by the similarity engine and the learner."""

    @abstractmethod
    def list_categorized_entries(self) -> List[MerchantKnowledgeEntry]:
        """All knowledge-base entries with a non-null category."""

    @abstractmethod
    def list_entries(self) -> List[MerchantKnowledgeEntry]:
        pass

    @abstractmethod
    def get_entry(self, merchant_name: str) -> Optional[MerchantKnowledgeEntry]:
        pass

    @abstractmethod
    def upsert_entry(self, entry: MerchantKnowledgeEntry) -> MerchantKnowledgeEntry:
        """Insert or replace the entry keyed by `merchant_name`."""

    @abstractmethod
    def count_entries(self) -> int:
        pass

    @abstractmethod
    def list_corrections(self, user_id: Optional[str] = None) -> List[CorrectionRecord]:
        """User-corrected transactions with a category, newest first."""

    @abstractmethod
    def resolve_category_ids(
        self, category_slug: Optional[str], subcategory_slug: Optional[str] = None
    ) -> Tuple[Optional[str], Optional[str]]:
        pass

    def find_by_merchant_key(self, merchant_key: str) -> Optional[MerchantKnowledgeEntry]:
        """Entry whose merchant name normalizes to `merchant_key`, the most recently updated if several do."""
        matches = [e for e in self.list_entries() if normalize(e.merchant_name) == merchant_key]
        if not matches:
            return None
        return max(matches, key=lambda e: as_utc(e.updated_at) or _EPOCH)

    def count_corrections(self, user_id: Optional[str] = None) -> int:
        return len(self.list_corrections(user_id))

    def category_distribution(self) -> Dict[str, int]:
        return dict(Counter(e.category_slug or "uncategorized" for e in self.list_entries()))

    def source_distribution(self) -> Dict[str, int]:
        return dict(Counter(e.source.value for e in self.list_entries()))


def _to_db_time(value: Optional[datetime]) -> datetime:
    # Stored as UTC; SQLite drops the offset
    return as_utc(value) or utcnow()


class SQLKnowledgeRepository(KnowledgeRepository):
    """KnowledgeRepository over the SQLAlchemy tables in `spendsort.storage.schema`."""

    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory

    def _run(self, operation: str, fn):
        db: Session = self.session_factory()
        try:
            return fn(db)
        except SQLAlchemyError as e:
            db.rollback()
            log.error("Knowledge base operation failed", extra={"operation": operation, "error": str(e)})
            raise KnowledgeBaseError(f"{operation} failed: {e}") from e
        finally:
            db.close()

    @staticmethod
    def _entry_from_row(row: MerchantKnowledge, category_slug: Optional[str]) -> MerchantKnowledgeEntry:
        try:
            source = KnowledgeSource(row.source)
        except ValueError:
            source = KnowledgeSource.IMPORT
        return MerchantKnowledgeEntry(
            merchant_name=row.merchant_name,
            normalized_name=row.normalized_name,
            category_id=row.category_id,
            category_slug=category_slug,
            confidence_score=row.confidence_score,
            source=source,
            metadata=dict(row.meta or {}),
            created_at=as_utc(row.created_at),
            updated_at=as_utc(row.updated_at),
        )

    def _entries(self, db: Session, categorized_only: bool) -> List[MerchantKnowledgeEntry]:
        stmt = (
            select(MerchantKnowledge, Category.slug)
            .outerjoin(Category, MerchantKnowledge.category_id == Category.id)
            .order_by(MerchantKnowledge.merchant_name)
        )
        if categorized_only:
            stmt = stmt.where(MerchantKnowledge.category_id.is_not(None))
        return [self._entry_from_row(row, slug) for row, slug in db.execute(stmt).all()]

    def list_categorized_entries(self) -> List[MerchantKnowledgeEntry]:
        return self._run("list_categorized_entries", lambda db: self._entries(db, True))

    def list_entries(self) -> List[MerchantKnowledgeEntry]:
        return self._run("list_entries", lambda db: self._entries(db, False))

    def get_entry(self, merchant_name: str) -> Optional[MerchantKnowledgeEntry]:
        def _get(db: Session):
            stmt = (
                select(MerchantKnowledge, Category.slug)
                .outerjoin(Category, MerchantKnowledge.category_id == Category.id)
                .where(MerchantKnowledge.merchant_name == merchant_name)
            )
            found = db.execute(stmt).first()
            if found is None:
                return None
            row, slug = found
            return self._entry_from_row(row, slug)

        return self._run("get_entry", _get)

    def upsert_entry(self, entry: MerchantKnowledgeEntry) -> MerchantKnowledgeEntry:
        def _upsert(db: Session):
            row = db.execute(
                select(MerchantKnowledge).where(MerchantKnowledge.merchant_name == entry.merchant_name)
            ).scalar_one_or_none()
            updated_at = _to_db_time(entry.updated_at)
            if row is None:
                row = MerchantKnowledge(
                    merchant_name=entry.merchant_name,
                    created_at=_to_db_time(entry.created_at or entry.updated_at),
                )
                db.add(row)
            row.normalized_name = entry.normalized_name
            row.category_id = entry.category_id
            row.confidence_score = entry.confidence_score
            row.source = entry.source.value
            row.meta = dict(entry.metadata)
            row.updated_at = updated_at
            db.commit()
            slug = None
            if row.category_id is not None:
                slug = db.execute(select(Category.slug).where(Category.id == row.category_id)).scalar_one_or_none()
            return self._entry_from_row(row, slug)

        return self._run("upsert_entry", _upsert)

    def count_entries(self) -> int:
        return self._run(
            "count_entries",
            lambda db: db.execute(select(func.count()).select_from(MerchantKnowledge)).scalar_one(),
        )

    def _corrections_stmt(self, user_id: Optional[str]):
        stmt = (
            select(Transaction, Category.slug)
            .join(Category, Transaction.category_id == Category.id)
            .where(Transaction.user_corrected.is_(True))
            .where(Transaction.category_id.is_not(None))
        )
        if user_id is not None:
            stmt = stmt.where(Transaction.user_id == user_id)
        return stmt

    def list_corrections(self, user_id: Optional[str] = None) -> List[CorrectionRecord]:
        def _list(db: Session):
            stmt = self._corrections_stmt(user_id).order_by(Transaction.updated_at.desc())
            records = []
            for txn, slug in db.execute(stmt).all():
                records.append(CorrectionRecord(
                    transaction_id=txn.id,
                    user_id=txn.user_id,
                    merchant_name=txn.merchant_name or "",
                    description=txn.description or "",
                    category_id=txn.category_id,
                    category_slug=slug,
                    subcategory_id=txn.subcategory_id,
                    updated_at=as_utc(txn.updated_at),
                ))
            return records

        return self._run("list_corrections", _list)

    def count_corrections(self, user_id: Optional[str] = None) -> int:
        def _count(db: Session):
            stmt = select(func.count()).select_from(self._corrections_stmt(user_id).subquery())
            return db.execute(stmt).scalar_one()

        return self._run("count_corrections", _count)

    def resolve_category_ids(
        self, category_slug: Optional[str], subcategory_slug: Optional[str] = None
    ) -> Tuple[Optional[str], Optional[str]]:
        if not category_slug:
            return None, None

        def _resolve(db: Session):
            category_id = db.execute(select(Category.id).where(Category.slug == category_slug)).scalar_one_or_none()
            if category_id is None:
                return None, None
            subcategory_id = None
            if subcategory_slug:
                subcategory_id = db.execute(
                    select(Subcategory.id)
                    .where(Subcategory.category_id == category_id)
                    .where(Subcategory.slug == subcategory_slug)
                ).scalar_one_or_none()
            return category_id, subcategory_id

        return self._run("resolve_category_ids", _resolve)

    def ensure_category(self, category_slug: str, subcategory_slug: Optional[str] = None,
                        name: Optional[str] = None, subcategory_name: Optional[str] = None) -> Tuple[str, Optional[str]]:
        """Create the category (and subcategory) if missing; return their ids."""
        def _ensure(db: Session):
            category = db.execute(select(Category).where(Category.slug == category_slug)).scalar_one_or_none()
            if category is None:
                category = Category(slug=category_slug, name=name or category_slug)
                db.add(category)
                db.flush()
            subcategory = None
            if subcategory_slug:
                subcategory = db.execute(
                    select(Subcategory)
                    .where(Subcategory.category_id == category.id)
                    .where(Subcategory.slug == subcategory_slug)
                ).scalar_one_or_none()
                if subcategory is None:
                    subcategory = Subcategory(
                        slug=subcategory_slug,
                        name=subcategory_name or subcategory_slug,
                        category_id=category.id,
                    )
                    db.add(subcategory)
            db.commit()
            return category.id, subcategory.id if subcategory is not None else None

        return self._run("ensure_category", _ensure)

    def category_distribution(self) -> Dict[str, int]:
        def _dist(db: Session):
            stmt = (
                select(func.coalesce(Category.slug, "uncategorized"), func.count(MerchantKnowledge.id))
                .select_from(MerchantKnowledge)
                .outerjoin(Category, MerchantKnowledge.category_id == Category.id)
                .group_by(Category.slug)
            )
            return {slug: count for slug, count in db.execute(stmt).all()}

        return self._run("category_distribution", _dist)

    def source_distribution(self) -> Dict[str, int]:
        def _dist(db: Session):
            stmt = select(MerchantKnowledge.source, func.count(MerchantKnowledge.id)).group_by(MerchantKnowledge.source)
            return {source: count for source, count in db.execute(stmt).all()}

        return self._run("source_distribution", _dist)


__all__ = ["KnowledgeRepository", "SQLKnowledgeRepository"]
