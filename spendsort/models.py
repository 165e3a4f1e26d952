from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, computed_field, field_validator


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Treat naive datetimes as UTC so stored and supplied timestamps compare."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class CategorizationMethod(str, Enum):
    RULE_BASED = "rule-based"
    ML = "ml"
    HYBRID = "hybrid"
    NONE = "none"


class ReviewAction(str, Enum):
    """What a caller should do with a result of a given confidence."""
    AUTO_APPLY = "auto_apply"
    NEEDS_REVIEW = "needs_review"
    MANUAL = "manual"


class KnowledgeSource(str, Enum):
    SEED = "seed"
    IMPORT = "import"
    USER_CORRECTION = "user_correction"
    RULE = "rule"


AUTO_APPLY_THRESHOLD = 0.90
NEEDS_REVIEW_THRESHOLD = 0.70


def review_action(confidence: float) -> ReviewAction:
    if confidence >= AUTO_APPLY_THRESHOLD:
        return ReviewAction.AUTO_APPLY
    if confidence >= NEEDS_REVIEW_THRESHOLD:
        return ReviewAction.NEEDS_REVIEW
    return ReviewAction.MANUAL


class TransactionInput(BaseModel):
    """Transaction to categorize, as supplied by the import/edit flow"""
    model_config = ConfigDict(populate_by_name=True)

    description: str = Field("", description="Bank statement description")
    merchant_name: str = Field("", description="Merchant name")
    amount: float = Field(0.0, description="Signed amount, negative for debits")
    # Alias keeps the public field name `date` without shadowing the type
    txn_date: Optional[datetime] = Field(None, alias="date", description="Transaction date")
    user_id: Optional[str] = Field(None, description="Owner of the transaction")

    @field_validator("description", "merchant_name", mode="before")
    @classmethod
    def _none_to_empty(cls, value: Any) -> Any:
        if value is None:
            return ""
        return value

    @property
    def query_text(self) -> str:
        """Text used for similarity search: merchant name, then description."""
        return f"{self.merchant_name} {self.description}".strip()


class RuleMatch(BaseModel):
    """Outcome of the keyword rule stage"""
    matched: bool = False
    category_slug: Optional[str] = None
    subcategory_slug: Optional[str] = None
    confidence: float = 0.0
    matched_keyword: Optional[str] = None
    priority: Optional[int] = None


class Neighbor(BaseModel):
    name: str
    category_slug: str
    similarity: float


class EmbeddingMatch(BaseModel):
    """Outcome of the nearest-neighbour stage"""
    category_id: Optional[str] = None
    category_slug: Optional[str] = None
    confidence: float = 0.0
    nearest_example_name: Optional[str] = None
    similarity: float = 0.0
    neighbors: List[Neighbor] = Field(default_factory=list)
    error: Optional[str] = None


class CategorizationResult(BaseModel):
    """Complete categorization decision plus per-stage diagnostics"""
    category_id: Optional[str] = None
    category_slug: Optional[str] = None
    subcategory_id: Optional[str] = None
    subcategory_slug: Optional[str] = None
    confidence_score: float = Field(0.0, ge=0.0, le=1.0)
    method: CategorizationMethod = CategorizationMethod.NONE
    rule_result: RuleMatch = Field(default_factory=RuleMatch)
    ml_result: Optional[EmbeddingMatch] = None

    @computed_field  # type: ignore[misc]
    @property
    def review_action(self) -> ReviewAction:
        return review_action(self.confidence_score)


class MerchantKnowledgeEntry(BaseModel):
    """One row of the merchant knowledge base"""
    merchant_name: str
    normalized_name: str
    category_id: Optional[str] = None
    category_slug: Optional[str] = None
    confidence_score: float = 0.9
    source: KnowledgeSource = KnowledgeSource.SEED
    metadata: Dict[str, Any] = Field(default_factory=dict)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class CorrectionRecord(BaseModel):
    """A transaction whose category was set by hand"""
    transaction_id: str
    user_id: Optional[str] = None
    merchant_name: str
    description: str = ""
    category_id: str
    category_slug: Optional[str] = None
    subcategory_id: Optional[str] = None
    updated_at: datetime


class TrainingStats(BaseModel):
    corrections_count: int = 0
    unique_merchants: int = 0
    created: int = 0
    updated: int = 0
    unchanged: int = 0
    skipped: int = 0
    failed: int = 0
    knowledge_base_size: int = 0
    categories_updated: List[str] = Field(default_factory=list)
    trained_at: datetime = Field(default_factory=utcnow)
    scope: Optional[str] = None


class MerchantResolution(BaseModel):
    """Result of the full merchant-name resolution pipeline"""
    original: str
    preprocessed: str
    normalized: str
    matched_from: Optional[str] = None
    confidence: float
    source: str  # "preprocessing" | "canonical_map" | "knowledge_base"
