from datetime import datetime
from decimal import Decimal

from sqlalchemy import (
    BigInteger,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from cardprices.core.database import Base

# BIGSERIAL on PostgreSQL, INTEGER PRIMARY KEY (rowid) on SQLite
BigIntPK = BigInteger().with_variant(Integer(), "sqlite")


class CardSet(Base):
    """
    Card set (expansion) catalog

    Owned by the catalog CRUD; mapped here for the card relationship only.
    """

    __tablename__ = "card_sets"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)

    cards: Mapped[list["Card"]] = relationship("Card", back_populates="card_set")


class Card(Base):
    """
    Card master row

    The primary key is the TCGplayer product id, so price feed records
    map onto cards without a lookup table. The pipeline never creates cards.
    """

    __tablename__ = "cards"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=False)
    name: Mapped[str | None] = mapped_column(String(200))
    set_id: Mapped[int | None] = mapped_column(
        ForeignKey("card_sets.id", ondelete="SET NULL")
    )

    card_set: Mapped["CardSet | None"] = relationship("CardSet", back_populates="cards")
    prices: Mapped[list["PriceHistory"]] = relationship(
        "PriceHistory", back_populates="card", cascade="all, delete-orphan", passive_deletes=True
    )


class PriceHistory(Base):
    """
    Price snapshot (가격 스냅샷)

    Append-only: one row per card per ingestion run. Rows are never updated;
    the retention job deletes rows older than the retention window.
    Duplicates across runs are expected, so readers take the newest row.
    """

    __tablename__ = "price_history"
    __table_args__ = (
        Index("idx_price_history_card_recorded", "card_id", "recorded_at"),
        Index("idx_price_history_recorded_at", "recorded_at"),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    card_id: Mapped[int] = mapped_column(
        ForeignKey("cards.id", ondelete="CASCADE"), nullable=False
    )
    recorded_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    price_min_market_us: Mapped[Decimal | None] = mapped_column(Numeric(12, 2))
    price_avg_market_us: Mapped[Decimal | None] = mapped_column(Numeric(12, 2))
    price_max_market_us: Mapped[Decimal | None] = mapped_column(Numeric(12, 2))
    price_market_market_us: Mapped[Decimal | None] = mapped_column(Numeric(12, 2))
    source: Mapped[str | None] = mapped_column(String(20))

    card: Mapped["Card"] = relationship("Card", back_populates="prices")


class PriceUpdateLog(Base):
    """
    Ingestion marker

    Single row (id = 1) holding the last upstream last-updated token
    that was fully ingested.
    """

    __tablename__ = "price_update_log"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=False)
    last_update: Mapped[str | None] = mapped_column(Text)
