from datetime import datetime
from decimal import Decimal

from sqlalchemy import DateTime, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column

from cardprices.core.database import Base


class ConfigEntry(Base):
    """
    Key-value configuration row

    Used as the exchange rate cache: key CURRENT_USD_BRL_RATE holds the
    last successfully fetched USD -> BRL rate.
    """

    __tablename__ = "config"

    key: Mapped[str] = mapped_column(String(100), primary_key=True)
    value: Mapped[Decimal | None] = mapped_column(Numeric(18, 6))
    updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
