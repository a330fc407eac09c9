from sqlalchemy import Column, String, DateTime
from sqlalchemy.sql import func
from onec_exchange.database.connection import Base


class ExchangeOption(Base):
    """Значения, которые обновляет сам обмен (валюта магазина, время последнего обмена)"""
    __tablename__ = "exchange_options"

    key = Column(String(100), primary_key=True)
    value = Column(String(500), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
