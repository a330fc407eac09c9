"""
Модель разделов каталога (группы Классификатора CommerceML).
Иерархия хранится через parent_id; parent_external_id дублирует Ид родителя из выгрузки.
"""
from sqlalchemy import Column, String, DateTime, Integer, Index, Text, ForeignKey, Uuid
from sqlalchemy.sql import func
import uuid
from onec_exchange.database.connection import Base


class CatalogSection(Base):
    __tablename__ = "catalog_sections"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)

    # Данные из 1С
    external_id = Column(String(255), nullable=False, unique=True)  # Ид группы
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    parent_id = Column(Uuid(as_uuid=True), ForeignKey("catalog_sections.id", ondelete="SET NULL"), nullable=True)
    parent_external_id = Column(String(255), nullable=True)
    sort_order = Column(Integer, nullable=False, default=0)

    # Метка прогона обмена, в котором группа была записана последний раз
    exchange_timestamp = Column(String(64), nullable=True)

    # Временные метки
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    __table_args__ = (
        Index('ix_catalog_sections_external_id', 'external_id'),
        Index('ix_catalog_sections_parent_id', 'parent_id'),
        Index('ix_catalog_sections_exchange_timestamp', 'exchange_timestamp'),
    )
