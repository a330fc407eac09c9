"""
Свойства товаров (Классификатор/Свойства) и варианты их значений (Справочник).
"""
from sqlalchemy import Column, String, DateTime, Integer, Index, ForeignKey, Uuid
from sqlalchemy.sql import func
import uuid
from onec_exchange.database.connection import Base


class ProductAttribute(Base):
    __tablename__ = "product_attributes"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    external_id = Column(String(255), nullable=False, unique=True)  # Ид свойства
    name = Column(String(255), nullable=False)
    attribute_type = Column(String(20), nullable=False, default="select")  # select, text
    sort_order = Column(Integer, nullable=False, default=0)
    exchange_timestamp = Column(String(64), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    __table_args__ = (
        Index('ix_product_attributes_external_id', 'external_id'),
        Index('ix_product_attributes_exchange_timestamp', 'exchange_timestamp'),
    )


class ProductAttributeOption(Base):
    __tablename__ = "product_attribute_options"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    attribute_id = Column(Uuid(as_uuid=True), ForeignKey("product_attributes.id", ondelete="CASCADE"), nullable=False)
    external_id = Column(String(255), nullable=False)  # ИдЗначения
    value = Column(String(500), nullable=False)
    sort_order = Column(Integer, nullable=False, default=0)
    exchange_timestamp = Column(String(64), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    __table_args__ = (
        Index('ix_product_attribute_options_attribute_external', 'attribute_id', 'external_id', unique=True),
        Index('ix_product_attribute_options_external_id', 'external_id'),
    )
