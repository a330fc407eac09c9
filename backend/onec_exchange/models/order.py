"""
Заказы, принятые из 1С (orders*.xml), и их строки.
"""
from sqlalchemy import Column, String, Float, JSON, Text, DateTime, Boolean, Index, ForeignKey, Uuid
from sqlalchemy.sql import func
import uuid
from onec_exchange.database.connection import Base


class Order(Base):
    __tablename__ = "orders"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    number = Column(String(100), nullable=False, unique=True)  # Номер документа
    external_id = Column(String(255), nullable=True)  # Ид документа

    status = Column(String(30), nullable=False, default="on-hold")
    is_deleted = Column(Boolean, nullable=False, default=False)  # ПометкаУдаления
    currency = Column(String(10), nullable=True)
    total = Column(Float, nullable=True)
    shipping_total = Column(Float, nullable=True)
    order_date = Column(DateTime(timezone=False), nullable=True)
    customer_note = Column(Text, nullable=True)
    contragent = Column(String(255), nullable=True)  # Наименование первого контрагента
    payment_method = Column(String(255), nullable=True)  # реквизит "Метод оплаты"
    counterparties = Column(JSON, nullable=True)
    requisites = Column(JSON, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    __table_args__ = (
        Index('ix_orders_number', 'number'),
        Index('ix_orders_external_id', 'external_id'),
    )


class OrderLine(Base):
    __tablename__ = "order_lines"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    order_id = Column(Uuid(as_uuid=True), ForeignKey("orders.id", ondelete="CASCADE"), nullable=False)
    line_type = Column(String(20), nullable=False, default="line_item")  # line_item, shipping

    product_id = Column(Uuid(as_uuid=True), ForeignKey("products.id", ondelete="SET NULL"), nullable=True)
    product_external_id = Column(String(255), nullable=True)
    name = Column(String(500), nullable=False)
    quantity = Column(Float, nullable=False, default=1)
    price = Column(Float, nullable=True)
    subtotal = Column(Float, nullable=True)
    total = Column(Float, nullable=True)
    variation = Column(JSON, nullable=True)  # характеристики строки

    created_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        Index('ix_order_lines_order_id', 'order_id'),
    )
