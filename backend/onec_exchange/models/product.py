from sqlalchemy import Column, String, Integer, Float, JSON, Text, DateTime, Boolean, Index, ForeignKey, Uuid
from sqlalchemy.sql import func
import uuid
from onec_exchange.database.connection import Base


class Product(Base):
    __tablename__ = "products"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)

    # Ид товара в 1С; у вариаций составной "<Ид товара>#<Ид характеристики>"
    external_id = Column(String(255), nullable=False, unique=True)
    parent_id = Column(Uuid(as_uuid=True), ForeignKey("products.id", ondelete="CASCADE"), nullable=True)
    product_type = Column(String(20), nullable=False, default="simple")  # simple, variable, variation

    name = Column(String(500), nullable=False)
    sku = Column(String(100), nullable=True)  # Артикул
    barcode = Column(String(100), nullable=True)
    manufacturer = Column(String(255), nullable=True)
    description = Column(Text, nullable=True)
    short_description = Column(Text, nullable=True)
    status = Column(String(20), nullable=False, default="publish")  # publish, draft, trash
    menu_order = Column(Integer, nullable=False, default=0)

    # Габариты из реквизитов
    weight = Column(Float, nullable=True)
    length = Column(Float, nullable=True)
    width = Column(Float, nullable=True)
    height = Column(Float, nullable=True)

    # Цены
    regular_price = Column(Float, nullable=True)
    sale_price = Column(Float, nullable=True)
    date_on_sale_from = Column(DateTime(timezone=True), nullable=True)
    date_on_sale_to = Column(DateTime(timezone=True), nullable=True)
    price = Column(Float, nullable=True)  # действующая цена
    prices = Column(JSON, nullable=True)  # цены прочих типов: {ИдТипаЦены: {...}}

    # Остатки
    manage_stock = Column(Boolean, default=True, nullable=False)
    stock_quantity = Column(Float, nullable=True)
    stock_status = Column(String(30), nullable=True)  # instock, outofstock, onbackorder

    images = Column(JSON, nullable=True)  # пути картинок из выгрузки
    attributes = Column(JSON, nullable=True)  # [{name, options, variation, external_id}]
    variation_attributes = Column(JSON, nullable=True)  # у вариаций: {имя характеристики: значение}
    requisites = Column(JSON, nullable=True)  # прочие ЗначенияРеквизитов: {Наименование: [значения]}

    exchange_timestamp = Column(String(64), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    __table_args__ = (
        Index('ix_products_external_id', 'external_id'),
        Index('ix_products_parent_id', 'parent_id'),
        Index('ix_products_sku', 'sku'),
        Index('ix_products_exchange_timestamp', 'exchange_timestamp'),
    )
