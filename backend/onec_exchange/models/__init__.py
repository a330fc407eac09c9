from onec_exchange.models.catalog_section import CatalogSection
from onec_exchange.models.product_attribute import ProductAttribute, ProductAttributeOption
from onec_exchange.models.product import Product
from onec_exchange.models.product_catalog_section import ProductCatalogSection
from onec_exchange.models.order import Order, OrderLine
from onec_exchange.models.exchange_option import ExchangeOption

__all__ = [
    "CatalogSection",
    "ProductAttribute",
    "ProductAttributeOption",
    "Product",
    "ProductCatalogSection",
    "Order",
    "OrderLine",
    "ExchangeOption",
]
