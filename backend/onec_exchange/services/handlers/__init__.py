from onec_exchange.exceptions import ExchangeError
from onec_exchange.services.handlers.base import NamespaceHandler
from onec_exchange.services.handlers.catalog import CatalogHandler
from onec_exchange.services.handlers.offers import OffersHandler
from onec_exchange.services.handlers.orders import OrdersHandler

HANDLERS = {
    CatalogHandler.namespace: CatalogHandler,
    OffersHandler.namespace: OffersHandler,
    OrdersHandler.namespace: OrdersHandler,
}


def create_handler(namespace: str, context, reconciler, **kwargs) -> NamespaceHandler:
    """Обработчик для import / offers / orders"""
    handler_class = HANDLERS.get(namespace)
    if handler_class is None:
        raise ExchangeError(f"Unknown import namespace: {namespace}")
    return handler_class(context, reconciler, **kwargs)


__all__ = [
    "NamespaceHandler",
    "CatalogHandler",
    "OffersHandler",
    "OrdersHandler",
    "HANDLERS",
    "create_handler",
]
