"""
События обмена для внешних подписчиков (пересчёт кэшей, уведомления).
"""
import inspect
import logging
from typing import Any, Callable, List

logger = logging.getLogger(__name__)


class ExchangeEventBus:
    """Подписчики на завершение разбора файла: callback(namespace, is_full)"""

    def __init__(self):
        self._subscribers: List[Callable[[str, bool], Any]] = []

    def subscribe(self, callback: Callable[[str, bool], Any]) -> None:
        if callback not in self._subscribers:
            self._subscribers.append(callback)

    def unsubscribe(self, callback: Callable[[str, bool], Any]) -> None:
        if callback in self._subscribers:
            self._subscribers.remove(callback)

    async def emit_run_completed(self, namespace: str, is_full: bool) -> None:
        """Ошибка подписчика пишется в лог и не прерывает обмен"""
        for callback in list(self._subscribers):
            try:
                result = callback(namespace, is_full)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                logger.error(f"Ошибка подписчика события завершения обмена ({namespace}): {e}", exc_info=True)


# Глобальный экземпляр шины событий
exchange_events = ExchangeEventBus()
