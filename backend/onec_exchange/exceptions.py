"""
Ошибки обмена с 1С.

ExchangeError и наследники фатальны: прогон прерывается, транзакция
откатывается, 1С получает одну строку "failure". RecordSkipped относится к
одной записи: пишется предупреждение, обработка файла продолжается.
"""


class ExchangeError(Exception):
    """Фатальная ошибка прогона обмена"""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def as_response_line(self) -> str:
        message = self.message.rstrip(".")
        return f"{type(self).__name__}: {message}."


class ExchangeXMLError(ExchangeError):
    """Некорректный XML или нарушение структуры CommerceML"""


class ExchangeFileError(ExchangeError):
    """Ошибка ввода-вывода при работе с файлами обмена"""


class ExchangeLockError(ExchangeError):
    """Файл уже обрабатывается другим прогоном"""


class ExchangePathError(ExchangeError):
    """Недопустимое имя файла или выход за пределы каталога обмена"""


class ArchiveError(ExchangeError):
    """Ошибка распаковки архива"""


class ExchangeConfigError(ExchangeError):
    """Настройки обмена не соответствуют выгрузке (например, тип цен)"""


class RecordSkipped(Exception):
    """Запись пропущена, прогон продолжается"""

    def __init__(self, message: str, external_id: str = ""):
        super().__init__(message)
        self.message = message
        self.external_id = external_id


class ExchangeAuthError(ExchangeError):
    """Нет или неверные учётные данные обмена"""
