"""
Определение вида выгрузки по началу файла до полного разбора.

Признак СодержитТолькоИзменения бывает атрибутом (CommerceML 2.05+)
или отдельным элементом (2.03/2.04). Выгрузка МойСклад помечает корень
атрибутом СинхронизацияТоваров.
"""
import logging
import re
from dataclasses import dataclass
from typing import BinaryIO, Optional

from onec_exchange.exceptions import ExchangeFileError

logger = logging.getLogger(__name__)

MAX_HEADER_LINES = 200
MAX_LINE_BYTES = 65536

_ENCODING = re.compile(rb"""<\?xml[^>]*encoding=["']([A-Za-z0-9._-]+)["']""")
_ONLY_CHANGES_ATTR = re.compile(r"""\sСодержитТолькоИзменения=["'](\w+)["']""")
_ONLY_CHANGES_ELEMENT = re.compile(r"<СодержитТолькоИзменения>\s*(\w+)\s*<")
_VENDOR_MARKER = " СинхронизацияТоваров="


@dataclass
class HeaderInfo:
    # None - в начале файла признака нет
    is_full: Optional[bool] = None
    is_vendor_variant: bool = False


def _detect_encoding(first_line: bytes) -> str:
    match = _ENCODING.search(first_line)
    if not match:
        return "utf-8"
    encoding = match.group(1).decode("ascii").lower()
    try:
        "".encode(encoding)
    except LookupError:
        logger.warning(f"Неизвестная кодировка в прологе XML: {encoding}, читаем как utf-8")
        return "utf-8"
    return encoding


def sniff_header(fp: BinaryIO, max_lines: int = MAX_HEADER_LINES) -> HeaderInfo:
    """
    Читает первые строки файла и возвращает HeaderInfo. Поток после вызова
    перемотан в начало.
    """
    info = HeaderInfo()
    try:
        first_line = fp.readline(MAX_LINE_BYTES)
        encoding = _detect_encoding(first_line)
        line = first_line
        for _ in range(max_lines):
            if not line:
                break
            text = line.decode(encoding, errors="replace")

            if not info.is_vendor_variant and _VENDOR_MARKER in text:
                info.is_vendor_variant = True

            if info.is_full is None:
                match = _ONLY_CHANGES_ATTR.search(text) or _ONLY_CHANGES_ELEMENT.search(text)
                if match:
                    only_changes = match.group(1).lower()
                    if only_changes in ("true", "false"):
                        info.is_full = only_changes == "false"

            if info.is_full is not None and info.is_vendor_variant:
                break
            line = fp.readline(MAX_LINE_BYTES)
    except OSError as e:
        raise ExchangeFileError(f"Failed to read file header: {e}") from e

    try:
        fp.seek(0)
    except OSError as e:
        raise ExchangeFileError(f"Failed to rewind file: {e}") from e
    return info
