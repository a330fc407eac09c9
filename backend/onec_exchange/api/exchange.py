"""
Точка обмена с 1С по протоколу CommerceML:
/1c_exchange?type=catalog|sale&mode=checkauth|init|file|import|query|success[&filename=...]

Ответы - простой текст. Фатальная ошибка прогона превращается в
"failure\n<Тип>: <сообщение>." со статусом 200, как ожидает 1С.
"""
import logging
import secrets
import time
from datetime import datetime, timezone
from typing import Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from fastapi.responses import PlainTextResponse
from fastapi.security import HTTPBasic, HTTPBasicCredentials
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from onec_exchange.config import ExchangeSettings, get_settings
from onec_exchange.database.connection import get_db
from onec_exchange.exceptions import ExchangeAuthError, ExchangeError
from onec_exchange.services.exchange_service import ExchangeService
from onec_exchange.services.run_registry import run_registry

router = APIRouter(tags=["1C Exchange"])
logger = logging.getLogger(__name__)

security = HTTPBasic(auto_error=False)

MODES = ("checkauth", "init", "file", "import", "query", "success")
COOKIE_TTL_SECONDS = 24 * 3600

EMPTY_QUERY_DOCUMENT = (
    '<?xml version="1.0" encoding="UTF-8"?>\n'
    '<КоммерческаяИнформация ВерсияСхемы="2.05" ДатаФормирования="{date}"/>\n'
)


class ExchangeSessions:
    """Куки, выданные на mode=checkauth (в памяти процесса)"""

    def __init__(self, ttl_seconds: int = COOKIE_TTL_SECONDS):
        self.ttl_seconds = ttl_seconds
        self._tokens: Dict[str, float] = {}

    def issue(self) -> str:
        self._purge()
        token = secrets.token_urlsafe(32)
        self._tokens[token] = time.time() + self.ttl_seconds
        return token

    def is_valid(self, token: Optional[str]) -> bool:
        if not token:
            return False
        expires_at = self._tokens.get(token)
        return expires_at is not None and expires_at > time.time()

    def _purge(self) -> None:
        now = time.time()
        for token in [t for t, expires_at in self._tokens.items() if expires_at <= now]:
            del self._tokens[token]


exchange_sessions = ExchangeSessions()


def _credentials_valid(credentials: Optional[HTTPBasicCredentials], settings: ExchangeSettings) -> bool:
    if credentials is None:
        return False
    login_ok = secrets.compare_digest(credentials.username.encode("utf-8"), settings.login.encode("utf-8"))
    password_ok = secrets.compare_digest(credentials.password.encode("utf-8"), settings.password.encode("utf-8"))
    return login_ok and password_ok


def check_access(request: Request, credentials: Optional[HTTPBasicCredentials], settings: ExchangeSettings) -> None:
    """Basic или кука, выданная на checkauth"""
    if _credentials_valid(credentials, settings):
        return
    if exchange_sessions.is_valid(request.cookies.get(settings.cookie_name)):
        return
    logger.warning(f"Обмен 1С: отказ в доступе для {request.client.host if request.client else 'unknown'}")
    raise ExchangeAuthError("Not logged in")


def _text(body: str) -> PlainTextResponse:
    return PlainTextResponse(body, media_type="text/plain; charset=utf-8")


def failure_response(error: ExchangeError) -> PlainTextResponse:
    return _text(f"failure\n{error.as_response_line()}")


@router.api_route("/1c_exchange", methods=["GET", "POST"], response_class=PlainTextResponse)
async def exchange(
    request: Request,
    type: str = Query(...),
    mode: str = Query(...),
    filename: Optional[str] = Query(None),
    credentials: Optional[HTTPBasicCredentials] = Depends(security),
    db: AsyncSession = Depends(get_db),
):
    """Протокол обмена 1С <-> магазин"""
    settings = get_settings()
    logger.info(f"Обмен 1С: type={type}, mode={mode}, filename={filename}")

    try:
        if mode not in MODES:
            raise ExchangeError(f"Unknown mode: {mode}")

        if mode == "checkauth":
            if not _credentials_valid(credentials, settings):
                logger.warning("Обмен 1С: неверные учётные данные на checkauth")
                raise ExchangeAuthError("No authentication credentials")
            token = exchange_sessions.issue()
            logger.info(f"Обмен 1С: успешная аутентификация {credentials.username}")
            return _text(f"success\n{settings.cookie_name}\n{token}")

        check_access(request, credentials, settings)
        service = ExchangeService(db, settings)

        if mode == "init":
            file_limit = await service.begin_run(type)
            return _text(f"zip=yes\nfile_limit={file_limit}")

        if mode == "file":
            data = await request.body()
            return _text(await service.append_file(type, filename, data))

        if mode == "import":
            if not filename:
                raise ExchangeError("Invalid filename parameter")
            return _text(await service.import_file(type, filename))

        if mode == "query":
            service.type_dir(type)
            date = datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S")
            return PlainTextResponse(
                EMPTY_QUERY_DOCUMENT.format(date=date),
                media_type="application/xml; charset=utf-8",
            )

        service.type_dir(type)
        logger.info(f"Обмен 1С {type} завершён (mode=success)")
        return _text("success")

    except ExchangeError as e:
        logger.error(f"Обмен 1С: {e.as_response_line()}")
        return failure_response(e)


# ----------------------------------------------------------------------
# Статус прогонов импорта

class RunResponse(BaseModel):
    id: str
    type: str
    filename: str
    namespace: str
    status: str
    is_full: Optional[bool] = None
    elements: int = 0
    current_step: str
    stats: Optional[dict] = None
    error: Optional[str] = None
    created_at: datetime
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None


def require_exchange_auth(
    request: Request,
    credentials: Optional[HTTPBasicCredentials] = Depends(security),
) -> None:
    try:
        check_access(request, credentials, get_settings())
    except ExchangeAuthError:
        raise HTTPException(status_code=401, detail="Not logged in", headers={"WWW-Authenticate": "Basic"})


@router.get("/1c_exchange/runs", response_model=List[RunResponse])
async def list_runs(_: None = Depends(require_exchange_auth)):
    """Последние прогоны импорта"""
    return [RunResponse(**run) for run in run_registry.list_runs()]


@router.get("/1c_exchange/runs/{run_id}", response_model=RunResponse)
async def get_run(run_id: str, _: None = Depends(require_exchange_auth)):
    run = run_registry.get_run(run_id)
    if not run:
        raise HTTPException(status_code=404, detail="Прогон не найден")
    return RunResponse(**run)
