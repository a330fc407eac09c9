import logging
import os
import traceback

from fastapi import FastAPI, Request
from fastapi.responses import PlainTextResponse

from onec_exchange import __version__
from onec_exchange.api import exchange
from onec_exchange.services.run_registry import run_registry

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(
    title="1C Exchange API",
    description="Обмен каталогом, предложениями и заказами с 1С (CommerceML)",
    version=__version__,
)


@app.on_event("startup")
async def startup_event():
    # Очистка старых прогонов импорта
    run_registry.cleanup_old_runs(max_age_hours=24)


# Глобальный обработчик ошибок: 1С понимает только текстовый ответ "failure"
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    error_msg = str(exc)
    if isinstance(exc, UnicodeDecodeError):
        error_msg = f"Encoding error at position {exc.start}-{exc.end}"
    logger.error(
        f"GLOBAL EXCEPTION HANDLER: {type(exc).__name__}: {error_msg}\n"
        f"Request: {request.method} {request.url.path}\n{traceback.format_exc()}"
    )
    message = error_msg.rstrip(".") or "Internal server error"
    return PlainTextResponse(
        f"failure\n{type(exc).__name__}: {message}.",
        status_code=500,
    )


app.include_router(exchange.router)


@app.get("/health")
async def health():
    return {"status": "healthy", "version": __version__}
