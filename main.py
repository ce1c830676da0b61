import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from slowapi.middleware import SlowAPIMiddleware
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException

import config
from database.conexion import Base, engine
import models  # 👈 asegura que todos los modelos estén registrados
from utils.errors import BreakfastError
from utils.rate_limiter import setup_rate_limiting
from utils.responses import error_response, success_response
from utils.timezone import utcnow

logger = logging.getLogger(__name__)

Base.metadata.create_all(bind=engine)

app = FastAPI(title="Breakfast Room Grid API", version="1.0.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],         # GET, POST, PUT...
    allow_headers=["*"],
)

setup_rate_limiting(app)
app.add_middleware(SlowAPIMiddleware)


# ========== MANEJO DE ERRORES (envelope) ==========

_HTTP_CODES = {
    400: "VALIDATION_ERROR",
    401: "UNAUTHORIZED",
    403: "FORBIDDEN",
    404: "NOT_FOUND",
    405: "VALIDATION_ERROR",
    429: "RATE_LIMITED",
}


@app.exception_handler(BreakfastError)
async def breakfast_error_handler(request: Request, exc: BreakfastError):
    return error_response(exc.status_code, exc.code, exc.message, exc.details)


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    code = _HTTP_CODES.get(exc.status_code, "INTERNAL_ERROR")
    return error_response(exc.status_code, code, str(exc.detail))


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    details = [
        {"field": ".".join(str(p) for p in err.get("loc", ())), "message": err.get("msg", "")}
        for err in exc.errors()
    ]
    return error_response(400, "VALIDATION_ERROR", "Invalid request", details)


@app.exception_handler(SQLAlchemyError)
async def database_exception_handler(request: Request, exc: SQLAlchemyError):
    logger.error("Error de base de datos en %s: %s", request.url.path, exc)
    return error_response(500, "INTERNAL_ERROR", "Database error")


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception("Error no manejado en %s", request.url.path)
    return error_response(500, "INTERNAL_ERROR", "Internal server error")


# ========== ROUTERS ==========

from endpoints import properties, room_grid
app.include_router(room_grid.router)
app.include_router(properties.router)


@app.get("/health")
def health():
    return success_response({
        "status": "ok",
        "pms_configured": config.is_pms_configured(),
        "time": utcnow(),
    })
