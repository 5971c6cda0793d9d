import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
import logging

# Importar la función de configuración de logging
from app.core.logging_config import setup_logging

# Llamar a la configuración de logging ANTES de importar/crear otros elementos
setup_logging()

from app.api.v1.api import api_router
from app.core.config import get_settings
from app.core.exceptions import SchedulingError
from app.middleware.timing import TimingMiddleware
from app.core.scheduler import init_scheduler
from app.db.redis_client import initialize_redis_pool, close_redis_client

logger = logging.getLogger(__name__)

# Obtener la instancia de configuración al inicio del módulo
settings_instance = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Lifespan: Startup iniciado...")

    # Iniciar el scheduler
    if settings_instance.ENABLE_SCHEDULER:
        try:
            scheduler = init_scheduler()
            app.state.scheduler = scheduler
            logger.info("Lifespan: Scheduler inicializado.")
        except Exception as e:
            logger.error(f"Lifespan: Error al inicializar scheduler: {e}", exc_info=True)
    else:
        logger.info("Lifespan: Scheduler deshabilitado por configuración.")

    # Inicializar el pool de conexiones Redis
    try:
        await initialize_redis_pool()
    except Exception as e:
        logger.error(f"Lifespan: Error al inicializar Redis connection pool: {e}", exc_info=True)

    yield  # Aplicación en ejecución

    logger.info("Lifespan: Shutdown iniciado...")

    # Apagar el scheduler
    if getattr(app.state, "scheduler", None):
        try:
            app.state.scheduler.shutdown()
            logger.info("Scheduler shut down.")
        except Exception as e:
            logger.error(f"Error shutting down scheduler: {e}", exc_info=True)

    # Cerrar conexión Redis
    try:
        await close_redis_client()
    except Exception as e:
        logger.error(f"Lifespan: Error cerrando Redis connection pool: {e}", exc_info=True)


app = FastAPI(
    title=settings_instance.PROJECT_NAME,
    description=settings_instance.PROJECT_DESCRIPTION,
    version=settings_instance.VERSION,
    openapi_url=f"{settings_instance.API_V1_STR}/openapi.json",
    docs_url=f"{settings_instance.API_V1_STR}/docs",
    redoc_url=f"{settings_instance.API_V1_STR}/redoc",
    lifespan=lifespan,
)


async def scheduling_error_handler(request: Request, exc: SchedulingError) -> JSONResponse:
    """Traduce los errores de dominio a respuestas JSON {detail, code, context}."""
    log = logger.warning if exc.status_code >= 409 else logger.info
    log(f"{request.method} {request.url.path} -> {exc.status_code} {exc.code}: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


app.add_exception_handler(SchedulingError, scheduling_error_handler)

# Añadir middleware para medir el tiempo de respuesta
app.add_middleware(TimingMiddleware)

# Lista de orígenes permitidos para CORS
origins = [str(origin).rstrip("/") for origin in settings_instance.BACKEND_CORS_ORIGINS]

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    max_age=86400,  # 24 horas en segundos
)

# Incluir routers
app.include_router(api_router, prefix=settings_instance.API_V1_STR)


# Ruta raíz
@app.get("/")
def root():
    return {
        "message": f"Bienvenido a {settings_instance.PROJECT_NAME}",
        "docs": f"{settings_instance.API_V1_STR}/docs",
    }


if __name__ == "__main__":
    uvicorn.run("app.main:app", host="0.0.0.0", port=8000, reload=settings_instance.DEBUG_MODE)
