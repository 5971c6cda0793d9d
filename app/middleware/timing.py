import time
from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
import logging

logger = logging.getLogger("timing_middleware")


class TimingMiddleware(BaseHTTPMiddleware):
    """
    Middleware que mide el tiempo de respuesta de cada solicitud y lo expone
    en cabeceras de diagnóstico.
    """

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        start_time = time.time()
        method = request.method
        path = request.url.path

        response = await call_next(request)

        process_time = (time.time() - start_time) * 1000  # En milisegundos

        # Categorizar respuesta por velocidad
        speed_category = "FAST"
        if process_time > 300:
            speed_category = "MEDIUM"
        if process_time > 700:
            speed_category = "SLOW"
        if process_time > 1500:
            speed_category = "VERY_SLOW"
            logger.warning(f"Petición lenta {method} {path}: {process_time:.2f}ms")

        response.headers["X-Process-Time"] = f"{process_time:.2f}ms"
        response.headers["X-Process-Speed"] = speed_category
        return response
