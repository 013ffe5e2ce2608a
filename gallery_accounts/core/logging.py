import logging, random, time, uuid
from pythonjsonlogger import jsonlogger
from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from gallery_accounts.core.config import settings

LOGGER_NAME = "gallery_accounts"


def setup_logging(level: int = logging.INFO):
    handler = logging.StreamHandler()
    formatter = jsonlogger.JsonFormatter(
        "%(asctime)s %(levelname)s %(name)s %(message)s"
    )
    handler.setFormatter(formatter)
    root = logging.getLogger()
    root.setLevel(level)
    root.handlers = [handler]
    # quiet noisy libs
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)


class RequestIDMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        req_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        start = time.time()
        sampled = random.random() <= float(settings.LOG_SAMPLE_RATE)
        request.state.request_id = req_id
        response = await call_next(request)
        duration_ms = int((time.time() - start) * 1000)
        if sampled:
            logging.getLogger(LOGGER_NAME).info(
                "request",
                extra={
                    "request_id": req_id,
                    "path": request.url.path,
                    "method": request.method,
                    "status": response.status_code,
                    "duration_ms": duration_ms,
                    "client": request.client.host if request.client else None,
                },
            )
        response.headers["X-Request-ID"] = req_id
        return response
