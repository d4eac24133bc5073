"""
Ticketing API

FastAPI app serving the admin dashboard and the public registration form:
events, registrations, ticket issuance and delivery, check-in, exports and
WhatsApp blast campaigns.
"""

import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from basecore.logging import setup_logging
from basecore.settings import get_settings
from ticketing.errors import NotFound, TicketingError
from ticketing_api.routers import campaigns, checkin, events, exports, functions

setup_logging()
settings = get_settings()
logger = logging.getLogger(__name__)

app = FastAPI(
    title="Ticketing API",
    description="Event registration, QR tickets, check-in and WhatsApp campaigns",
    version="1.0.0",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(NotFound)
async def not_found_handler(request: Request, exc: NotFound):
    return JSONResponse(status_code=404, content={"error": exc.message})


@app.exception_handler(TicketingError)
async def ticketing_error_handler(request: Request, exc: TicketingError):
    logger.warning(
        f"{request.method} {request.url.path} rejected: {exc.message}",
        extra={"error_type": type(exc).__name__, "details": exc.details},
    )
    return JSONResponse(status_code=400, content={"error": exc.message, "details": exc.details})


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled error on {request.method} {request.url.path}: {exc}", exc_info=exc)
    return JSONResponse(status_code=500, content={"error": "Internal server error"})


app.include_router(events.router)
app.include_router(functions.router)
app.include_router(checkin.router)
app.include_router(exports.router)
app.include_router(campaigns.router)


@app.get("/")
async def root():
    return {"message": "Ticketing API", "version": "1.0.0", "docs": "/docs"}


@app.get("/health")
async def health_check():
    return {"status": "ok"}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)
