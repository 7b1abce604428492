from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import logging

# Load config first so all downstream imports see correct envs.
from panel_mapper.core.settings import settings

from panel_mapper.db import SessionLocal, init_db, seed_default_data
from panel_mapper.errors import ConflictError, InvalidInputError, NotFoundError, PanelMapperError, PersistenceError
from panel_mapper.routers import compliance as compliance_router
from panel_mapper.routers import device_types as device_types_router
from panel_mapper.routers import electrical as electrical_router
from panel_mapper.routers import floor_plans as floor_plans_router
from panel_mapper.routers import load_calculations as load_calculations_router
from panel_mapper.routers import materials as materials_router
from panel_mapper.routers import rooms as rooms_router

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="Electrical Panel Mapper")

app.include_router(floor_plans_router.router)
app.include_router(electrical_router.router)
app.include_router(device_types_router.router)
app.include_router(rooms_router.router)
app.include_router(load_calculations_router.router)
app.include_router(compliance_router.router)
app.include_router(materials_router.router)

# CORS (single block)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ---- Network-origin filter ----
def is_allowed_origin(client_ip: str) -> bool:
    if client_ip in settings.ALLOWED_IPS:
        return True
    return any(client_ip.startswith(prefix) for prefix in settings.ALLOWED_IP_PREFIXES)


@app.middleware("http")
async def ip_filter(request: Request, call_next):
    client_ip = request.client.host if request.client else ""
    logger.info(f"{request.method} {request.url.path} from {client_ip or 'unknown'}")
    # read per request so the filter can be toggled without rebuilding the app
    if settings.IP_FILTER_ENABLED and not is_allowed_origin(client_ip):
        logger.warning(f"Rejected request from {client_ip or 'unknown'} to {request.url.path}")
        return JSONResponse(status_code=403, content={"error": "Access denied"})
    return await call_next(request)


# ---- Error mapping ----
ERROR_STATUS = (
    (NotFoundError, 404),
    (InvalidInputError, 400),
    (ConflictError, 409),
    (PersistenceError, 500),
)


@app.exception_handler(PanelMapperError)
async def panel_mapper_error(request: Request, exc: PanelMapperError):
    status = next((code for cls, code in ERROR_STATUS if isinstance(exc, cls)), 500)
    if status >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc} (cause: {exc.__cause__!r})")
    return JSONResponse(status_code=status, content={"error": str(exc)})


@app.on_event("startup")
def startup_event():
    init_db()
    db = SessionLocal()
    try:
        seed_default_data(db)
    finally:
        db.close()


@app.get("/health")
def health():
    return {"status": "ok"}


def run():
    import uvicorn
    uvicorn.run("panel_mapper.main:app", host=settings.API_HOST, port=settings.API_PORT)


if __name__ == "__main__":
    run()
