import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from .api import auth, fees, fines, payments, polls, residents
from .auth.jwt import decode_token
from .config import Base, SessionLocal, engine, settings
from .core.errors import register_exception_handlers
from .core.logging import configure_logging
from .core.request_context import REQUEST_ID_HEADER, assign_request_id
from .core.security import SecurityHeadersMiddleware, log_security_warnings
from .services.audit import audit_log

configure_logging(settings.log_level, settings.log_format)
logger = logging.getLogger(__name__)

app = FastAPI(title="Community Portal")

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(SecurityHeadersMiddleware)
register_exception_handlers(app)


@app.on_event("startup")
def startup() -> None:
    # In dev we make sure tables exist. Alembic migrations should be used for real schema evolution.
    Base.metadata.create_all(bind=engine)
    log_security_warnings(settings.jwt_secret, settings.stripe_api_key, settings.stripe_webhook_secret)
    logger.info("Community portal started")


app.include_router(auth.router, prefix="/auth", tags=["auth"])
app.include_router(residents.router, prefix="/residents", tags=["residents"])
app.include_router(polls.router, prefix="/polls", tags=["polls"])
app.include_router(fees.router, prefix="/fees", tags=["fees"])
app.include_router(fines.router, prefix="/fines", tags=["fines"])
app.include_router(payments.router, prefix="/payments", tags=["payments"])


@app.get("/health", tags=["system"])
def health() -> dict[str, str]:
    return {"status": "ok"}


@app.middleware("http")
async def audit_trail(request: Request, call_next):
    request_id = assign_request_id(request)
    response = await call_next(request)
    response.headers[REQUEST_ID_HEADER] = request_id
    if request.method not in {"POST", "PUT", "PATCH", "DELETE"}:
        return response
    actor_id = None
    auth_header = request.headers.get("Authorization")
    if auth_header and auth_header.lower().startswith("bearer "):
        token = auth_header.split(" ", 1)[1]
        try:
            actor_id = int(decode_token(token).get("sub"))
        except Exception:
            actor_id = None
    with SessionLocal() as session:
        audit_log(
            db_session=session,
            actor_resident_id=actor_id,
            action=f"{request.method} {request.url.path}",
            target_entity_type="HTTP",
            target_entity_id=request.url.path,
            after={"status": response.status_code, "request_id": request_id},
        )
    return response
