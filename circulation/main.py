import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.base import BaseHTTPMiddleware
from circulation.config import settings
from circulation.database import engine, Base, SessionLocal, transaction
from circulation.models.enums import Role
from circulation.models.user import User
from circulation.routes import auth, loan, reservation, fine, material, member, notification, loan_config
from circulation.services.errors import CirculationError
from circulation.services.loan_config import get_configuration
from circulation.services.members import create_user

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


class LoggingMiddleware(BaseHTTPMiddleware):
    """Log every request with its caller and whether it carries a token."""
    async def dispatch(self, request: Request, call_next):
        auth_header = request.headers.get("Authorization")
        client_ip = request.client.host if request.client else "unknown"
        logger.info(f"{request.method} {request.url.path} - IP: {client_ip} - Auth: {'Present' if auth_header else 'Missing'}")

        response = await call_next(request)
        if response.status_code >= 500:
            logger.error(f"{request.method} {request.url.path} -> {response.status_code}")
        return response

Base.metadata.create_all(bind=engine)


def seed_defaults():
    """Create the policy row and the bootstrap librarian if they are missing."""
    db = SessionLocal()
    try:
        with transaction(db):
            get_configuration(db)
        email = settings.initial_librarian_email
        if email and settings.initial_librarian_password:
            if not db.query(User).filter(User.user_email == email).first():
                create_user(
                    db,
                    fname="Library",
                    lname="Administrator",
                    email=email,
                    password=settings.initial_librarian_password,
                    role=Role.LIBRARIAN,
                )
                logger.info(f"Bootstrap librarian {email} created")
    finally:
        db.close()


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Seeding circulation defaults...")
    seed_defaults()

    yield

    logger.info("Shutting down circulation API")


app = FastAPI(
    title="Library Circulation API",
    description="Loans, reservations and fines for a library catalog",
    version="1.0.0",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

app.add_middleware(LoggingMiddleware)


@app.exception_handler(CirculationError)
async def circulation_error_handler(request: Request, exc: CirculationError):
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    else:
        logger.info(f"{request.method} {request.url.path} rejected ({exc.status_code}): {exc.message}")
    body = {"message": exc.message}
    if exc.errors:
        body["errors"] = exc.errors
    return JSONResponse(status_code=exc.status_code, content=body)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    errors = [
        {
            "field": ".".join(str(part) for part in error["loc"] if part != "body"),
            "message": error["msg"],
        }
        for error in exc.errors()
    ]
    return JSONResponse(
        status_code=422,
        content=jsonable_encoder({"message": "Validation failed", "errors": errors}),
    )


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={"message": exc.detail},
        headers=getattr(exc, "headers", None),
    )


# Include routers
app.include_router(auth.router)
app.include_router(loan.router)
app.include_router(reservation.router)
app.include_router(fine.router)
app.include_router(material.router)
app.include_router(member.router)
app.include_router(notification.router)
app.include_router(loan_config.router)

@app.get("/")
async def root():
    return {"message": "Library Circulation API", "version": "1.0.0"}

@app.get("/health")
async def health_check():
    return {"status": "healthy"}

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "circulation.main:app",
        host=settings.host,
        port=settings.port,
        reload=True
    )
