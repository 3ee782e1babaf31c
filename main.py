import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware

from config import FRONTEND_URL, PORT
from database import ensure_indexes, get_database
from errors import AppError, app_error_handler, request_validation_handler, unhandled_error_handler
from logging_config import generate_request_id, set_request_id, setup_logging

from auth.routes import router as auth_router
from users.routes import router as users_router
from institute_requests.routes import router as institute_requests_router

setup_logging()
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    ensure_indexes(get_database())
    logger.info(f"Backend started on port {PORT}")
    yield


app = FastAPI(title="Student Records Backend", lifespan=lifespan)

# ---- CORS CONFIG ----
allowed_origins = [
    "http://localhost:3000",
    "http://localhost:3001",
]

if FRONTEND_URL:
    allowed_origins.append(FRONTEND_URL)

app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins,
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def request_id_middleware(request: Request, call_next):
    request_id = request.headers.get("X-Request-ID") or generate_request_id()
    set_request_id(request_id)
    response = await call_next(request)
    response.headers["X-Request-ID"] = request_id
    return response


# ---- ERROR HANDLERS ----
app.add_exception_handler(AppError, app_error_handler)
app.add_exception_handler(RequestValidationError, request_validation_handler)
app.add_exception_handler(Exception, unhandled_error_handler)

# ---- API ROUTERS ----
app.include_router(auth_router, prefix="/api")
app.include_router(users_router, prefix="/api")
app.include_router(institute_requests_router, prefix="/api")


# ---- HEALTH CHECK ----
@app.get("/api/health")
def health():
    return {"status": "ok", "port": PORT}
