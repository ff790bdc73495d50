from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from slowapi.errors import RateLimitExceeded

from auth import router as auth_router
from calculators import router as calculators_router
from comments import router as comments_router
from community import router as community_router
from core import config, db
from core.errors import install_exception_handlers
from core.log import access_log_middleware, configure_logging
from core.ratelimit import limiter, rate_limit_exceeded_handler
from users import router as users_router

configure_logging()


@asynccontextmanager
async def lifespan(_: FastAPI):
    # Initialize the DB pool once per process.
    await db.init_pool()
    try:
        yield
    finally:
        await db.close_pool()


app = FastAPI(lifespan=lifespan)

app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)

install_exception_handlers(app)
app.middleware("http")(access_log_middleware)

# Added last so it wraps everything. CORS preflights (an `Origin` plus
# `Access-Control-Request-Method`) are answered here before any auth
# dependency runs; any other OPTIONS request reaches the router (405).
app.add_middleware(
    CORSMiddleware,
    allow_origins=config.allowed_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(auth_router.router, prefix="/api/auth", tags=["auth"])
app.include_router(users_router.router, prefix="/api/user", tags=["users"])
app.include_router(comments_router.router, prefix="/api/calculators", tags=["comments"])
app.include_router(calculators_router.router, prefix="/api/calculators", tags=["calculators"])
app.include_router(community_router.report_router, prefix="/api/report", tags=["reports"])
app.include_router(community_router.contact_router, prefix="/api/contact", tags=["contacts"])


@app.get("/health")
def health() -> dict:
    return {"status": "ok"}


@app.get("/")
def root() -> dict:
    return {"message": "calculator community api"}
