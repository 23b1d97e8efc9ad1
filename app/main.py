import logging

from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware

from .auth import routers as auth_router
from .profiles import routers as profile_router
from .sessions import routers as session_router
from .chat import routers as chat_router
from .venues import routers as venue_router

from .core.errors import RallyError
from .core.middleware import logging_middleware
from .utils.env_helper import env_list
from .utils.logging_config import setup_logging

load_dotenv()
setup_logging()
logger = logging.getLogger(__name__)

app = FastAPI(title="RallyUp")
app.include_router(auth_router.router, prefix="/auth", tags=["Authentication"])
app.include_router(profile_router.router, prefix="/profiles", tags=["Profiles"])
app.include_router(session_router.router, prefix="/sessions", tags=["Sessions"])
app.include_router(chat_router.router, prefix="/chat", tags=["Chat"])
app.include_router(venue_router.router, prefix="/venues", tags=["Venues"])


origins = env_list(
    "CORS_ORIGINS",
    [
        "http://localhost:5173",
        "http://localhost:8080",
    ],
)

app.middleware("http")(logging_middleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/health")
def health():
    return {"status": "ok"}


async def unhandled_error(request: Request, exc: Exception):
    logger.error(f"unhandled_error path={request.url.path}", exc_info=exc)
    return JSONResponse(
        status_code=500,
        content={"detail": RallyError.user_message},
    )


app.add_exception_handler(Exception, unhandled_error)
