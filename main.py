import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, RedirectResponse

from config import LOG_LEVEL
from db import init_db
from routers import auth, contacts, medications, predictions, reports
from security import _csrf_ok, _ensure_csrf_cookie, _needs_csrf
from session import SessionContext

logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

init_db()


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    app.state.session.close()


app = FastAPI(title="CareScan", lifespan=lifespan)
app.state.session = SessionContext.from_config()


@app.middleware("http")
async def csrf_middleware(request: Request, call_next):
    if _needs_csrf(request) and not _csrf_ok(request):
        logger.warning("Rejected cross-site %s %s", request.method, request.url.path)
        return JSONResponse({"error": "forbidden"}, status_code=403)
    return _ensure_csrf_cookie(request, await call_next(request))


@app.get("/")
def root():
    return RedirectResponse(url="/api/trends", status_code=303)


@app.get("/health")
def health():
    return JSONResponse({"status": "ok"})


app.include_router(auth.router)
app.include_router(predictions.router)
app.include_router(medications.router)
app.include_router(contacts.router)
app.include_router(reports.router)
