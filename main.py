from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, RedirectResponse

from config import settings
from dataBase import db, ensure_indexes
from errors import BookVerseError
from logging_config import setup_logging
from routes import chat_routes, kpi_routes, notification_routes, socket_routes, transaction_routes

logger = setup_logging("bookverse-api")


@asynccontextmanager
async def lifespan(app: FastAPI):
    try:
        await ensure_indexes(db)
        logger.info("MongoDB indexes ensured on %s", settings.mongo_db_name)
    except Exception:
        logger.exception("MongoDB index setup failed")
        raise
    yield


app = FastAPI(title="BookVerse API", version="1.0.0", lifespan=lifespan)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(BookVerseError)
async def bookverse_error_handler(request: Request, exc: BookVerseError):
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


@app.get("/")
def root():
    return RedirectResponse(url="/docs")


@app.get("/health")
def health():
    return {"status": "ok"}


app.include_router(transaction_routes)
app.include_router(chat_routes)
app.include_router(notification_routes)
app.include_router(kpi_routes)
app.include_router(socket_routes)
