# cre/main.py
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from cre.config import get_settings
from cre.services import init_db
from cre.api.routes import router as api_router
from cre.utils.logging import setup_logging


app = FastAPI(title="Clinical Reasoning Engine", version="1.0.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # for dev; tighten in prod
    allow_methods=["*"],
    allow_headers=["*"],
    allow_credentials=True,
)


@app.on_event("startup")
def on_startup() -> None:
    setup_logging(get_settings().log_level)
    init_db()


@app.get("/")
def root():
    return {"message": "Clinical Reasoning Engine is running"}


app.include_router(api_router, prefix="/api")
