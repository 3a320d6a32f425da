# main.py

import os
import logging
from dotenv import load_dotenv

from db import engine, Base

# IMPORT MODELS so that create_all() sees them
import models

load_dotenv()

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

# Create tables (users, profiles, user_roles, reset_codes, content_items, conversations, messages)
Base.metadata.create_all(bind=engine)

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles

from errors import register_exception_handlers

CORS_ORIGINS = [
    o.strip()
    for o in os.getenv("CORS_ORIGINS", "http://localhost:5173,http://127.0.0.1:5173").split(",")
    if o.strip()
]

app = FastAPI(title="Knowledge Base API")
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
register_exception_handlers(app)

@app.get("/")
def root():
    return {"message": "Backend is running"}

@app.get("/health")
def health():
    return {"ok": True}

# ——————————————————————————————————————————————
# Include authentication, admin, content, search and conversation routers
from auth import router as auth_router
from admin_router import router as admin_router
from content_router import routers as content_routers, image_router, UPLOAD_DIR, IMAGE_URL_PREFIX
from search_router import router as search_router
from conversation_router import router as conv_router

app.include_router(auth_router)
app.include_router(admin_router)
for kind_router in content_routers:
    app.include_router(kind_router)
app.include_router(image_router)
app.include_router(search_router)
app.include_router(conv_router)

# Uploaded images are public, like the content that references them
os.makedirs(UPLOAD_DIR, exist_ok=True)
app.mount(IMAGE_URL_PREFIX, StaticFiles(directory=UPLOAD_DIR), name="images")
