# db.py

import os
import logging
from dotenv import load_dotenv

from sqlalchemy import create_engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import declarative_base, sessionmaker

from errors import PersistenceFailure

logger = logging.getLogger(__name__)

load_dotenv()

# SQLite by default (creates knowledge_base.db in the working directory)
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./knowledge_base.db")

# Accept common postgres URL variants
if DATABASE_URL.startswith("postgres://"):
    DATABASE_URL = DATABASE_URL.replace("postgres://", "postgresql+psycopg2://", 1)
elif DATABASE_URL.startswith("postgresql://") and "+psycopg2" not in DATABASE_URL:
    DATABASE_URL = DATABASE_URL.replace("postgresql://", "postgresql+psycopg2://", 1)

connect_args = {"check_same_thread": False} if DATABASE_URL.startswith("sqlite") else {}

# Create the engine
engine = create_engine(DATABASE_URL, connect_args=connect_args, pool_pre_ping=True)

# Configure SessionLocal
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# Base class for models
Base = declarative_base()

# Dependency for FastAPI routes
def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()

# Commit or report the failure as a PersistenceFailure ({"error": ...} to the caller)
def commit_or_fail(db, action: str):
    try:
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Failed to %s", action)
        raise PersistenceFailure(f"Failed to {action}")
