from sqlalchemy import create_engine
from sqlalchemy.ext.declarative import declarative_base
from sqlalchemy.orm import sessionmaker

from app.config import DatabaseConfig

# If DATABASE_URL is provided directly, use it; otherwise construct from components
DATABASE_URL = DatabaseConfig().url

# SQLite connections are used from FastAPI's threadpool
connect_args = {"check_same_thread": False} if DATABASE_URL.startswith("sqlite") else {}

engine = create_engine(DATABASE_URL, connect_args=connect_args)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base = declarative_base()

# Import all models to register them with Base
def register_models():
    from app.models import Account, Transaction, XeroConnection, XeroAccountMapping, XeroSyncLog
    return True

# Register models on import
register_models()

# Dependency for FastAPI routes
def get_db():
    """Database session dependency for FastAPI routes"""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
