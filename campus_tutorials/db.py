# Database engine, sessions and table creation

from sqlmodel import SQLModel, create_engine, Session

from .config import settings

connect_args = {}
if settings.DATABASE_URL.startswith("sqlite"):
    # background caption tasks write from the thread pool
    connect_args = {"check_same_thread": False}

engine = create_engine(settings.DATABASE_URL, echo=False, connect_args=connect_args)

def init_db(bind=None):
    SQLModel.metadata.create_all(bind or engine)

def get_session():
    with Session(engine) as session:
        yield session
