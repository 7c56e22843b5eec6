from datetime import datetime

from sqlalchemy import create_engine, Column, String, Integer, JSON, DateTime
from sqlalchemy.orm import declarative_base, sessionmaker

from timetabler.config.settings import get_settings

settings = get_settings()

connect_args = {"check_same_thread": False} if settings.database_url.startswith("sqlite") else {}
engine = create_engine(settings.database_url, connect_args=connect_args, pool_pre_ping=True, echo=False)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base = declarative_base()


class SchoolConfigModel(Base):
    __tablename__ = "school_configs"

    id = Column(String, primary_key=True)
    data = Column(JSON, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class TimetableModel(Base):
    __tablename__ = "timetables"

    id = Column(String, primary_key=True)
    name = Column(String, nullable=False)
    data = Column(JSON, nullable=False)  # classId -> grid[day][period]
    diagnostics = Column(JSON, nullable=True)
    saved_at = Column(DateTime, default=datetime.utcnow)


class EditLogModel(Base):
    __tablename__ = "edit_logs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    class_id = Column(String, nullable=False)
    day = Column(Integer, nullable=False)
    period = Column(Integer, nullable=False)
    before = Column(JSON, nullable=True)  # {subject_id, teacher_id}
    after = Column(JSON, nullable=True)
    reason = Column(String, default="manual")
    at = Column(DateTime, default=datetime.utcnow)


def init_db():
    Base.metadata.create_all(bind=engine)


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
