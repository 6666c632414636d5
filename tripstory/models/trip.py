from sqlalchemy import Column, String, JSON

from tripstory.database import Base


class Trip(Base):
    __tablename__ = "trips"

    id = Column(String, primary_key=True)
    name = Column(String, nullable=False)
    start_date = Column(String, nullable=True)
    end_date = Column(String, nullable=True)
    overview = Column(JSON, nullable=True)
    processing_status = Column(String, nullable=False, default="not_started", index=True)
    narration_state = Column(JSON, nullable=True)
    created_at = Column(String, nullable=False)
    updated_at = Column(String, nullable=False)
