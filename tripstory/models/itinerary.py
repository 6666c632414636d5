from sqlalchemy import Column, String, Integer, JSON, ForeignKey, UniqueConstraint

from tripstory.database import Base


class DayItinerary(Base):
    __tablename__ = "day_itineraries"
    __table_args__ = (UniqueConstraint("trip_id", "day_number", name="uq_day_itineraries_trip_day"),)

    id = Column(String, primary_key=True)
    trip_id = Column(String, ForeignKey("trips.id", ondelete="CASCADE"), nullable=False, index=True)
    day_number = Column(Integer, nullable=False)
    date = Column(String, nullable=False)
    summary = Column(JSON, nullable=False)
    created_at = Column(String, nullable=False)
    updated_at = Column(String, nullable=False)
