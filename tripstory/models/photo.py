from sqlalchemy import Column, String, Integer, Float, JSON
from sqlalchemy import ForeignKey

from tripstory.database import Base


class Photo(Base):
    __tablename__ = "photos"

    id = Column(String, primary_key=True)
    trip_id = Column(String, ForeignKey("trips.id", ondelete="CASCADE"), nullable=False, index=True)
    filename = Column(String, nullable=False)
    file_path = Column(String, nullable=False)
    captured_at = Column(String, nullable=True)  # wall-clock ISO timestamp as recorded by the camera
    uploaded_at = Column(String, nullable=False)
    day_number = Column(Integer, nullable=True)
    description = Column(JSON, nullable=True)

    location_latitude = Column(Float, nullable=True)
    location_longitude = Column(Float, nullable=True)
    location_country = Column(String, nullable=True)
    location_city = Column(String, nullable=True)
    location_neighborhood = Column(String, nullable=True)
    location_landmark = Column(String, nullable=True)
    location_full_address = Column(String, nullable=True)
    location_source = Column(String, nullable=True)
    location_confidence = Column(Float, nullable=True)

    exif_data = Column(JSON, nullable=True)
    processing_status = Column(String, nullable=False, default="pending")
