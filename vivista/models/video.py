"""Uploaded 360 video. Blobs live under <data_dir>/<id>/; only the owner may change a row."""
from sqlalchemy import Column, Integer, BigInteger, String, Text, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from vivista.database import Base
from vivista.utils.time import utcnow


class VideoAsset(Base):
    __tablename__ = "videos"

    id = Column(String(64), primary_key=True)  # caller-supplied, e.g. a UUID string
    owner_user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    timestamp = Column(DateTime, nullable=False, default=utcnow, index=True)  # last modified
    download_size = Column(BigInteger, nullable=False, default=0)
    title = Column(String(255), nullable=False, default="")
    description = Column(Text, nullable=False, default="")
    length = Column(Integer, nullable=False, default=0)  # seconds

    owner = relationship("User")
    extra_files = relationship("ExtraFile", cascade="all, delete-orphan", order_by="ExtraFile.extra_index")


class ExtraFile(Base):
    __tablename__ = "extra_files"

    video_id = Column(String(64), ForeignKey("videos.id", ondelete="CASCADE"), primary_key=True)
    extra_index = Column(Integer, primary_key=True)
