from datetime import datetime
from pydantic import BaseModel, Field


class VideoResponse(BaseModel):
    id: str
    userid: int
    username: str
    timestamp: datetime
    downloadsize: int
    title: str
    description: str
    length: int


class VideoPage(BaseModel):
    """One page of the public video index."""
    totalcount: int  # all videos matching the filters
    page: int
    count: int  # effective page size
    returned: int  # rows on this page
    videos: list[VideoResponse] = Field(default_factory=list)
