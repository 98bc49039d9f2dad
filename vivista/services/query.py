"""Public, paginated video index. No session needed."""
from datetime import datetime, timedelta
from typing import Callable

from sqlalchemy import func
from sqlalchemy.orm import Session

from vivista.models.user import User
from vivista.models.video import VideoAsset
from vivista.schemas.video import VideoPage, VideoResponse
from vivista.services.credentials import CredentialStore
from vivista.services.errors import NotFound
from vivista.utils.time import utcnow

DEFAULT_COUNT = 10
MAX_COUNT = 100
NO_SUCH_USER = -1


def effective_count(count: int | None) -> int:
    if count is None or count <= 0 or count > MAX_COUNT:
        return DEFAULT_COUNT
    return count


def effective_offset(offset: int | None) -> int:
    if offset is None or offset < 0:
        return 0
    return offset


class QueryEngine:
    def __init__(
        self,
        db: Session,
        credentials: CredentialStore,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.db = db
        self.credentials = credentials
        self.clock = clock

    def list(
        self,
        offset: int | None = None,
        count: int | None = None,
        author: str | None = None,
        min_age_days: int | None = None,
    ) -> VideoPage:
        """
        Newest first. An author that does not resolve still filters (matches
        nothing); negative min_age_days is ignored.
        """
        count = effective_count(count)
        offset = effective_offset(offset)

        query = self.db.query(VideoAsset, User.username).join(User, VideoAsset.owner_user_id == User.id)
        if author:
            user_id = self.credentials.user_id_for(author)
            query = query.filter(VideoAsset.owner_user_id == (user_id if user_id is not None else NO_SUCH_USER))
        if min_age_days is not None and min_age_days >= 0:
            query = query.filter(VideoAsset.timestamp >= self.clock() - timedelta(days=min_age_days))

        total = query.with_entities(func.count(VideoAsset.id)).scalar() or 0
        rows = (
            query.order_by(VideoAsset.timestamp.desc(), VideoAsset.id)
            .offset(offset)
            .limit(count)
            .all()
        )
        videos = [_to_response(v, username) for v, username in rows]
        return VideoPage(
            totalcount=total,
            page=offset // count + 1,
            count=count,
            returned=len(videos),
            videos=videos,
        )

    def get(self, asset_id: str) -> VideoResponse:
        row = (
            self.db.query(VideoAsset, User.username)
            .join(User, VideoAsset.owner_user_id == User.id)
            .filter(VideoAsset.id == asset_id)
            .first()
        )
        if row is None:
            raise NotFound("Video not found")
        return _to_response(*row)


def _to_response(video: VideoAsset, username: str) -> VideoResponse:
    return VideoResponse(
        id=video.id,
        userid=video.owner_user_id,
        username=username,
        timestamp=video.timestamp,
        downloadsize=video.download_size,
        title=video.title,
        description=video.description,
        length=video.length,
    )
