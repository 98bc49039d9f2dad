"""
Video ingestion and ownership.

A video id is chosen by the uploader, and the blob directory is keyed only by
that id, so every mutation verifies owner_user_id == caller. The row write is a
single conditional upsert (insert, or refresh timestamp only when the caller
owns the row), so two concurrent uploads of a new id cannot both win.
"""
import io
import logging
from datetime import datetime
from pathlib import Path
from typing import BinaryIO, Callable, Iterable

from sqlalchemy import delete, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from vivista.models.video import ExtraFile, VideoAsset
from vivista.services.errors import Forbidden, InvalidExtraIndex, NotFound, Unauthorized
from vivista.services.meta_codec import VideoMeta, decode_meta, encode_meta
from vivista.services.sessions import SessionManager
from vivista.services.storage import (
    META_FILENAME,
    THUMB_FILENAME,
    VIDEO_FILENAME,
    AssetStorage,
    extra_filename,
    is_valid_extra_index,
)
from vivista.utils.time import utcnow

logger = logging.getLogger(__name__)

_UPSERT_DIALECTS = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


class VideoAssetManager:
    def __init__(
        self,
        db: Session,
        sessions: SessionManager,
        storage: AssetStorage,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.db = db
        self.sessions = sessions
        self.storage = storage
        self.clock = clock

    # ---------- Mutations (token required) ----------

    def ingest(
        self,
        token: str,
        asset_id: str,
        video: BinaryIO,
        thumb: BinaryIO | None = None,
        meta: BinaryIO | None = None,
    ) -> VideoAsset:
        """
        Store video, thumbnail and metadata for asset_id, then create the row
        (first upload) or refresh its timestamp (owner re-upload).
        Files already written stay on disk if a later write fails.
        """
        user_id = self._require_user(token)
        self.storage.asset_dir(asset_id)
        owner = self._owner_of(asset_id)
        if owner is not None and owner != user_id:
            logger.warning("User %s tried to overwrite video %s owned by %s", user_id, asset_id, owner)
            raise Forbidden()

        size = self.storage.write(asset_id, VIDEO_FILENAME, video)
        if thumb is not None:
            size += self.storage.write(asset_id, THUMB_FILENAME, thumb)
        if meta is not None:
            size += self.storage.write(asset_id, META_FILENAME, meta)
            parsed = decode_meta(self.storage.read_bytes(asset_id, META_FILENAME))
        else:
            parsed = VideoMeta()

        if not self._upsert(asset_id, user_id, parsed, size):
            logger.warning("Video %s was claimed by another user during upload by %s", asset_id, user_id)
            raise Forbidden()

        logger.info("Video %s stored for user %s (%d bytes)", asset_id, user_id, size)
        return self.db.query(VideoAsset).filter(VideoAsset.id == asset_id).one()

    def replace_extras(
        self,
        token: str,
        asset_id: str,
        extras: Iterable[tuple[int, BinaryIO]],
    ) -> list[int]:
        """
        Replace the complete extra-file set of asset_id. All files are written
        before the index rows change; rows are swapped in one transaction.
        """
        user_id = self._require_user(token)
        self._require_owner(user_id, asset_id, "replace extras of")

        extras = list(extras)
        for index, _ in extras:
            if not is_valid_extra_index(index):
                raise InvalidExtraIndex()

        indices = []
        for index, stream in extras:
            self.storage.write(asset_id, extra_filename(index), stream)
            if index not in indices:
                indices.append(index)
        indices.sort()

        try:
            asset = (
                self.db.query(VideoAsset)
                .filter(VideoAsset.id == asset_id)
                .with_for_update()
                .first()
            )
            if asset is None or asset.owner_user_id != user_id:
                self.db.rollback()
                raise Forbidden()
            self.db.execute(delete(ExtraFile).where(ExtraFile.video_id == asset_id))
            self.db.add_all(ExtraFile(video_id=asset_id, extra_index=i) for i in indices)
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            raise

        for stale in self.storage.extra_indices_on_disk(asset_id):
            if stale not in indices:
                self.storage.remove(asset_id, extra_filename(stale))

        logger.info("Video %s now has extras %s", asset_id, indices)
        return indices

    def edit(self, token: str, asset_id: str, title: str, description: str) -> VideoAsset:
        """Change title and description of an owned video, in the row and in meta.json."""
        user_id = self._require_user(token)
        asset = self._require_owner(user_id, asset_id, "edit")

        meta = decode_meta(self.storage.read_bytes(asset_id, META_FILENAME))
        meta = meta.model_copy(
            update={
                "guid": meta.guid or asset_id,
                "title": title,
                "description": description,
                "length": asset.length,
            }
        )
        self.storage.write(asset_id, META_FILENAME, io.BytesIO(encode_meta(meta)))

        try:
            result = self.db.execute(
                update(VideoAsset)
                .where(VideoAsset.id == asset_id, VideoAsset.owner_user_id == user_id)
                .values(title=title, description=description)
                .execution_options(synchronize_session=False)
            )
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            raise
        if result.rowcount == 0:
            raise NotFound("Video not found")

        logger.info("Video %s edited by user %s", asset_id, user_id)
        return self.db.query(VideoAsset).filter(VideoAsset.id == asset_id).one()

    def delete(self, token: str, asset_id: str) -> None:
        """Remove an owned video: its row, its extra-file rows and its blob directory."""
        user_id = self._require_user(token)
        self._require_owner(user_id, asset_id, "delete")

        try:
            asset = (
                self.db.query(VideoAsset)
                .filter(VideoAsset.id == asset_id, VideoAsset.owner_user_id == user_id)
                .with_for_update()
                .first()
            )
            if asset is None:
                self.db.rollback()
                raise NotFound("Video not found")
            self.db.delete(asset)
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            raise

        self.storage.remove_asset(asset_id)
        logger.info("Video %s deleted by user %s", asset_id, user_id)

    # ---------- Reads (public) ----------

    def video_path(self, asset_id: str) -> Path:
        return self.storage.file_path(asset_id, VIDEO_FILENAME)

    def thumb_path(self, asset_id: str) -> Path:
        return self.storage.file_path(asset_id, THUMB_FILENAME)

    def meta_path(self, asset_id: str) -> Path:
        return self.storage.file_path(asset_id, META_FILENAME)

    def extra_path(self, asset_id: str, index: int) -> Path:
        if index < 0:
            raise NotFound()
        return self.storage.file_path(asset_id, extra_filename(index))

    def extra_indices(self, asset_id: str) -> list[int]:
        rows = (
            self.db.query(ExtraFile.extra_index)
            .filter(ExtraFile.video_id == asset_id)
            .order_by(ExtraFile.extra_index)
            .all()
        )
        return [r.extra_index for r in rows]

    # ---------- Helpers ----------

    def _require_user(self, token: str) -> int:
        user_id = self.sessions.validate(token)
        if user_id is None:
            raise Unauthorized()
        return user_id

    def _require_owner(self, user_id: int, asset_id: str, action: str) -> VideoAsset:
        self.storage.asset_dir(asset_id)
        asset = self.db.query(VideoAsset).filter(VideoAsset.id == asset_id).first()
        if asset is None:
            raise NotFound("Video not found")
        if asset.owner_user_id != user_id:
            logger.warning("User %s tried to %s video %s owned by %s", user_id, action, asset_id, asset.owner_user_id)
            raise Forbidden()
        return asset

    def _owner_of(self, asset_id: str) -> int | None:
        return self.db.query(VideoAsset.owner_user_id).filter(VideoAsset.id == asset_id).scalar()

    def _upsert(self, asset_id: str, user_id: int, meta: VideoMeta, size: int) -> bool:
        """Insert, or refresh timestamp if user_id owns the row. False when another user owns it."""
        now = self.clock()
        table = VideoAsset.__table__
        values = {
            "id": asset_id,
            "owner_user_id": user_id,
            "timestamp": now,
            "download_size": size,
            "title": meta.title,
            "description": meta.description,
            "length": meta.length,
        }
        insert = _UPSERT_DIALECTS.get(self.db.get_bind().dialect.name)
        try:
            if insert is None:
                return self._upsert_locked(asset_id, user_id, values, now)
            stmt = insert(table).values(**values).on_conflict_do_update(
                index_elements=[table.c.id],
                set_={"timestamp": now},
                where=table.c.owner_user_id == user_id,
            )
            result = self.db.execute(stmt)
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            raise
        return result.rowcount > 0

    def _upsert_locked(self, asset_id: str, user_id: int, values: dict, now: datetime) -> bool:
        """Same semantics as the ON CONFLICT statement, for dialects without it."""
        asset = self.db.query(VideoAsset).filter(VideoAsset.id == asset_id).with_for_update().first()
        if asset is None:
            self.db.add(VideoAsset(**values))
        elif asset.owner_user_id != user_id:
            self.db.rollback()
            return False
        else:
            asset.timestamp = now
        self.db.commit()
        return True
