"""SQLAlchemy ORM models for Petal."""

import uuid
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any, ClassVar

import sqlalchemy as sa
from sqlalchemy import (
    JSON,
    Boolean,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from petal.domain.entities import (
    CanonicalEntity,
    EntityKind,
    Relationship,
    RelationKind,
    SyncState,
    SyncStatus,
)


def utc_now() -> datetime:
    """Get current UTC time."""
    return datetime.now(UTC)


# Hey future me - SQLite doesn't preserve timezone info! Datetimes come back naive.
# Run everything read from the DB through this before comparing with utc_now(),
# otherwise "can't compare offset-naive and offset-aware datetimes".
def ensure_utc_aware(dt: datetime) -> datetime:
    """Ensure datetime is UTC-aware, assuming naive datetimes are UTC."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt


def _new_id() -> str:
    return str(uuid.uuid4())


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


# Users are owned by the auth side of the app. We only read spotify_id (playlist ownership)
# and hang every per-user row off users.id with ON DELETE CASCADE.
class UserModel(Base):
    """Application user."""

    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    spotify_id: Mapped[str | None] = mapped_column(String(255), unique=True, nullable=True)
    handle: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    display_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), nullable=False, default=utc_now
    )


# =============================================================================
# CANONICAL ENTITIES
# Hey future me - one table per kind, ONE row per spotify_id, shared by all users.
# The UNIQUE constraint on spotify_id is the whole concurrency story: the stores
# insert with ON CONFLICT DO NOTHING and report ALREADY_EXISTS when it fires.
# Kind-specific columns are listed in FIELD_NAMES so the stores can move them
# in and out of CanonicalEntity.fields generically.
# =============================================================================


class CanonicalColumnsMixin:
    """Columns shared by every canonical entity table."""

    ENTITY_KIND: ClassVar[EntityKind]
    FIELD_NAMES: ClassVar[tuple[str, ...]] = ()

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    spotify_id: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(String(500), nullable=False)
    image_url: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    # snapshot_id for playlists, field fingerprint for everything else
    change_token: Mapped[str | None] = mapped_column(String(255), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), nullable=False, default=utc_now
    )
    updated_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), nullable=False, default=utc_now, onupdate=utc_now
    )

    def to_entity(self) -> CanonicalEntity:
        return CanonicalEntity(
            id=self.id,
            kind=self.ENTITY_KIND,
            external_id=self.spotify_id,
            name=self.name,
            change_token=self.change_token,
            image_url=self.image_url,
            fields={name: getattr(self, name) for name in self.FIELD_NAMES},
        )


class PlaylistModel(CanonicalColumnsMixin, Base):
    """Spotify playlist."""

    __tablename__ = "playlists"

    ENTITY_KIND = EntityKind.PLAYLIST
    FIELD_NAMES = (
        "description",
        "owner_spotify_id",
        "is_public",
        "is_collaborative",
        "snapshot_id",
        "track_count",
    )

    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    owner_spotify_id: Mapped[str | None] = mapped_column(String(255), nullable=True, index=True)
    is_public: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_collaborative: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    snapshot_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    track_count: Mapped[int | None] = mapped_column(Integer, nullable=True)


class TrackModel(CanonicalColumnsMixin, Base):
    """Spotify track."""

    __tablename__ = "tracks"

    ENTITY_KIND = EntityKind.TRACK
    FIELD_NAMES = (
        "duration_ms",
        "explicit",
        "popularity",
        "isrc",
        "album_spotify_id",
        "album_name",
        "artist_names",
    )

    duration_ms: Mapped[int | None] = mapped_column(Integer, nullable=True)
    explicit: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    popularity: Mapped[int | None] = mapped_column(Integer, nullable=True)
    isrc: Mapped[str | None] = mapped_column(String(12), nullable=True, index=True)
    album_spotify_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    album_name: Mapped[str | None] = mapped_column(String(500), nullable=True)
    artist_names: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)


class AlbumModel(CanonicalColumnsMixin, Base):
    """Spotify album."""

    __tablename__ = "albums"

    ENTITY_KIND = EntityKind.ALBUM
    FIELD_NAMES = ("release_date", "album_type", "total_tracks", "artist_names")

    release_date: Mapped[str | None] = mapped_column(String(10), nullable=True)
    album_type: Mapped[str] = mapped_column(String(20), nullable=False, default="album")
    total_tracks: Mapped[int | None] = mapped_column(Integer, nullable=True)
    artist_names: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)


class ArtistModel(CanonicalColumnsMixin, Base):
    """Spotify artist."""

    __tablename__ = "artists"

    ENTITY_KIND = EntityKind.ARTIST
    FIELD_NAMES = ("genres", "popularity", "follower_count")

    genres: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    popularity: Mapped[int | None] = mapped_column(Integer, nullable=True)
    follower_count: Mapped[int | None] = mapped_column(Integer, nullable=True)


# =============================================================================
# RELATIONSHIPS (per-user link tables)
# Hey future me - (user_id, <entity>_id) is UNIQUE, same ON CONFLICT trick as above.
# Rows are hard-deleted when the user drops the item on Spotify; a re-add later
# simply creates a fresh row. Both FKs cascade so deleting a user or a canonical
# entity can never leave dangling links.
# =============================================================================


class LinkColumnsMixin:
    """Columns shared by every relationship table."""

    ENTITY_KIND: ClassVar[EntityKind]
    ENTITY_FK: ClassVar[str]

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    user_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    relation_kind: Mapped[str] = mapped_column(String(20), nullable=False)
    added_at: Mapped[datetime] = mapped_column(sa.DateTime(timezone=True), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), nullable=False, default=utc_now
    )

    def to_relationship(self) -> Relationship:
        return Relationship(
            user_id=self.user_id,
            entity_id=getattr(self, self.ENTITY_FK),
            kind=self.ENTITY_KIND,
            relation_kind=RelationKind(self.relation_kind),
            added_at=ensure_utc_aware(self.added_at),
        )


class UserPlaylistModel(LinkColumnsMixin, Base):
    """User owns or follows a playlist."""

    __tablename__ = "user_playlists"
    __table_args__ = (UniqueConstraint("user_id", "playlist_id", name="uq_user_playlist"),)

    ENTITY_KIND = EntityKind.PLAYLIST
    ENTITY_FK = "playlist_id"

    playlist_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("playlists.id", ondelete="CASCADE"), nullable=False, index=True
    )


class UserLikedTrackModel(LinkColumnsMixin, Base):
    """User liked a track."""

    __tablename__ = "user_liked_tracks"
    __table_args__ = (UniqueConstraint("user_id", "track_id", name="uq_user_liked_track"),)

    ENTITY_KIND = EntityKind.TRACK
    ENTITY_FK = "track_id"

    track_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("tracks.id", ondelete="CASCADE"), nullable=False, index=True
    )


class UserSavedAlbumModel(LinkColumnsMixin, Base):
    """User saved an album."""

    __tablename__ = "user_saved_albums"
    __table_args__ = (UniqueConstraint("user_id", "album_id", name="uq_user_saved_album"),)

    ENTITY_KIND = EntityKind.ALBUM
    ENTITY_FK = "album_id"

    album_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("albums.id", ondelete="CASCADE"), nullable=False, index=True
    )


class UserFollowedArtistModel(LinkColumnsMixin, Base):
    """User follows an artist."""

    __tablename__ = "user_followed_artists"
    __table_args__ = (
        UniqueConstraint("user_id", "artist_id", name="uq_user_followed_artist"),
    )

    ENTITY_KIND = EntityKind.ARTIST
    ENTITY_FK = "artist_id"

    artist_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("artists.id", ondelete="CASCADE"), nullable=False, index=True
    )


@dataclass(frozen=True)
class CatalogTables:
    """Canonical table + link table for one entity kind."""

    entity: Any
    link: Any

    @property
    def link_fk(self) -> Any:
        """Link table column pointing at the canonical entity."""
        return getattr(self.link, self.link.ENTITY_FK)


CATALOG_TABLES: dict[EntityKind, CatalogTables] = {
    EntityKind.PLAYLIST: CatalogTables(entity=PlaylistModel, link=UserPlaylistModel),
    EntityKind.TRACK: CatalogTables(entity=TrackModel, link=UserLikedTrackModel),
    EntityKind.ALBUM: CatalogTables(entity=AlbumModel, link=UserSavedAlbumModel),
    EntityKind.ARTIST: CatalogTables(entity=ArtistModel, link=UserFollowedArtistModel),
}


class ListeningHistoryModel(Base):
    """One play of a track by a user (append-only)."""

    __tablename__ = "listening_history"
    __table_args__ = (
        UniqueConstraint("user_id", "track_id", "played_at", name="uq_listening_history_play"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    user_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    track_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("tracks.id", ondelete="CASCADE"), nullable=False
    )
    played_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), nullable=False, index=True
    )


class SyncStateModel(Base):
    """Sync bookkeeping per (user, sync type).

    Hey future me - written after EVERY attempt, successful or aborted. The
    cooldown reads last_synced_at from here, the API exposes the rest as staleness.
    """

    __tablename__ = "sync_states"
    __table_args__ = (UniqueConstraint("user_id", "sync_type", name="uq_sync_state"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    user_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    # playlists, saved_tracks, saved_albums, followed_artists, recently_played
    sync_type: Mapped[str] = mapped_column(String(50), nullable=False)
    last_synced_at: Mapped[datetime] = mapped_column(sa.DateTime(timezone=True), nullable=False)
    # ok, error
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="ok")
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    items_added: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    items_updated: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    items_removed: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    updated_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    def to_state(self) -> SyncState:
        return SyncState(
            user_id=self.user_id,
            sync_type=self.sync_type,
            last_synced_at=ensure_utc_aware(self.last_synced_at),
            status=SyncStatus(self.status),
            error_message=self.error_message,
            items_added=self.items_added,
            items_updated=self.items_updated,
            items_removed=self.items_removed,
        )
