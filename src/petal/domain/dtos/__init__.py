"""
Data Transfer Objects for remote catalog items.

Hey future me - these DTOs are the BOUNDARY between Spotify's JSON and the sync engine!
The Spotify client decodes every raw page item into exactly one of these (see
infrastructure/integrations/spotify_mappers.py), validation runs in __post_init__,
and from then on nobody touches untyped payload dicts again.

Flow: Spotify JSON page → DTO (validated) → CatalogSyncService → stores → rows
"""

import hashlib
import json
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, ClassVar, Generic, TypeVar

from petal.domain.entities import EntityDraft, EntityKind, RelationKind
from petal.domain.exceptions import ValidationError


# Hey future me - CatalogItemDTO is the shared shape of every item kind.
# Subclasses add their own columns via entity_fields(). The change token is what
# the engine compares against the stored row to decide "update or leave alone".
@dataclass
class CatalogItemDTO:
    """One remote catalog item, decoded and validated."""

    entity_kind: ClassVar[EntityKind]
    relation_kind: ClassVar[RelationKind]

    external_id: str
    name: str
    image_url: str | None = None
    # When the user saved/followed it (Spotify only tells us for tracks/albums)
    added_at: datetime | None = None

    def __post_init__(self) -> None:
        """Validate essential fields."""
        if not self.external_id or not self.external_id.strip():
            raise ValidationError(f"{self.entity_kind.value} external_id cannot be empty")
        if self.name is None:
            raise ValidationError(
                f"{self.entity_kind.value} {self.external_id} has no name"
            )

    def entity_fields(self) -> dict[str, Any]:
        """Kind-specific canonical columns."""
        return {}

    @property
    def change_token(self) -> str:
        """Version marker used purely for change detection.

        Spotify only hands out a real version marker for playlists (snapshot_id),
        everything else gets a fingerprint of its mutable fields.
        """
        payload = {"name": self.name, "image_url": self.image_url, **self.entity_fields()}
        raw = json.dumps(payload, sort_keys=True, default=str)
        return hashlib.sha1(raw.encode("utf-8")).hexdigest()[:16]

    def relation_kind_for(self, user_external_id: str | None) -> RelationKind:
        """Relation of the syncing user to this item."""
        return self.relation_kind

    def to_draft(self) -> EntityDraft:
        """Build the canonical entity draft for a first observation."""
        return EntityDraft(
            kind=self.entity_kind,
            external_id=self.external_id,
            name=self.name,
            change_token=self.change_token,
            image_url=self.image_url,
            fields=self.entity_fields(),
        )


@dataclass
class PlaylistDTO(CatalogItemDTO):
    """Playlist from /me/playlists."""

    entity_kind: ClassVar[EntityKind] = EntityKind.PLAYLIST
    relation_kind: ClassVar[RelationKind] = RelationKind.SUBSCRIBER

    description: str | None = None
    owner_spotify_id: str | None = None
    is_public: bool = False
    is_collaborative: bool = False
    snapshot_id: str | None = None
    track_count: int | None = None

    def entity_fields(self) -> dict[str, Any]:
        return {
            "description": self.description,
            "owner_spotify_id": self.owner_spotify_id,
            "is_public": self.is_public,
            "is_collaborative": self.is_collaborative,
            "snapshot_id": self.snapshot_id,
            "track_count": self.track_count,
        }

    @property
    def change_token(self) -> str:
        if self.snapshot_id:
            return self.snapshot_id
        return super().change_token

    def relation_kind_for(self, user_external_id: str | None) -> RelationKind:
        # Owner only if the playlist owner is the syncing user
        if user_external_id and self.owner_spotify_id == user_external_id:
            return RelationKind.OWNER
        return RelationKind.SUBSCRIBER


@dataclass
class TrackDTO(CatalogItemDTO):
    """Track from /me/tracks or /me/player/recently-played."""

    entity_kind: ClassVar[EntityKind] = EntityKind.TRACK
    relation_kind: ClassVar[RelationKind] = RelationKind.LIKED

    duration_ms: int | None = None
    explicit: bool = False
    popularity: int | None = None
    isrc: str | None = None
    album_spotify_id: str | None = None
    album_name: str | None = None
    artist_names: list[str] = field(default_factory=list)

    def entity_fields(self) -> dict[str, Any]:
        return {
            "duration_ms": self.duration_ms,
            "explicit": self.explicit,
            "popularity": self.popularity,
            "isrc": self.isrc,
            "album_spotify_id": self.album_spotify_id,
            "album_name": self.album_name,
            "artist_names": list(self.artist_names),
        }


@dataclass
class AlbumDTO(CatalogItemDTO):
    """Album from /me/albums."""

    entity_kind: ClassVar[EntityKind] = EntityKind.ALBUM
    relation_kind: ClassVar[RelationKind] = RelationKind.SAVED

    release_date: str | None = None  # "YYYY-MM-DD", "YYYY-MM" or "YYYY"
    album_type: str = "album"
    total_tracks: int | None = None
    artist_names: list[str] = field(default_factory=list)

    def entity_fields(self) -> dict[str, Any]:
        return {
            "release_date": self.release_date,
            "album_type": self.album_type,
            "total_tracks": self.total_tracks,
            "artist_names": list(self.artist_names),
        }


@dataclass
class ArtistDTO(CatalogItemDTO):
    """Artist from /me/following?type=artist."""

    entity_kind: ClassVar[EntityKind] = EntityKind.ARTIST
    relation_kind: ClassVar[RelationKind] = RelationKind.FOLLOWER

    genres: list[str] = field(default_factory=list)
    popularity: int | None = None
    follower_count: int | None = None

    def entity_fields(self) -> dict[str, Any]:
        return {
            "genres": list(self.genres),
            "popularity": self.popularity,
            "follower_count": self.follower_count,
        }


@dataclass
class PlayedTrackDTO:
    """One play from the listening history."""

    track: TrackDTO
    played_at: datetime


ItemT = TypeVar("ItemT")


@dataclass
class RemotePage(Generic[ItemT]):
    """One page of decoded items plus the cursor of the next page.

    next_cursor=None means the remote catalog is exhausted.
    """

    items: list[ItemT]
    next_cursor: str | None = None


__all__ = [
    "CatalogItemDTO",
    "PlaylistDTO",
    "TrackDTO",
    "AlbumDTO",
    "ArtistDTO",
    "PlayedTrackDTO",
    "RemotePage",
]
