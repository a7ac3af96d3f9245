"""Domain entities."""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from petal.domain.exceptions import ValidationError


# Hey future me, EntityKind is the kind of SHARED canonical row (one table per kind).
# ResourceKind below is the kind of SYNC - what we pull from /me/... for one user.
# Don't mix them up: recently_played syncs tracks, but it's not the liked-tracks set!
class EntityKind(str, Enum):
    """Kind of canonical catalog entity."""

    PLAYLIST = "playlist"
    TRACK = "track"
    ALBUM = "album"
    ARTIST = "artist"


class ResourceKind(str, Enum):
    """Kind of user library resource that can be synced from Spotify."""

    PLAYLISTS = "playlists"
    SAVED_TRACKS = "saved_tracks"
    SAVED_ALBUMS = "saved_albums"
    FOLLOWED_ARTISTS = "followed_artists"
    # Append-only - handled by ListeningHistoryService, never reconciled as a set
    RECENTLY_PLAYED = "recently_played"

    @property
    def entity_kind(self) -> EntityKind:
        """Canonical entity kind behind this resource."""
        return _ENTITY_KIND_BY_RESOURCE[self]

    @property
    def is_reconciled(self) -> bool:
        """True if this resource is mirrored as a set (add/update/remove)."""
        return self is not ResourceKind.RECENTLY_PLAYED


_ENTITY_KIND_BY_RESOURCE: dict[ResourceKind, EntityKind] = {
    ResourceKind.PLAYLISTS: EntityKind.PLAYLIST,
    ResourceKind.SAVED_TRACKS: EntityKind.TRACK,
    ResourceKind.SAVED_ALBUMS: EntityKind.ALBUM,
    ResourceKind.FOLLOWED_ARTISTS: EntityKind.ARTIST,
    ResourceKind.RECENTLY_PLAYED: EntityKind.TRACK,
}


class RelationKind(str, Enum):
    """How a user is associated with a canonical entity."""

    OWNER = "owner"
    SUBSCRIBER = "subscriber"
    LIKED = "liked"
    SAVED = "saved"
    FOLLOWER = "follower"


class SyncStatus(str, Enum):
    """Outcome of the last sync attempt."""

    OK = "ok"
    ERROR = "error"


# Yo, CanonicalEntity is ONE real-world catalog object shared by every user.
# It's never owned by anybody - users point at it through Relationship rows.
# `fields` carries the kind-specific columns (snapshot_id, duration_ms, genres...)
# so the engine can stay generic over kinds.
@dataclass
class CanonicalEntity:
    """Shared, deduplicated record for one external catalog object."""

    id: str
    kind: EntityKind
    external_id: str
    name: str
    change_token: str | None = None
    image_url: str | None = None
    fields: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        """Validate identifiers."""
        if not self.external_id:
            raise ValidationError("Canonical entity external_id cannot be empty")


@dataclass
class EntityDraft:
    """Values for a canonical entity that does not exist yet."""

    kind: EntityKind
    external_id: str
    name: str
    change_token: str | None
    image_url: str | None = None
    fields: dict[str, Any] = field(default_factory=dict)


@dataclass
class Relationship:
    """One user's association with a canonical entity."""

    user_id: str
    entity_id: str
    kind: EntityKind
    relation_kind: RelationKind
    added_at: datetime


@dataclass
class RelationshipDraft:
    """Values for a relationship row that does not exist yet."""

    user_id: str
    entity_id: str
    kind: EntityKind
    relation_kind: RelationKind
    added_at: datetime = field(default_factory=lambda: datetime.now(UTC))


# Hey future me - LocalPairing is the SNAPSHOT row the planner diffs against.
# It's loaded once per sync (relationship joined with its canonical entity) and
# passed around as a plain value. Frozen so nobody mutates the snapshot mid-sync.
@dataclass(frozen=True)
class LocalPairing:
    """Known local association of a user with a canonical entity."""

    entity_id: str
    external_id: str
    change_token: str | None
    relation_kind: RelationKind


@dataclass
class SyncState:
    """Bookkeeping of the last sync attempt for one (user, sync type)."""

    user_id: str
    sync_type: str
    last_synced_at: datetime
    status: SyncStatus = SyncStatus.OK
    error_message: str | None = None
    items_added: int = 0
    items_updated: int = 0
    items_removed: int = 0


@dataclass(frozen=True)
class SyncResult:
    """Summary of one successful sync pass (not persisted)."""

    added: int
    updated: int
    removed: int
    synced_at: datetime
    resource_kind: ResourceKind | None = None
    total: int = 0

    def to_dict(self) -> dict[str, Any]:
        """Convert to a JSON-friendly dict."""
        return {
            "added": self.added,
            "updated": self.updated,
            "removed": self.removed,
            "synced_at": self.synced_at.isoformat(),
            "resource_kind": self.resource_kind.value if self.resource_kind else None,
            "total": self.total,
        }


__all__ = [
    "EntityKind",
    "ResourceKind",
    "RelationKind",
    "SyncStatus",
    "CanonicalEntity",
    "EntityDraft",
    "Relationship",
    "RelationshipDraft",
    "LocalPairing",
    "SyncState",
    "SyncResult",
]
