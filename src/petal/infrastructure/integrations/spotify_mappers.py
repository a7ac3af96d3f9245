"""Decode Spotify Web API JSON into validated DTOs.

Hey future me - this is the ONLY module that pokes around in raw Spotify payloads.
Everything downstream works on DTOs. Two rules:
- An item without an id (local files, deleted playlists show up as null slots) is
  SKIPPED. It could never be stored, so it could never be a local pairing either.
- Anything else that doesn't look like Spotify's documented shape raises
  RemotePayloadError. We'd rather fail the whole sync than silently drop an item,
  because a dropped item looks exactly like "user removed it" to the planner!
"""

from collections.abc import Callable
from datetime import datetime
from typing import Any

from petal.domain.dtos import (
    AlbumDTO,
    ArtistDTO,
    PlayedTrackDTO,
    PlaylistDTO,
    RemotePage,
    TrackDTO,
)
from petal.domain.entities import ResourceKind
from petal.domain.exceptions import RemotePayloadError, ValidationError

Payload = dict[str, Any]


def _require_dict(value: Any, what: str) -> Payload:
    if not isinstance(value, dict):
        raise RemotePayloadError(f"Expected {what} object, got {type(value).__name__}")
    return value


def _first_image_url(data: Payload) -> str | None:
    images = data.get("images") or []
    if not isinstance(images, list) or not images:
        return None
    first = images[0]
    return first.get("url") if isinstance(first, dict) else None


def _item_id(data: Payload, what: str) -> str | None:
    """Spotify id of an item, None when it has none (local files, null slots)."""
    value = data.get("id")
    if not value:
        return None
    if not isinstance(value, str):
        raise RemotePayloadError(f"Invalid {what} id: {value!r}")
    return value


def _require_list(data: Payload, key: str, what: str) -> list[Any]:
    value = data.get(key)
    if value is None:
        return []
    if not isinstance(value, list):
        raise RemotePayloadError(f"Expected {what} {key} list, got {type(value).__name__}")
    return value


def _artist_names(data: Payload, what: str) -> list[str]:
    return [
        artist["name"]
        for artist in _require_list(data, "artists", what)
        if isinstance(artist, dict) and artist.get("name")
    ]


def _parse_timestamp(value: Any, what: str) -> datetime:
    if not isinstance(value, str):
        raise RemotePayloadError(f"Missing {what} timestamp")
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError as e:
        raise RemotePayloadError(f"Invalid {what} timestamp: {value!r}") from e


def _optional_timestamp(value: Any, what: str) -> datetime | None:
    if value is None:
        return None
    return _parse_timestamp(value, what)


def _build(factory: Callable[..., Any], **kwargs: Any) -> Any:
    try:
        return factory(**kwargs)
    except ValidationError as e:
        raise RemotePayloadError(f"Invalid Spotify item: {e.message}") from e


def decode_playlist(data: Any) -> PlaylistDTO | None:
    """Decode one /me/playlists item."""
    if data is None:
        return None
    data = _require_dict(data, "playlist")
    external_id = _item_id(data, "playlist")
    if external_id is None:
        return None

    owner = data.get("owner") or {}
    tracks = data.get("tracks") or {}
    return _build(
        PlaylistDTO,
        external_id=external_id,
        name=data.get("name") or "",
        image_url=_first_image_url(data),
        description=data.get("description") or None,
        owner_spotify_id=owner.get("id") if isinstance(owner, dict) else None,
        is_public=bool(data.get("public")),
        is_collaborative=bool(data.get("collaborative")),
        snapshot_id=data.get("snapshot_id"),
        track_count=tracks.get("total") if isinstance(tracks, dict) else None,
    )


def decode_track(data: Any, added_at: datetime | None = None) -> TrackDTO | None:
    """Decode a full track object."""
    if data is None:
        return None
    data = _require_dict(data, "track")
    # Local files have no id and is_local=True
    if data.get("is_local"):
        return None
    external_id = _item_id(data, "track")
    if external_id is None:
        return None

    album = data.get("album") or {}
    if not isinstance(album, dict):
        raise RemotePayloadError(f"Track {external_id} has an invalid album object")
    external_ids = data.get("external_ids") or {}

    return _build(
        TrackDTO,
        external_id=external_id,
        name=data.get("name") or "",
        image_url=_first_image_url(album),
        added_at=added_at,
        duration_ms=data.get("duration_ms"),
        explicit=bool(data.get("explicit")),
        popularity=data.get("popularity"),
        isrc=external_ids.get("isrc") if isinstance(external_ids, dict) else None,
        album_spotify_id=album.get("id"),
        album_name=album.get("name"),
        artist_names=_artist_names(data, "track"),
    )


def decode_saved_track(item: Any) -> TrackDTO | None:
    """Decode one /me/tracks item ({added_at, track})."""
    item = _require_dict(item, "saved track")
    return decode_track(
        item.get("track"), added_at=_optional_timestamp(item.get("added_at"), "added_at")
    )


def decode_album(data: Any, added_at: datetime | None = None) -> AlbumDTO | None:
    """Decode a full album object."""
    if data is None:
        return None
    data = _require_dict(data, "album")
    external_id = _item_id(data, "album")
    if external_id is None:
        return None

    return _build(
        AlbumDTO,
        external_id=external_id,
        name=data.get("name") or "",
        image_url=_first_image_url(data),
        added_at=added_at,
        release_date=data.get("release_date"),
        album_type=data.get("album_type") or "album",
        total_tracks=data.get("total_tracks"),
        artist_names=_artist_names(data, "album"),
    )


def decode_saved_album(item: Any) -> AlbumDTO | None:
    """Decode one /me/albums item ({added_at, album})."""
    item = _require_dict(item, "saved album")
    return decode_album(
        item.get("album"), added_at=_optional_timestamp(item.get("added_at"), "added_at")
    )


def decode_artist(data: Any) -> ArtistDTO | None:
    """Decode one /me/following?type=artist item."""
    if data is None:
        return None
    data = _require_dict(data, "artist")
    external_id = _item_id(data, "artist")
    if external_id is None:
        return None

    followers = data.get("followers") or {}
    return _build(
        ArtistDTO,
        external_id=external_id,
        name=data.get("name") or "",
        image_url=_first_image_url(data),
        genres=[g for g in _require_list(data, "genres", "artist") if isinstance(g, str)],
        popularity=data.get("popularity"),
        follower_count=followers.get("total") if isinstance(followers, dict) else None,
    )


def decode_play(item: Any) -> PlayedTrackDTO | None:
    """Decode one /me/player/recently-played item ({track, played_at})."""
    item = _require_dict(item, "play history")
    track = decode_track(item.get("track"))
    if track is None:
        return None
    return PlayedTrackDTO(track=track, played_at=_parse_timestamp(item.get("played_at"), "played_at"))


_ITEM_DECODERS: dict[ResourceKind, Callable[[Any], Any]] = {
    ResourceKind.PLAYLISTS: decode_playlist,
    ResourceKind.SAVED_TRACKS: decode_saved_track,
    ResourceKind.SAVED_ALBUMS: decode_saved_album,
    ResourceKind.FOLLOWED_ARTISTS: decode_artist,
    ResourceKind.RECENTLY_PLAYED: decode_play,
}


def decode_page(kind: ResourceKind, payload: Any) -> RemotePage[Any]:
    """Decode one paging object into a RemotePage.

    /me/following wraps its paging object in {"artists": {...}}, every other
    endpoint returns it directly.
    """
    payload = _require_dict(payload, "page")
    if kind is ResourceKind.FOLLOWED_ARTISTS:
        payload = _require_dict(payload.get("artists"), "artists page")

    raw_items = payload.get("items")
    if not isinstance(raw_items, list):
        raise RemotePayloadError(f"{kind.value} page has no items list")

    next_cursor = payload.get("next")
    if next_cursor is not None and not isinstance(next_cursor, str):
        raise RemotePayloadError(f"{kind.value} page has an invalid next cursor")

    decoder = _ITEM_DECODERS[kind]
    items = [decoded for decoded in (decoder(raw) for raw in raw_items) if decoded is not None]
    return RemotePage(items=items, next_cursor=next_cursor or None)
