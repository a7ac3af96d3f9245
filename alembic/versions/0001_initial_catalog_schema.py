"""initial catalog schema

Revision ID: 0001_initial
Revises:
Create Date: 2026-10-19 09:00:00.000000

Hey future me - this is the whole sync data model in one go:

- users: owned by the auth side, we only need id + spotify_id
- playlists / tracks / albums / artists: canonical entities, ONE row per spotify_id
  shared by all users (UNIQUE spotify_id is what makes concurrent first
  observation safe - the stores insert with ON CONFLICT DO NOTHING)
- user_playlists / user_liked_tracks / user_saved_albums / user_followed_artists:
  per-user relationships, UNIQUE (user_id, <entity>_id), hard-deleted on prune
- listening_history: append-only plays, UNIQUE (user_id, track_id, played_at)
- sync_states: one row per (user, sync type), rewritten after every attempt
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "0001_initial"
down_revision = None
branch_labels = None
depends_on = None


def _canonical_columns() -> list[sa.Column]:
    return [
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("spotify_id", sa.String(255), nullable=False),
        sa.Column("name", sa.String(500), nullable=False),
        sa.Column("image_url", sa.String(1024), nullable=True),
        sa.Column("change_token", sa.String(255), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    ]


def _link_columns() -> list[sa.Column]:
    return [
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "user_id",
            sa.String(36),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("relation_kind", sa.String(20), nullable=False),
        sa.Column("added_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    ]


# (link table, entity FK column, canonical table, unique constraint name)
_LINK_TABLES = [
    ("user_playlists", "playlist_id", "playlists", "uq_user_playlist"),
    ("user_liked_tracks", "track_id", "tracks", "uq_user_liked_track"),
    ("user_saved_albums", "album_id", "albums", "uq_user_saved_album"),
    ("user_followed_artists", "artist_id", "artists", "uq_user_followed_artist"),
]


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("spotify_id", sa.String(255), nullable=True, unique=True),
        sa.Column("handle", sa.String(64), nullable=False, unique=True),
        sa.Column("display_name", sa.String(255), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )

    # Canonical entities
    op.create_table(
        "playlists",
        *_canonical_columns(),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("owner_spotify_id", sa.String(255), nullable=True),
        sa.Column("is_public", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("is_collaborative", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("snapshot_id", sa.String(255), nullable=True),
        sa.Column("track_count", sa.Integer(), nullable=True),
        sa.UniqueConstraint("spotify_id"),
    )
    op.create_index("ix_playlists_owner_spotify_id", "playlists", ["owner_spotify_id"])

    op.create_table(
        "tracks",
        *_canonical_columns(),
        sa.Column("duration_ms", sa.Integer(), nullable=True),
        sa.Column("explicit", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("popularity", sa.Integer(), nullable=True),
        sa.Column("isrc", sa.String(12), nullable=True),
        sa.Column("album_spotify_id", sa.String(255), nullable=True),
        sa.Column("album_name", sa.String(500), nullable=True),
        sa.Column("artist_names", sa.JSON(), nullable=False),
        sa.UniqueConstraint("spotify_id"),
    )
    op.create_index("ix_tracks_isrc", "tracks", ["isrc"])

    op.create_table(
        "albums",
        *_canonical_columns(),
        sa.Column("release_date", sa.String(10), nullable=True),  # YYYY, YYYY-MM or YYYY-MM-DD
        sa.Column("album_type", sa.String(20), nullable=False, server_default="album"),
        sa.Column("total_tracks", sa.Integer(), nullable=True),
        sa.Column("artist_names", sa.JSON(), nullable=False),
        sa.UniqueConstraint("spotify_id"),
    )

    op.create_table(
        "artists",
        *_canonical_columns(),
        sa.Column("genres", sa.JSON(), nullable=False),
        sa.Column("popularity", sa.Integer(), nullable=True),
        sa.Column("follower_count", sa.Integer(), nullable=True),
        sa.UniqueConstraint("spotify_id"),
    )

    # Per-user relationships
    for table_name, fk_column, target, constraint in _LINK_TABLES:
        op.create_table(
            table_name,
            *_link_columns(),
            sa.Column(
                fk_column,
                sa.String(36),
                sa.ForeignKey(f"{target}.id", ondelete="CASCADE"),
                nullable=False,
            ),
            sa.UniqueConstraint("user_id", fk_column, name=constraint),
        )
        op.create_index(f"ix_{table_name}_user_id", table_name, ["user_id"])
        op.create_index(f"ix_{table_name}_{fk_column}", table_name, [fk_column])

    op.create_table(
        "listening_history",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "user_id",
            sa.String(36),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "track_id",
            sa.String(36),
            sa.ForeignKey("tracks.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("played_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("user_id", "track_id", "played_at", name="uq_listening_history_play"),
    )
    op.create_index("ix_listening_history_user_id", "listening_history", ["user_id"])
    op.create_index("ix_listening_history_played_at", "listening_history", ["played_at"])

    op.create_table(
        "sync_states",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "user_id",
            sa.String(36),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("sync_type", sa.String(50), nullable=False),
        sa.Column("last_synced_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="ok"),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("items_added", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("items_updated", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("items_removed", sa.Integer(), nullable=False, server_default="0"),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.UniqueConstraint("user_id", "sync_type", name="uq_sync_state"),
    )


def downgrade() -> None:
    op.drop_table("sync_states")
    op.drop_index("ix_listening_history_played_at", table_name="listening_history")
    op.drop_index("ix_listening_history_user_id", table_name="listening_history")
    op.drop_table("listening_history")

    for table_name, fk_column, _target, _constraint in reversed(_LINK_TABLES):
        op.drop_index(f"ix_{table_name}_{fk_column}", table_name=table_name)
        op.drop_index(f"ix_{table_name}_user_id", table_name=table_name)
        op.drop_table(table_name)

    op.drop_table("artists")
    op.drop_table("albums")
    op.drop_index("ix_tracks_isrc", table_name="tracks")
    op.drop_table("tracks")
    op.drop_index("ix_playlists_owner_spotify_id", table_name="playlists")
    op.drop_table("playlists")
    op.drop_table("users")
