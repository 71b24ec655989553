"""initial

Revision ID: 0001_initial
Revises: 
Create Date: 2026-10-17
"""

from alembic import op
import sqlalchemy as sa


revision = "0001_initial"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    # Создаем таблицу пользователей.
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("username", sa.String(length=50), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("display_name", sa.String(length=120), nullable=False),
        sa.Column("is_admin", sa.Boolean(), nullable=False),
        sa.Column("is_system", sa.Boolean(), nullable=False),
        sa.Column("token_hash", sa.String(length=64), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_users_id", "users", ["id"], unique=False)
    op.create_index("ix_users_username", "users", ["username"], unique=True)
    op.create_index("ix_users_email", "users", ["email"], unique=True)
    op.create_index("ix_users_is_admin", "users", ["is_admin"], unique=False)

    # Создаем таблицу турниров.
    op.create_table(
        "tournaments",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column("slug", sa.String(length=120), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("image_url", sa.String(length=512), nullable=True),
        sa.Column("status", sa.String(length=20), nullable=False),
        sa.Column("bracket_type", sa.String(length=30), nullable=False),
        sa.Column("size", sa.Integer(), nullable=False),
        sa.Column("max_contestants", sa.Integer(), nullable=False),
        sa.Column("quadrant_names", sa.JSON(), nullable=False),
        sa.Column("voting_duration_hours", sa.Integer(), nullable=False),
        sa.Column("is_public", sa.Boolean(), nullable=False),
        sa.Column("allow_ties", sa.Boolean(), nullable=False),
        sa.Column("created_by", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_tournaments_slug", "tournaments", ["slug"], unique=True)
    op.create_index("ix_tournaments_status", "tournaments", ["status"], unique=False)
    op.create_index("ix_tournaments_is_public", "tournaments", ["is_public"], unique=False)
    op.create_index("ix_tournaments_created_by", "tournaments", ["created_by"], unique=False)

    # Участники турнира: имя, позиция и посев уникальны в пределах турнира.
    op.create_table(
        "contestants",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("tournament_id", sa.Integer(), sa.ForeignKey("tournaments.id", ondelete="CASCADE"), nullable=False),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("image_url", sa.String(length=512), nullable=True),
        sa.Column("position", sa.Integer(), nullable=False),
        sa.Column("seed", sa.Integer(), nullable=True),
        sa.Column("quadrant", sa.Integer(), nullable=True),
        sa.Column("eliminated_round", sa.Integer(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("votes_received", sa.Integer(), nullable=False),
        sa.Column("wins", sa.Integer(), nullable=False),
        sa.Column("losses", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.UniqueConstraint("tournament_id", "name", name="uq_contestant_tournament_name"),
        sa.UniqueConstraint("tournament_id", "position", name="uq_contestant_tournament_position"),
        sa.UniqueConstraint("tournament_id", "seed", name="uq_contestant_tournament_seed"),
    )
    op.create_index("ix_contestants_tournament_id", "contestants", ["tournament_id"], unique=False)
    op.create_index("ix_contestants_is_active", "contestants", ["is_active"], unique=False)

    # Раунды сетки.
    op.create_table(
        "rounds",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("tournament_id", sa.Integer(), sa.ForeignKey("tournaments.id", ondelete="CASCADE"), nullable=False),
        sa.Column("round_number", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(length=50), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False),
        sa.Column("total_matchups", sa.Integer(), nullable=False),
        sa.Column("completed_matchups", sa.Integer(), nullable=False),
        sa.Column("start_date", sa.DateTime(), nullable=True),
        sa.Column("end_date", sa.DateTime(), nullable=True),
        sa.Column("locked_at", sa.DateTime(), nullable=True),
        sa.UniqueConstraint("tournament_id", "round_number", name="uq_round_tournament_number"),
    )
    op.create_index("ix_rounds_tournament_id", "rounds", ["tournament_id"], unique=False)
    op.create_index("ix_rounds_round_number", "rounds", ["round_number"], unique=False)
    op.create_index("ix_rounds_status", "rounds", ["status"], unique=False)

    # Матчи: пара участников, счет и победитель.
    op.create_table(
        "matchups",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("round_id", sa.Integer(), sa.ForeignKey("rounds.id", ondelete="CASCADE"), nullable=False),
        sa.Column("tournament_id", sa.Integer(), sa.ForeignKey("tournaments.id", ondelete="CASCADE"), nullable=False),
        sa.Column("position", sa.Integer(), nullable=False),
        sa.Column("contestant1_id", sa.Integer(), sa.ForeignKey("contestants.id", ondelete="SET NULL"), nullable=True),
        sa.Column("contestant2_id", sa.Integer(), sa.ForeignKey("contestants.id", ondelete="SET NULL"), nullable=True),
        sa.Column("winner_id", sa.Integer(), sa.ForeignKey("contestants.id", ondelete="SET NULL"), nullable=True),
        sa.Column("status", sa.String(length=20), nullable=False),
        sa.Column("contestant1_votes", sa.Integer(), nullable=False),
        sa.Column("contestant2_votes", sa.Integer(), nullable=False),
        sa.Column("total_votes", sa.Integer(), nullable=False),
        sa.Column("is_tie", sa.Boolean(), nullable=False),
        sa.Column("notes", sa.String(length=255), nullable=False),
        sa.Column("completed_at", sa.DateTime(), nullable=True),
        sa.UniqueConstraint("round_id", "position", name="uq_matchup_round_position"),
    )
    op.create_index("ix_matchups_round_id", "matchups", ["round_id"], unique=False)
    op.create_index("ix_matchups_tournament_id", "matchups", ["tournament_id"], unique=False)
    op.create_index("ix_matchups_status", "matchups", ["status"], unique=False)

    # Голоса: один голос пользователя на матч.
    op.create_table(
        "votes",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("matchup_id", sa.Integer(), sa.ForeignKey("matchups.id", ondelete="CASCADE"), nullable=False),
        sa.Column(
            "selected_contestant_id",
            sa.Integer(),
            sa.ForeignKey("contestants.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("is_admin_vote", sa.Boolean(), nullable=False),
        sa.Column("weight", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.UniqueConstraint("user_id", "matchup_id", name="uq_vote_user_matchup"),
    )
    op.create_index("ix_votes_user_id", "votes", ["user_id"], unique=False)
    op.create_index("ix_votes_matchup_id", "votes", ["matchup_id"], unique=False)
    op.create_index("ix_votes_selected_contestant_id", "votes", ["selected_contestant_id"], unique=False)
    op.create_index("ix_votes_is_admin_vote", "votes", ["is_admin_vote"], unique=False)
    op.create_index("ix_votes_created_at", "votes", ["created_at"], unique=False)


def downgrade() -> None:
    op.drop_table("votes")
    op.drop_table("matchups")
    op.drop_table("rounds")
    op.drop_table("contestants")
    op.drop_table("tournaments")
    op.drop_table("users")
