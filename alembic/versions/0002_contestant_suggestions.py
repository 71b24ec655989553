"""contestant suggestions

Revision ID: 0002_contestant_suggestions
Revises: 0001_initial
Create Date: 2026-10-17
"""

from alembic import op
import sqlalchemy as sa


revision = "0002_contestant_suggestions"
down_revision = "0001_initial"
branch_labels = None
depends_on = None


def upgrade() -> None:
    # Предложения участников от пользователей до старта турнира.
    op.create_table(
        "contestant_suggestions",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("tournament_id", sa.Integer(), sa.ForeignKey("tournaments.id", ondelete="CASCADE"), nullable=False),
        sa.Column("suggested_by", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("image_url", sa.String(length=512), nullable=True),
        sa.Column("vote_count", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False),
        sa.Column("admin_notes", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.UniqueConstraint("tournament_id", "name", name="uq_suggestion_tournament_name"),
    )
    op.create_index("ix_contestant_suggestions_tournament_id", "contestant_suggestions", ["tournament_id"], unique=False)
    op.create_index("ix_contestant_suggestions_suggested_by", "contestant_suggestions", ["suggested_by"], unique=False)
    op.create_index("ix_contestant_suggestions_vote_count", "contestant_suggestions", ["vote_count"], unique=False)
    op.create_index("ix_contestant_suggestions_status", "contestant_suggestions", ["status"], unique=False)

    # Голоса за предложения: один на пользователя.
    op.create_table(
        "suggestion_votes",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "suggestion_id",
            sa.Integer(),
            sa.ForeignKey("contestant_suggestions.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.UniqueConstraint("suggestion_id", "user_id", name="uq_suggestion_vote_user"),
    )
    op.create_index("ix_suggestion_votes_suggestion_id", "suggestion_votes", ["suggestion_id"], unique=False)
    op.create_index("ix_suggestion_votes_user_id", "suggestion_votes", ["user_id"], unique=False)


def downgrade() -> None:
    op.drop_table("suggestion_votes")
    op.drop_table("contestant_suggestions")
