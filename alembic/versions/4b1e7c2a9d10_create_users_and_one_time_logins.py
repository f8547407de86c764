"""create users + one_time_logins

Revision ID: 4b1e7c2a9d10
Revises:
Create Date: 2026-10-18 10:12:41.528301

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '4b1e7c2a9d10'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("first_name", sa.String(length=100), nullable=False),
        sa.Column("last_name", sa.String(length=100), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("phone_number", sa.String(length=20), nullable=False),
        sa.Column("national_id", sa.String(length=20), nullable=True),
        sa.Column("hashed_password", sa.String(length=255), nullable=False),
        sa.Column("success_password_hash", sa.String(length=255), nullable=True),
        sa.Column("success_password_reset_code", sa.String(length=12), nullable=True),
        sa.Column("success_password_reset_expires", sa.DateTime(), nullable=True),
        sa.Column("role", sa.Enum("user", "admin", name="roleenum"), nullable=False),
        sa.Column(
            "status",
            sa.Enum("pending", "active", "inactive", "suspended", name="userstatus"),
            nullable=False,
        ),
        sa.Column("is_email_verified", sa.Boolean(), nullable=False),
        sa.Column("email_verification_token", sa.String(length=12), nullable=True),
        sa.Column("email_verification_expires", sa.DateTime(), nullable=True),
        sa.Column("email_code_sent_at", sa.DateTime(), nullable=True),
        sa.Column("is_phone_verified", sa.Boolean(), nullable=False),
        sa.Column("phone_verification_code", sa.String(length=12), nullable=True),
        sa.Column("phone_verification_expires", sa.DateTime(), nullable=True),
        sa.Column("phone_code_sent_at", sa.DateTime(), nullable=True),
        sa.Column("password_reset_token", sa.String(length=128), nullable=True),
        sa.Column("password_reset_expires", sa.DateTime(), nullable=True),
        sa.Column("two_factor_enabled", sa.Boolean(), nullable=False),
        sa.Column("two_factor_secret", sa.String(length=64), nullable=True),
        sa.Column("last_login", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("national_id"),
    )
    op.create_index("ix_users_email", "users", ["email"], unique=True)
    op.create_index("ix_users_phone_number", "users", ["phone_number"], unique=True)
    op.create_index("ix_users_password_reset_token", "users", ["password_reset_token"])

    op.create_table(
        "one_time_logins",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("user_id", sa.String(length=36), nullable=False),
        sa.Column("token_hash", sa.String(length=64), nullable=False),
        sa.Column("expires_at", sa.DateTime(), nullable=False),
        sa.Column("used", sa.Boolean(), nullable=False),
        sa.Column("used_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_one_time_logins_user_id", "one_time_logins", ["user_id"])
    op.create_index("ix_one_time_logins_token_hash", "one_time_logins", ["token_hash"], unique=True)


def downgrade() -> None:
    op.drop_index("ix_one_time_logins_token_hash", table_name="one_time_logins")
    op.drop_index("ix_one_time_logins_user_id", table_name="one_time_logins")
    op.drop_table("one_time_logins")

    op.drop_index("ix_users_password_reset_token", table_name="users")
    op.drop_index("ix_users_phone_number", table_name="users")
    op.drop_index("ix_users_email", table_name="users")
    op.drop_table("users")
    sa.Enum(name="userstatus").drop(op.get_bind(), checkfirst=True)
    sa.Enum(name="roleenum").drop(op.get_bind(), checkfirst=True)
