"""create user_emails

Revision ID: 0001_create_user_emails
Revises:
Create Date: 2026-10-18

Requires the ``users`` table owned by the account service.
"""

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = "0001_create_user_emails"
down_revision = None
branch_labels = None
depends_on = None

user_email_role_enum = sa.Enum("general", "primary", name="e_user_email_role")
identification_state_enum = sa.Enum(
    "pending", "done", name="e_user_email_identification_state"
)


def upgrade() -> None:
    op.create_table(
        "user_emails",
        sa.Column("id", sa.BigInteger(), primary_key=True, autoincrement=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text("now()")),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text("now()")),
        sa.Column("lock_version", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("user_id", sa.BigInteger(), nullable=False),
        sa.Column("email", sa.String(64), nullable=True),
        sa.Column("role", user_email_role_enum, nullable=False, server_default="general"),
        sa.Column(
            "identification_state",
            identification_state_enum,
            nullable=False,
            server_default="pending",
        ),
        sa.Column("identification_token", sa.String(256), nullable=True),
        sa.Column(
            "identification_token_expires_at", sa.DateTime(timezone=True), nullable=True
        ),
        sa.Column(
            "identification_token_granted_at", sa.DateTime(timezone=True), nullable=True
        ),
        sa.ForeignKeyConstraint(
            ["user_id"], ["users.id"], match="FULL", name="user_emails_user_id_fkey"
        ),
    )
    op.create_index("ix_user_emails_email", "user_emails", ["email"], unique=True)
    op.create_index(
        "ix_user_emails_identification_state", "user_emails", ["identification_state"]
    )
    op.create_index(
        "ix_user_emails_identification_token", "user_emails", ["identification_token"]
    )
    op.create_index("ix_user_emails_role", "user_emails", ["role"])
    op.create_index("ix_user_emails_user_id", "user_emails", ["user_id"])


def downgrade() -> None:
    op.drop_index("ix_user_emails_user_id", table_name="user_emails")
    op.drop_index("ix_user_emails_role", table_name="user_emails")
    op.drop_index("ix_user_emails_identification_token", table_name="user_emails")
    op.drop_index("ix_user_emails_identification_state", table_name="user_emails")
    op.drop_index("ix_user_emails_email", table_name="user_emails")
    op.drop_table("user_emails")
    identification_state_enum.drop(op.get_bind(), checkfirst=True)
    user_email_role_enum.drop(op.get_bind(), checkfirst=True)
