"""initial

Revision ID: 0001_initial
Revises: 
Create Date: 2026-10-17 00:00:00.000000
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "0001_initial"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "wallets",
        sa.Column("address", sa.String(length=44), primary_key=True),
        sa.Column("lamports", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )

    op.create_table(
        "assets",
        sa.Column("address", sa.String(length=44), primary_key=True),
        sa.Column("mint_authority", sa.String(length=44), nullable=False),
        sa.Column("decimals", sa.SmallInteger(), nullable=False),
        sa.Column("supply", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )

    op.create_table(
        "token_accounts",
        sa.Column("address", sa.String(length=44), primary_key=True),
        sa.Column("owner", sa.String(length=44), nullable=False),
        sa.Column("asset", sa.String(length=44), sa.ForeignKey("assets.address"), nullable=False),
        sa.Column("amount", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column("reserve", sa.BigInteger(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.CheckConstraint("amount >= 0", name="ck_token_accounts_amount_non_negative"),
    )
    op.create_index("ix_token_accounts_owner", "token_accounts", ["owner"])

    op.create_table(
        "escrow_records",
        sa.Column("address", sa.String(length=44), primary_key=True),
        sa.Column("seed", sa.BigInteger(), nullable=False),
        sa.Column("maker", sa.String(length=44), nullable=False),
        sa.Column("mint_a", sa.String(length=44), nullable=False),
        sa.Column("mint_b", sa.String(length=44), nullable=False),
        sa.Column("receive", sa.BigInteger(), nullable=False),
        sa.Column("bump", sa.SmallInteger(), nullable=False),
        sa.Column("data", sa.LargeBinary(), nullable=False),
        sa.Column("reserve", sa.BigInteger(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.CheckConstraint("receive > 0", name="ck_escrow_records_receive_positive"),
    )
    op.create_index("ix_escrow_records_maker", "escrow_records", ["maker"])

    op.create_table(
        "audit_log",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("escrow_address", sa.String(length=44), nullable=True),
        sa.Column("actor", sa.String(length=44), nullable=True),
        sa.Column("action", sa.String(length=255), nullable=False),
        sa.Column("metadata_json", sa.JSON(), nullable=False, server_default=sa.text("'{}'::json")),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_audit_log_escrow_address", "audit_log", ["escrow_address"])


def downgrade() -> None:
    op.drop_index("ix_audit_log_escrow_address", table_name="audit_log")
    op.drop_table("audit_log")
    op.drop_index("ix_escrow_records_maker", table_name="escrow_records")
    op.drop_table("escrow_records")
    op.drop_index("ix_token_accounts_owner", table_name="token_accounts")
    op.drop_table("token_accounts")
    op.drop_table("assets")
    op.drop_table("wallets")
