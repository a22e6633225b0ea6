"""community portal baseline schema

Revision ID: 0001_baseline
Revises:
Create Date: 2026-10-18 00:00:00.000000
"""

from alembic import op
import sqlalchemy as sa


def _ensure_index(inspector, table: str, name: str, columns: list[str], unique: bool = False) -> None:
    existing = {index["name"] for index in inspector.get_indexes(table)}
    if name not in existing:
        op.create_index(name, table, columns, unique=unique)


def _has_table(inspector, name: str) -> bool:
    return inspector.has_table(name)


revision = "0001_baseline"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    bind = op.get_bind()
    inspector = sa.inspect(bind)

    if not _has_table(inspector, "residents"):
        op.create_table(
            "residents",
            sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
            sa.Column("first_name", sa.String(), nullable=False),
            sa.Column("last_name", sa.String(), nullable=False),
            sa.Column("email", sa.String(), nullable=False),
            sa.Column("phone", sa.String(), nullable=True),
            sa.Column("address", sa.String(), nullable=False),
            sa.Column("unit_number", sa.String(), nullable=True),
            sa.Column("is_resident", sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column("is_renter", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("is_board_member", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("is_dev", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column("is_blocked", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("block_reason", sa.Text(), nullable=True),
            sa.Column("hashed_password", sa.String(), nullable=True),
            sa.Column("profile_image", sa.String(), nullable=True),
            sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
            sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        )
    _ensure_index(inspector, "residents", "ix_residents_id", ["id"])
    _ensure_index(inspector, "residents", "ix_residents_email", ["email"], unique=True)

    if not _has_table(inspector, "audit_logs"):
        op.create_table(
            "audit_logs",
            sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
            sa.Column("timestamp", sa.DateTime(), nullable=False, server_default=sa.func.now()),
            sa.Column(
                "actor_resident_id",
                sa.Integer(),
                sa.ForeignKey("residents.id", ondelete="SET NULL"),
                nullable=True,
            ),
            sa.Column("action", sa.String(), nullable=False),
            sa.Column("target_entity_type", sa.String(), nullable=True),
            sa.Column("target_entity_id", sa.String(), nullable=True),
            sa.Column("before", sa.Text(), nullable=True),
            sa.Column("after", sa.Text(), nullable=True),
        )
    _ensure_index(inspector, "audit_logs", "ix_audit_logs_id", ["id"])
    _ensure_index(inspector, "audit_logs", "ix_audit_logs_timestamp", ["timestamp"])

    if not _has_table(inspector, "polls"):
        op.create_table(
            "polls",
            sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
            sa.Column("title", sa.String(), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("category", sa.String(), nullable=True),
            sa.Column("options", sa.JSON(), nullable=False),
            sa.Column("allow_multiple_votes", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("expires_at", sa.DateTime(), nullable=True),
            sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column("created_by", sa.String(), nullable=False),
            sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
            sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        )
    _ensure_index(inspector, "polls", "ix_polls_id", ["id"])
    _ensure_index(inspector, "polls", "ix_polls_category", ["category"])
    _ensure_index(inspector, "polls", "ix_polls_is_active", ["is_active"])

    if not _has_table(inspector, "poll_votes"):
        op.create_table(
            "poll_votes",
            sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
            sa.Column("poll_id", sa.Integer(), sa.ForeignKey("polls.id", ondelete="CASCADE"), nullable=False),
            sa.Column("user_id", sa.String(), nullable=False),
            sa.Column("selected_options", sa.JSON(), nullable=False),
            sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
            sa.UniqueConstraint("poll_id", "user_id", name="uq_poll_votes_poll_user"),
        )
    _ensure_index(inspector, "poll_votes", "ix_poll_votes_id", ["id"])
    _ensure_index(inspector, "poll_votes", "ix_poll_votes_poll_id", ["poll_id"])
    _ensure_index(inspector, "poll_votes", "ix_poll_votes_user_id", ["user_id"])

    if not _has_table(inspector, "fees"):
        op.create_table(
            "fees",
            sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
            sa.Column("type", sa.String(), nullable=False, server_default="Fee"),
            sa.Column("name", sa.String(), nullable=False),
            sa.Column("amount", sa.Numeric(10, 2), nullable=False),
            sa.Column("frequency", sa.String(), nullable=True),
            sa.Column("year", sa.Integer(), nullable=True),
            sa.Column("due_date", sa.Date(), nullable=False),
            sa.Column("date_issued", sa.Date(), nullable=True),
            sa.Column("description", sa.Text(), nullable=False, server_default=""),
            sa.Column("reason", sa.String(), nullable=True),
            sa.Column("address", sa.String(), nullable=True),
            sa.Column("status", sa.String(), nullable=False, server_default="Pending"),
            sa.Column("paid_at", sa.DateTime(), nullable=True),
            sa.Column("payment_method", sa.String(), nullable=True),
            sa.Column("external_payment_id", sa.String(), nullable=True),
            sa.Column(
                "resident_id",
                sa.Integer(),
                sa.ForeignKey("residents.id", ondelete="SET NULL"),
                nullable=True,
            ),
            sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
            sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        )
    _ensure_index(inspector, "fees", "ix_fees_id", ["id"])
    _ensure_index(inspector, "fees", "ix_fees_type", ["type"])
    _ensure_index(inspector, "fees", "ix_fees_year", ["year"])
    _ensure_index(inspector, "fees", "ix_fees_status", ["status"])
    _ensure_index(inspector, "fees", "ix_fees_resident_id", ["resident_id"])

    if not _has_table(inspector, "payments"):
        op.create_table(
            "payments",
            sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
            sa.Column(
                "resident_id",
                sa.Integer(),
                sa.ForeignKey("residents.id", ondelete="CASCADE"),
                nullable=False,
            ),
            sa.Column("fee_id", sa.Integer(), sa.ForeignKey("fees.id", ondelete="SET NULL"), nullable=True),
            sa.Column("fine_id", sa.Integer(), sa.ForeignKey("fees.id", ondelete="SET NULL"), nullable=True),
            sa.Column("fee_type", sa.String(), nullable=True),
            sa.Column("amount", sa.Numeric(10, 2), nullable=False),
            sa.Column("currency", sa.String(), nullable=False, server_default="usd"),
            sa.Column("status", sa.String(), nullable=False, server_default="pending"),
            sa.Column("payment_method", sa.String(), nullable=False),
            sa.Column("external_payment_id", sa.String(), nullable=True),
            sa.Column("transaction_id", sa.String(), nullable=True),
            sa.Column("venmo_username", sa.String(), nullable=True),
            sa.Column("verification_status", sa.String(), nullable=True),
            sa.Column("payment_date", sa.Date(), nullable=False),
            sa.Column("description", sa.Text(), nullable=False, server_default=""),
            sa.Column("metadata", sa.JSON(), nullable=True),
            sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
            sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        )
    _ensure_index(inspector, "payments", "ix_payments_id", ["id"])
    _ensure_index(inspector, "payments", "ix_payments_resident_id", ["resident_id"])
    _ensure_index(inspector, "payments", "ix_payments_fee_id", ["fee_id"])
    _ensure_index(inspector, "payments", "ix_payments_fine_id", ["fine_id"])
    _ensure_index(inspector, "payments", "ix_payments_status", ["status"])
    _ensure_index(inspector, "payments", "ix_payments_external_payment_id", ["external_payment_id"])
    _ensure_index(inspector, "payments", "ix_payments_transaction_id", ["transaction_id"])


def downgrade() -> None:
    for table in ("payments", "fees", "poll_votes", "polls", "audit_logs", "residents"):
        op.drop_table(table)
