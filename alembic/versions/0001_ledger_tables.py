"""create ledger tables

Revision ID: 0001_ledger_tables
Revises:
Create Date: 2026-10-19 09:00:00.000000

Companies and health tests are owned by the wider business system; they are
created here only when missing so the ledger can run against an empty
database. Each table is created idempotently.
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect


# revision identifiers, used by Alembic.
revision: str = '0001_ledger_tables'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _table_exists(table_name):
    """Check if a table exists."""
    bind = op.get_bind()
    insp = inspect(bind)
    return table_name in insp.get_table_names()


def upgrade() -> None:
    if not _table_exists("companies"):
        op.create_table(
            "companies",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("name", sa.String(), nullable=False),
            sa.Column("address", sa.Text(), nullable=False),
            sa.Column("contact_person", sa.String(), nullable=False),
            sa.Column("phone", sa.String(), nullable=False),
            sa.Column("email", sa.String(), nullable=False),
            sa.Column("created_at", sa.DateTime(), nullable=True),
            sa.PrimaryKeyConstraint("id"),
        )

    if not _table_exists("health_tests"):
        op.create_table(
            "health_tests",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("name", sa.String(), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("code", sa.String(), nullable=True),
            sa.Column("price", sa.Float(), nullable=True),
            sa.Column("is_active", sa.Boolean(), nullable=True),
            sa.Column("created_at", sa.DateTime(), nullable=True),
            sa.Column("updated_at", sa.DateTime(), nullable=True),
            sa.PrimaryKeyConstraint("id"),
        )

    if not _table_exists("quotes"):
        op.create_table(
            "quotes",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("company_id", sa.Integer(), nullable=False),
            sa.Column("quote_number", sa.String(), nullable=False),
            sa.Column("issue_date", sa.Date(), nullable=False),
            sa.Column("valid_until_date", sa.Date(), nullable=False),
            sa.Column("subtotal", sa.Float(), nullable=False),
            sa.Column("tax", sa.Float(), nullable=False),
            sa.Column("total", sa.Float(), nullable=False),
            sa.Column("notes", sa.Text(), nullable=True),
            sa.Column("status", sa.String(), nullable=False),
            sa.Column("created_at", sa.DateTime(), nullable=True),
            sa.Column("updated_at", sa.DateTime(), nullable=True),
            sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
            sa.ForeignKeyConstraint(["company_id"], ["companies.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("quote_number"),
        )

    if not _table_exists("quote_items"):
        op.create_table(
            "quote_items",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("quote_id", sa.Integer(), nullable=False),
            sa.Column("health_test_id", sa.Integer(), nullable=True),
            sa.Column("quantity", sa.Integer(), nullable=False),
            sa.Column("unit_price", sa.Float(), nullable=False),
            sa.Column("total_price", sa.Float(), nullable=False),
            sa.Column("description", sa.Text(), nullable=False),
            sa.Column("created_at", sa.DateTime(), nullable=True),
            sa.Column("updated_at", sa.DateTime(), nullable=True),
            sa.ForeignKeyConstraint(["quote_id"], ["quotes.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["health_test_id"], ["health_tests.id"], ondelete="SET NULL"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_quote_items_quote_id", "quote_items", ["quote_id"])


def downgrade() -> None:
    # Reference tables belong to the wider system, leave them in place
    if _table_exists("quote_items"):
        op.drop_index("ix_quote_items_quote_id", table_name="quote_items")
        op.drop_table("quote_items")
    if _table_exists("quotes"):
        op.drop_table("quotes")
