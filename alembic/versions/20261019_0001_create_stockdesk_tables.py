"""create stockdesk tables

Revision ID: 20261019_0001
Revises:
Create Date: 2026-10-19 09:00:00.000000
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "20261019_0001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _table_exists(inspector: sa.Inspector, table_name: str) -> bool:
    return table_name in inspector.get_table_names()


def _index_exists(inspector: sa.Inspector, table_name: str, index_name: str) -> bool:
    return index_name in {index["name"] for index in inspector.get_indexes(table_name)}


def _created_at() -> sa.Column:
    return sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now())


def _updated_at() -> sa.Column:
    return sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now())


def upgrade() -> None:
    bind = op.get_bind()
    inspector = sa.inspect(bind)

    if not _table_exists(inspector, "suppliers"):
        op.create_table(
            "suppliers",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("name", sa.String(length=255), nullable=False),
            sa.Column("contact_person", sa.String(length=255), nullable=True),
            sa.Column("phone", sa.String(length=50), nullable=True),
            sa.Column("email", sa.String(length=255), nullable=True),
            sa.Column("address", sa.Text(), nullable=True),
            sa.Column("gst_number", sa.String(length=50), nullable=True),
            sa.Column("created_by", sa.String(length=64), nullable=False),
            _created_at(),
            sa.PrimaryKeyConstraint("id"),
        )

    if not _table_exists(inspector, "customers"):
        op.create_table(
            "customers",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("name", sa.String(length=255), nullable=False),
            sa.Column("contact_person", sa.String(length=255), nullable=True),
            sa.Column("phone", sa.String(length=50), nullable=True),
            sa.Column("email", sa.String(length=255), nullable=True),
            sa.Column("address", sa.Text(), nullable=True),
            sa.Column("amc_contract_number", sa.String(length=100), nullable=True),
            sa.Column("amc_start_date", sa.Date(), nullable=True),
            sa.Column("amc_end_date", sa.Date(), nullable=True),
            sa.Column("created_by", sa.String(length=64), nullable=False),
            _created_at(),
            sa.PrimaryKeyConstraint("id"),
        )

    if not _table_exists(inspector, "parts"):
        op.create_table(
            "parts",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("code", sa.String(length=64), nullable=False),
            sa.Column("name", sa.String(length=255), nullable=False),
            sa.Column("category", sa.String(length=100), nullable=True),
            sa.Column("unit", sa.String(length=30), nullable=True),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("reorder_level", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("avg_unit_price", sa.Numeric(12, 2), nullable=False, server_default="0"),
            sa.Column("auto_created", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("created_by", sa.String(length=64), nullable=False),
            _created_at(),
            _updated_at(),
            sa.PrimaryKeyConstraint("id"),
        )

    if not _table_exists(inspector, "bills"):
        op.create_table(
            "bills",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("supplier_id", sa.String(length=36), nullable=True),
            sa.Column("supplier_name", sa.String(length=255), nullable=True),
            sa.Column("voucher_number", sa.String(length=100), nullable=False),
            sa.Column("company_bill_number", sa.String(length=100), nullable=True),
            sa.Column("bill_date", sa.Date(), nullable=False),
            sa.Column("total_amount", sa.Numeric(14, 2), nullable=False, server_default="0"),
            sa.Column("notes", sa.Text(), nullable=True),
            sa.Column("source", sa.String(length=20), nullable=False, server_default="manual"),
            sa.Column("created_by", sa.String(length=64), nullable=False),
            sa.Column("updated_by", sa.String(length=64), nullable=True),
            _created_at(),
            _updated_at(),
            sa.ForeignKeyConstraint(["supplier_id"], ["suppliers.id"]),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("voucher_number", name="uq_bills_voucher_number"),
        )

    if not _table_exists(inspector, "serials"):
        op.create_table(
            "serials",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("serial_number", sa.String(length=255), nullable=False),
            sa.Column("bill_id", sa.String(length=36), nullable=False),
            sa.Column("part_id", sa.String(length=36), nullable=False),
            sa.Column("part_name", sa.String(length=255), nullable=False),
            sa.Column("part_code", sa.String(length=64), nullable=True),
            sa.Column("unit_price", sa.Numeric(12, 2), nullable=False, server_default="0"),
            sa.Column("current_category", sa.String(length=40), nullable=False, server_default="UNCATEGORIZED"),
            sa.Column("context_json", sa.JSON(), nullable=False),
            sa.Column("categorized_date", sa.DateTime(timezone=True), nullable=True),
            sa.Column("notes", sa.Text(), nullable=True),
            sa.Column("created_by", sa.String(length=64), nullable=False),
            sa.Column("updated_by", sa.String(length=64), nullable=True),
            _created_at(),
            _updated_at(),
            sa.ForeignKeyConstraint(["bill_id"], ["bills.id"]),
            sa.ForeignKeyConstraint(["part_id"], ["parts.id"]),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("serial_number", name="uq_serials_serial_number"),
        )

    # serial_id is not a foreign key; history outlives deleted serials.
    if not _table_exists(inspector, "serial_movements"):
        op.create_table(
            "serial_movements",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("serial_id", sa.String(length=36), nullable=False),
            sa.Column("serial_number", sa.String(length=255), nullable=False),
            sa.Column("sequence", sa.Integer(), nullable=False),
            sa.Column("from_category", sa.String(length=40), nullable=True),
            sa.Column("to_category", sa.String(length=40), nullable=False),
            sa.Column("movement_type", sa.String(length=30), nullable=False),
            sa.Column("actor_id", sa.String(length=64), nullable=False),
            sa.Column("actor_name", sa.String(length=255), nullable=True),
            sa.Column("reason", sa.String(length=500), nullable=True),
            sa.Column("context_snapshot", sa.JSON(), nullable=True),
            _created_at(),
            sa.PrimaryKeyConstraint("id"),
        )

    if not _table_exists(inspector, "audit_logs"):
        op.create_table(
            "audit_logs",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("actor_id", sa.String(length=64), nullable=False),
            sa.Column("action", sa.String(length=100), nullable=False),
            sa.Column("target_type", sa.String(length=100), nullable=False),
            sa.Column("target_id", sa.String(length=36), nullable=True),
            sa.Column("metadata_json", sa.JSON(), nullable=True),
            _created_at(),
            sa.PrimaryKeyConstraint("id"),
        )

    inspector = sa.inspect(bind)
    indexes = [
        ("suppliers", "ux_suppliers_name_lower", [sa.text("lower(name)")], True),
        ("customers", "ix_customers_name_lower", [sa.text("lower(name)")], False),
        ("parts", "ux_parts_code_lower", [sa.text("lower(code)")], True),
        ("parts", "ix_parts_name_lower", [sa.text("lower(name)")], False),
        ("bills", "ix_bills_supplier_id", ["supplier_id"], False),
        ("bills", "ix_bills_bill_date", ["bill_date"], False),
        ("serials", "ix_serials_bill_id", ["bill_id"], False),
        ("serials", "ix_serials_part_id", ["part_id"], False),
        ("serials", "ix_serials_category_categorized_date", ["current_category", "categorized_date"], False),
        ("serials", "ix_serials_bill_category", ["bill_id", "current_category"], False),
        ("serials", "ix_serials_part_category", ["part_id", "current_category"], False),
        ("serial_movements", "ix_serial_movements_serial_id", ["serial_id"], False),
        ("serial_movements", "ix_serial_movements_serial_sequence", ["serial_id", "sequence"], False),
        ("serial_movements", "ix_serial_movements_created_at", ["created_at"], False),
        (
            "serial_movements",
            "ix_serial_movements_to_category_created_at",
            ["to_category", "created_at"],
            False,
        ),
        ("audit_logs", "ix_audit_logs_actor_id", ["actor_id"], False),
        ("audit_logs", "ix_audit_logs_target_id", ["target_id"], False),
        ("audit_logs", "ix_audit_logs_action_created_at", ["action", "created_at"], False),
        ("audit_logs", "ix_audit_logs_actor_created_at", ["actor_id", "created_at"], False),
    ]
    for table_name, index_name, columns, unique in indexes:
        if not _index_exists(inspector, table_name, index_name):
            op.create_index(index_name, table_name, columns, unique=unique)


def downgrade() -> None:
    for table_name in (
        "audit_logs",
        "serial_movements",
        "serials",
        "bills",
        "parts",
        "customers",
        "suppliers",
    ):
        op.drop_table(table_name)
