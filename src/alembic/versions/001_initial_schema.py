"""Initial schema -- users, wallets, ledger, assets, offers, settlements, triggers.

Revision ID: 001_initial_schema
Revises:
Create Date: 2026-09-28
"""

from alembic import op

from artmint.schema_sql import (
    indexes,
    tables_art,
    tables_core,
    tables_marketplace,
    triggers,
)

revision = "001_initial_schema"
down_revision = None
branch_labels = None
depends_on = None


def _execute_all(statements: list[str]) -> None:
    """Execute a list of SQL statements sequentially."""
    for stmt in statements:
        op.execute(stmt)


def upgrade() -> None:
    _execute_all(tables_core.ALL)
    _execute_all(tables_art.ALL)
    _execute_all(tables_core.LEDGER)
    _execute_all(tables_marketplace.ALL)
    _execute_all(indexes.ALL)
    _execute_all(triggers.FUNCTIONS_ALL)
    _execute_all(triggers.TRIGGERS_ALL)


def downgrade() -> None:
    _drop_triggers()
    _drop_functions()
    _drop_tables()


def _drop_triggers() -> None:
    op.execute("DROP TRIGGER IF EXISTS trg_asset_immutable_fields ON assets;")
    op.execute(
        "DROP TRIGGER IF EXISTS trg_ownership_history_immutable "
        "ON ownership_history;"
    )
    op.execute(
        "DROP TRIGGER IF EXISTS trg_wallet_transactions_immutable "
        "ON wallet_transactions;"
    )
    op.execute(
        "DROP TRIGGER IF EXISTS trg_processed_webhooks_immutable "
        "ON processed_webhooks;"
    )


def _drop_functions() -> None:
    op.execute("DROP FUNCTION IF EXISTS check_immutable_asset_fields();")
    op.execute("DROP FUNCTION IF EXISTS raise_immutable_error();")


def _drop_tables() -> None:
    tables = [
        "processed_webhooks",
        "settlements",
        "offers",
        "wallet_transactions",
        "user_assets",
        "ownership_history",
        "assets",
        "wallets",
        "users",
    ]
    for table in tables:
        op.execute(f"DROP TABLE IF EXISTS {table} CASCADE;")
