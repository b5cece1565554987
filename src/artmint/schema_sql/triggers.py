"""Trigger functions and trigger DDL for the initial schema."""

# ---- Trigger functions ----

FN_RAISE_IMMUTABLE = """
CREATE OR REPLACE FUNCTION raise_immutable_error()
RETURNS TRIGGER AS $$
BEGIN
    RAISE EXCEPTION 'Rows in table % are immutable', TG_TABLE_NAME;
END;
$$ LANGUAGE plpgsql;
"""

FN_CHECK_IMMUTABLE_ASSET = """
CREATE OR REPLACE FUNCTION check_immutable_asset_fields()
RETURNS TRIGGER AS $$
BEGIN
    IF OLD.artist_id     IS DISTINCT FROM NEW.artist_id
    OR OLD.file_url      IS DISTINCT FROM NEW.file_url
    OR OLD.cms_asset_uid IS DISTINCT FROM NEW.cms_asset_uid
    OR OLD.created_at    IS DISTINCT FROM NEW.created_at
    THEN
        RAISE EXCEPTION 'Cannot modify immutable asset fields';
    END IF;
    RETURN NEW;
END;
$$ LANGUAGE plpgsql;
"""

FUNCTIONS_ALL = [
    FN_RAISE_IMMUTABLE,
    FN_CHECK_IMMUTABLE_ASSET,
]

# ---- Triggers ----

# Ledger rows may only disappear together with their wallet (account deletion)
TRIGGERS_ALL = [
    "CREATE TRIGGER trg_processed_webhooks_immutable "
    "BEFORE UPDATE OR DELETE ON processed_webhooks "
    "FOR EACH ROW EXECUTE FUNCTION raise_immutable_error();",

    "CREATE TRIGGER trg_wallet_transactions_immutable "
    "BEFORE UPDATE ON wallet_transactions "
    "FOR EACH ROW EXECUTE FUNCTION raise_immutable_error();",

    "CREATE TRIGGER trg_ownership_history_immutable "
    "BEFORE UPDATE OR DELETE ON ownership_history "
    "FOR EACH ROW EXECUTE FUNCTION raise_immutable_error();",

    "CREATE TRIGGER trg_asset_immutable_fields "
    "BEFORE UPDATE ON assets "
    "FOR EACH ROW EXECUTE FUNCTION check_immutable_asset_fields();",
]
