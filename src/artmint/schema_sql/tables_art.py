"""CREATE TABLE statements for assets, provenance, and collections."""

ASSETS = """
CREATE TABLE assets (
    asset_id             UUID PRIMARY KEY DEFAULT gen_random_uuid(),
    title                VARCHAR(100) NOT NULL,
    description          TEXT,
    tags                 JSONB NOT NULL DEFAULT '[]'::jsonb,
    category             VARCHAR(50),
    file_name            VARCHAR(255) NOT NULL,
    content_type         VARCHAR(100),
    file_size            BIGINT,
    file_url             VARCHAR(500),
    cms_asset_uid        VARCHAR(255),
    artist_id            UUID NOT NULL REFERENCES users(user_id),
    price_cents          BIGINT
                         CONSTRAINT ck_assets_price_range
                         CHECK (price_cents IS NULL
                                OR (price_cents > 0 AND price_cents <= 100000000)),
    currency             VARCHAR(3) NOT NULL DEFAULT 'USD',
    status               VARCHAR(10) NOT NULL DEFAULT 'sale'
                         CONSTRAINT ck_assets_status
                         CHECK (status IN ('sale','resale','sold')),
    current_owner_id     UUID NOT NULL REFERENCES users(user_id),
    owner_transaction_id VARCHAR(64) NOT NULL DEFAULT 'CREATOR',
    version              INTEGER NOT NULL DEFAULT 0,
    created_at           TIMESTAMPTZ NOT NULL DEFAULT now(),
    updated_at           TIMESTAMPTZ NOT NULL DEFAULT now()
);
"""

OWNERSHIP_HISTORY = """
CREATE TABLE ownership_history (
    record_id       BIGSERIAL PRIMARY KEY,
    asset_id        UUID NOT NULL REFERENCES assets(asset_id),
    from_user_id    UUID REFERENCES users(user_id),
    to_user_id      UUID NOT NULL REFERENCES users(user_id),
    transfer_type   VARCHAR(20) NOT NULL
                    CONSTRAINT ck_ownership_transfer_type
                    CHECK (transfer_type IN ('creation','purchase')),
    transaction_id  VARCHAR(64) NOT NULL,
    payment_id      VARCHAR(255),
    price_cents     BIGINT,
    transferred_at  TIMESTAMPTZ NOT NULL DEFAULT now()
);
"""

USER_ASSETS = """
CREATE TABLE user_assets (
    entry_id        BIGSERIAL PRIMARY KEY,
    user_id         UUID NOT NULL REFERENCES users(user_id),
    asset_id        UUID NOT NULL REFERENCES assets(asset_id),
    transaction_id  VARCHAR(64) NOT NULL,
    purchase_date   TIMESTAMPTZ NOT NULL DEFAULT now(),
    price_cents     BIGINT,
    currency        VARCHAR(3) NOT NULL DEFAULT 'USD',
    added_at        TIMESTAMPTZ NOT NULL DEFAULT now(),
    CONSTRAINT uq_user_assets_user_asset UNIQUE (user_id, asset_id)
);
"""

ALL = [
    ASSETS,
    OWNERSHIP_HISTORY,
    USER_ASSETS,
]
