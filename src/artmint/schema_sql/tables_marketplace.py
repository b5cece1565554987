"""CREATE TABLE statements for offers, settlements, and webhook bookkeeping."""

OFFERS = """
CREATE TABLE offers (
    offer_id      VARCHAR(64) PRIMARY KEY,
    asset_id      UUID NOT NULL REFERENCES assets(asset_id),
    buyer_id      UUID NOT NULL REFERENCES users(user_id),
    buyer_name    VARCHAR(80) NOT NULL DEFAULT 'Anonymous',
    amount_cents  BIGINT NOT NULL
                  CONSTRAINT ck_offers_amount_range
                  CHECK (amount_cents > 0 AND amount_cents <= 100000000),
    currency      VARCHAR(3) NOT NULL DEFAULT 'USD',
    message       TEXT,
    status        VARCHAR(20) NOT NULL DEFAULT 'pending'
                  CONSTRAINT ck_offers_status
                  CHECK (status IN ('pending','accepted','rejected','completed','expired')),
    accepted_by   UUID REFERENCES users(user_id),
    accepted_at   TIMESTAMPTZ,
    created_at    TIMESTAMPTZ NOT NULL DEFAULT now(),
    updated_at    TIMESTAMPTZ NOT NULL DEFAULT now()
);
"""

SETTLEMENTS = """
CREATE TABLE settlements (
    payment_id      VARCHAR(255) PRIMARY KEY,
    session_id      VARCHAR(255) NOT NULL,
    asset_id        UUID NOT NULL REFERENCES assets(asset_id),
    buyer_id        UUID NOT NULL REFERENCES users(user_id),
    wallet_id       VARCHAR(80) NOT NULL,
    amount_cents    BIGINT NOT NULL,
    currency        VARCHAR(3) NOT NULL,
    trigger         VARCHAR(20) NOT NULL
                    CONSTRAINT ck_settlements_trigger
                    CHECK (trigger IN ('webhook','fallback')),
    status          VARCHAR(20) NOT NULL DEFAULT 'processing'
                    CONSTRAINT ck_settlements_status
                    CHECK (status IN ('processing','completed','conflict')),
    transaction_id  VARCHAR(64),
    created_at      TIMESTAMPTZ NOT NULL DEFAULT now(),
    completed_at    TIMESTAMPTZ
);
"""

PROCESSED_WEBHOOKS = """
CREATE TABLE processed_webhooks (
    event_id     VARCHAR(255) PRIMARY KEY,
    event_type   VARCHAR(100) NOT NULL,
    processed_at TIMESTAMPTZ NOT NULL DEFAULT now()
);
"""

ALL = [
    OFFERS,
    SETTLEMENTS,
    PROCESSED_WEBHOOKS,
]
