"""CREATE TABLE statements for users, wallets, and the wallet ledger."""

USERS = """
CREATE TABLE users (
    user_id         UUID PRIMARY KEY DEFAULT gen_random_uuid(),
    email           VARCHAR(320) NOT NULL UNIQUE,
    display_name    VARCHAR(80)  NOT NULL,
    password_hash   VARCHAR(255) NOT NULL,
    role            VARCHAR(20)  NOT NULL DEFAULT 'buyer'
                    CONSTRAINT ck_users_role CHECK (role IN ('buyer','artist')),
    token_version   INTEGER NOT NULL DEFAULT 0,
    is_active       BOOLEAN NOT NULL DEFAULT TRUE,
    created_at      TIMESTAMPTZ NOT NULL DEFAULT now(),
    updated_at      TIMESTAMPTZ NOT NULL DEFAULT now()
);
"""

WALLETS = """
CREATE TABLE wallets (
    wallet_id      VARCHAR(80) PRIMARY KEY,
    user_id        UUID NOT NULL UNIQUE REFERENCES users(user_id),
    balance_cents  BIGINT NOT NULL DEFAULT 0,
    version        INTEGER NOT NULL DEFAULT 0,
    created_at     TIMESTAMPTZ NOT NULL DEFAULT now(),
    updated_at     TIMESTAMPTZ NOT NULL DEFAULT now()
);
"""

WALLET_TRANSACTIONS = """
CREATE TABLE wallet_transactions (
    transaction_id VARCHAR(64) PRIMARY KEY,
    wallet_id      VARCHAR(80) NOT NULL
                   REFERENCES wallets(wallet_id) ON DELETE CASCADE,
    txn_type       VARCHAR(10) NOT NULL
                   CONSTRAINT ck_wallet_txn_type CHECK (txn_type IN ('DEBIT','CREDIT')),
    amount_cents   BIGINT NOT NULL
                   CONSTRAINT ck_wallet_txn_amount_positive CHECK (amount_cents > 0),
    asset_id       UUID REFERENCES assets(asset_id),
    payment_id     VARCHAR(255) UNIQUE,
    description    VARCHAR(255),
    created_at     TIMESTAMPTZ NOT NULL DEFAULT now()
);
"""

# wallet_transactions references assets, so it is created after tables_art
ALL = [
    USERS,
    WALLETS,
]

LEDGER = [WALLET_TRANSACTIONS]
