"""All CREATE INDEX statements for the initial schema."""

ALL = [
    # wallet_transactions
    "CREATE INDEX idx_wallet_txn_wallet ON wallet_transactions(wallet_id, created_at);",
    # assets
    "CREATE INDEX idx_assets_owner ON assets(current_owner_id);",
    "CREATE INDEX idx_assets_artist ON assets(artist_id);",
    "CREATE INDEX idx_assets_listed ON assets(created_at DESC) "
    "WHERE status IN ('sale', 'resale');",
    # ownership_history
    "CREATE INDEX idx_ownership_asset ON ownership_history(asset_id, transferred_at);",
    # user_assets
    "CREATE INDEX idx_user_assets_user ON user_assets(user_id, added_at DESC);",
    # offers
    "CREATE INDEX idx_offers_pending ON offers(asset_id, amount_cents DESC) "
    "WHERE status = 'pending';",
    "CREATE INDEX idx_offers_buyer ON offers(buyer_id, asset_id);",
    "CREATE UNIQUE INDEX idx_one_accepted_offer_per_asset "
    "ON offers(asset_id) WHERE status = 'accepted';",
]
