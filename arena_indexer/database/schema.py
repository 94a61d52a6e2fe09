"""PostgreSQL schema definition for the game read-model"""


def get_schema_sql() -> str:
    """
    Returns the complete SQL schema for the read-model database.

    Tables:
    - indexer_state: Singleton watermark row
    - games: Multiplayer games and their lifecycle state
    - players: Per-address aggregates (wagers, wins, winnings)
    - event_log: Append-only audit trail of every indexed event
    """
    return """
-- Indexer state: exactly one row, addressed by id = 1
CREATE TABLE IF NOT EXISTS indexer_state (
    id SMALLINT PRIMARY KEY DEFAULT 1,
    last_processed_version BIGINT NOT NULL DEFAULT 0,
    last_sync_at TIMESTAMP WITH TIME ZONE,
    CONSTRAINT indexer_state_singleton CHECK (id = 1),
    CONSTRAINT indexer_state_version_check CHECK (last_processed_version >= 0)
);

-- Games table: one row per on-chain game
CREATE TABLE IF NOT EXISTS games (
    id SERIAL PRIMARY KEY,
    game_id BIGINT NOT NULL UNIQUE,
    bet_amount NUMERIC(78, 0) NOT NULL,
    bet_tier SMALLINT NOT NULL,
    player1_address VARCHAR(66) NOT NULL,
    player2_address VARCHAR(66),
    state SMALLINT NOT NULL DEFAULT 0,
    winner_address VARCHAR(66),
    creation_tx_hash VARCHAR(66) NOT NULL,
    join_tx_hash VARCHAR(66),
    finish_tx_hash VARCHAR(66),
    created_at TIMESTAMP WITH TIME ZONE DEFAULT CURRENT_TIMESTAMP,
    joined_at TIMESTAMP WITH TIME ZONE,
    finished_at TIMESTAMP WITH TIME ZONE,
    player1_finished BOOLEAN NOT NULL DEFAULT FALSE,
    player2_finished BOOLEAN NOT NULL DEFAULT FALSE,
    CONSTRAINT games_state_check CHECK (state IN (0, 1, 2)),
    CONSTRAINT games_bet_tier_check CHECK (bet_tier IN (1, 2, 3, 4)),
    CONSTRAINT games_bet_amount_check CHECK (bet_amount >= 0)
);

-- Players table: running aggregates per wallet address
CREATE TABLE IF NOT EXISTS players (
    id SERIAL PRIMARY KEY,
    address VARCHAR(66) NOT NULL UNIQUE,
    games_played INTEGER NOT NULL DEFAULT 0,
    games_won INTEGER NOT NULL DEFAULT 0,
    total_wagered NUMERIC(78, 0) NOT NULL DEFAULT 0,
    total_winnings NUMERIC(78, 0) NOT NULL DEFAULT 0,
    created_at TIMESTAMP WITH TIME ZONE DEFAULT CURRENT_TIMESTAMP,
    last_active TIMESTAMP WITH TIME ZONE DEFAULT CURRENT_TIMESTAMP,
    CONSTRAINT players_counters_check CHECK (games_played >= 0 AND games_won >= 0),
    CONSTRAINT players_totals_check CHECK (total_wagered >= 0 AND total_winnings >= 0)
);

-- Event log: append-only; (transaction_hash, event_index) is the idempotency key
CREATE TABLE IF NOT EXISTS event_log (
    id BIGSERIAL PRIMARY KEY,
    event_type VARCHAR(100) NOT NULL,
    type_tag TEXT NOT NULL,
    game_id BIGINT,
    player_address VARCHAR(66),
    data JSONB NOT NULL DEFAULT '{}'::jsonb,
    transaction_hash VARCHAR(66) NOT NULL,
    transaction_version BIGINT NOT NULL,
    event_index INTEGER NOT NULL,
    created_at TIMESTAMP WITH TIME ZONE DEFAULT CURRENT_TIMESTAMP,
    CONSTRAINT event_log_event_unique UNIQUE (transaction_hash, event_index)
);

-- Indexes for lobby and leaderboard queries
CREATE INDEX IF NOT EXISTS idx_games_state_tier
    ON games(state, bet_tier, created_at DESC);

CREATE INDEX IF NOT EXISTS idx_games_player1
    ON games(player1_address, created_at DESC);

CREATE INDEX IF NOT EXISTS idx_games_player2
    ON games(player2_address, created_at DESC);

CREATE INDEX IF NOT EXISTS idx_games_finished
    ON games(finished_at DESC) WHERE state = 2;

CREATE INDEX IF NOT EXISTS idx_players_winnings
    ON players(total_winnings DESC);

CREATE INDEX IF NOT EXISTS idx_event_log_game
    ON event_log(game_id);

CREATE INDEX IF NOT EXISTS idx_event_log_player
    ON event_log(player_address);

CREATE INDEX IF NOT EXISTS idx_event_log_version
    ON event_log(transaction_version DESC);
"""
