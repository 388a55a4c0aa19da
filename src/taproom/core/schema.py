"""DDL for the taproom store.

Timestamps are integer milliseconds since the epoch (UTC). Quota days are
``YYYY-MM-DD`` strings so that month sums are simple range scans.
"""

BEERS_DDL = """
CREATE TABLE IF NOT EXISTS enriched_beers (
    id TEXT PRIMARY KEY,
    brew_name TEXT NOT NULL,
    brewer TEXT,
    abv REAL,
    confidence REAL DEFAULT 0.5,
    enrichment_source TEXT,
    brew_description TEXT,
    brew_description_cleaned TEXT,
    description_cleaned_at INTEGER,
    cleanup_source TEXT,
    enrichment_queued_at INTEGER,
    updated_at INTEGER NOT NULL DEFAULT (CAST(strftime('%s', 'now') AS INTEGER) * 1000)
);
CREATE INDEX IF NOT EXISTS idx_beers_needs_enrichment ON enriched_beers(abv) WHERE abv IS NULL;
CREATE INDEX IF NOT EXISTS idx_beers_brewer ON enriched_beers(brewer);
"""

QUOTA_DDL = """
CREATE TABLE IF NOT EXISTS quota_counters (
    pipeline TEXT NOT NULL,
    day TEXT NOT NULL,
    request_count INTEGER NOT NULL DEFAULT 0,
    last_updated INTEGER NOT NULL,
    PRIMARY KEY (pipeline, day)
);
"""

DLQ_DDL = """
CREATE TABLE IF NOT EXISTS dlq_messages (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    message_id TEXT NOT NULL UNIQUE,
    beer_id TEXT NOT NULL,
    beer_name TEXT,
    brewer TEXT,
    failed_at INTEGER NOT NULL,
    failure_count INTEGER NOT NULL DEFAULT 1,
    failure_reason TEXT,
    source_queue TEXT NOT NULL,
    status TEXT NOT NULL DEFAULT 'pending',
    replay_count INTEGER NOT NULL DEFAULT 0,
    replayed_at INTEGER,
    acknowledged_at INTEGER,
    raw_message TEXT
);
CREATE INDEX IF NOT EXISTS idx_dlq_status_failed_id ON dlq_messages(status, failed_at, id);
CREATE INDEX IF NOT EXISTS idx_dlq_beer_id ON dlq_messages(beer_id);
CREATE INDEX IF NOT EXISTS idx_dlq_acknowledged_at ON dlq_messages(acknowledged_at);
CREATE INDEX IF NOT EXISTS idx_dlq_replayed_at ON dlq_messages(replayed_at);
"""

ALL_DDL = (BEERS_DDL, QUOTA_DDL, DLQ_DDL)

TABLES = ("enriched_beers", "quota_counters", "dlq_messages")
