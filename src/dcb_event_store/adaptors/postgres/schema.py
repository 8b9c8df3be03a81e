POSTGRES_SCHEMA_DEF = """
    CREATE TABLE IF NOT EXISTS events
    (
        position BIGINT PRIMARY KEY,
        id       TEXT   NOT NULL,
        id_key   TEXT   NOT NULL,
        type     TEXT   NOT NULL,
        payload  JSONB  NOT NULL,
        tags     TEXT[] NOT NULL DEFAULT '{}'
    );
    CREATE UNIQUE INDEX IF NOT EXISTS idx_events_id_key ON events (id_key);
    CREATE INDEX IF NOT EXISTS idx_events_type ON events (type);
    CREATE INDEX IF NOT EXISTS idx_events_tags ON events USING GIN (tags);
"""
