sessions_sql = """
CREATE TABLE sessions (
    id TEXT PRIMARY KEY,
    host_id TEXT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
    title TEXT NOT NULL,
    sport TEXT NOT NULL,
    date_time TIMESTAMPTZ NOT NULL,
    location JSONB NOT NULL,
    address TEXT NOT NULL DEFAULT '',
    max_participants INTEGER NOT NULL,
    current_participants TEXT[] NOT NULL DEFAULT '{}',
    description TEXT NOT NULL DEFAULT '',
    is_private BOOLEAN NOT NULL DEFAULT FALSE,
    skill_level TEXT NOT NULL,
    venue_name TEXT,
    venue_category TEXT,
    created_at TIMESTAMPTZ DEFAULT now(),

    CONSTRAINT max_participants_range CHECK (max_participants BETWEEN 2 AND 30)
);

CREATE INDEX sessions_date_time_idx ON sessions (date_time);
"""
