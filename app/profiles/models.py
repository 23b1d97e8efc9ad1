users_sql = """
CREATE TABLE users (
    id TEXT PRIMARY KEY,
    full_name TEXT NOT NULL,
    email TEXT NOT NULL,
    bio TEXT NOT NULL DEFAULT '',
    preferred_sports TEXT[] NOT NULL DEFAULT '{}',
    skill_level TEXT NOT NULL DEFAULT 'beginner',
    location JSONB NOT NULL,
    location_name TEXT NOT NULL DEFAULT '',

    -- session ids, hosted ones included
    session_history TEXT[] NOT NULL DEFAULT '{}',
    created_sessions TEXT[] NOT NULL DEFAULT '{}',

    availability TEXT NOT NULL DEFAULT '',
    profile_complete BOOLEAN NOT NULL DEFAULT FALSE,
    created_at TIMESTAMPTZ DEFAULT now()
);
"""
