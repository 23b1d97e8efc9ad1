conversations_sql = """
CREATE TABLE conversations (
    -- "{smaller user id}_{larger user id}" for new conversations
    id TEXT PRIMARY KEY,
    participants TEXT[] NOT NULL,
    participant_names JSONB NOT NULL DEFAULT '{}',
    last_message JSONB,
    created_at TIMESTAMPTZ DEFAULT now(),

    CONSTRAINT two_participants CHECK (cardinality(participants) = 2)
);

CREATE INDEX conversations_participants_idx ON conversations USING GIN (participants);
"""

messages_sql = """
CREATE TABLE messages (
    id TEXT PRIMARY KEY,
    -- the conversation this message belongs to
    parent_id TEXT NOT NULL REFERENCES conversations(id) ON DELETE CASCADE,
    sender_id TEXT NOT NULL,
    receiver_id TEXT NOT NULL,
    content TEXT NOT NULL,
    timestamp TIMESTAMPTZ NOT NULL,
    is_read BOOLEAN NOT NULL DEFAULT FALSE
);

CREATE INDEX messages_parent_timestamp_idx ON messages (parent_id, timestamp);
"""

realtime_sql = """
ALTER PUBLICATION supabase_realtime ADD TABLE conversations, messages;
"""
