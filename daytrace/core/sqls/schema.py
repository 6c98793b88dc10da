"""
Database schema definitions
Contains all CREATE TABLE and CREATE INDEX statements
"""

# Evidence tables (written by collectors, read by the pipeline)
CREATE_LOCATION_SAMPLES_TABLE = """
    CREATE TABLE IF NOT EXISTS location_samples (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        user_id TEXT NOT NULL,
        timestamp TEXT NOT NULL,
        latitude REAL NOT NULL,
        longitude REAL NOT NULL,
        provider TEXT,
        activity TEXT,
        battery REAL,
        is_mocked INTEGER DEFAULT 0,
        speed REAL,
        accuracy REAL
    )
"""

CREATE_SCREEN_SESSIONS_TABLE = """
    CREATE TABLE IF NOT EXISTS screen_sessions (
        id TEXT PRIMARY KEY,
        user_id TEXT NOT NULL,
        app_id TEXT NOT NULL,
        display_name TEXT NOT NULL,
        start_time TEXT NOT NULL,
        end_time TEXT NOT NULL
    )
"""

CREATE_HEALTH_WORKOUTS_TABLE = """
    CREATE TABLE IF NOT EXISTS health_workouts (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        user_id TEXT NOT NULL,
        activity_type TEXT NOT NULL,
        start_time TEXT NOT NULL,
        end_time TEXT NOT NULL
    )
"""

CREATE_USER_PLACES_TABLE = """
    CREATE TABLE IF NOT EXISTS user_places (
        id TEXT PRIMARY KEY,
        user_id TEXT NOT NULL,
        label TEXT NOT NULL,
        category TEXT,
        latitude REAL NOT NULL,
        longitude REAL NOT NULL,
        radius_meters REAL
    )
"""

# Derived tables (written by the pipeline)
CREATE_ACTIVITY_SEGMENTS_TABLE = """
    CREATE TABLE IF NOT EXISTS activity_segments (
        id TEXT PRIMARY KEY,
        user_id TEXT NOT NULL,
        start_time TEXT NOT NULL,
        end_time TEXT NOT NULL,
        hour_bucket TEXT NOT NULL,
        place_id TEXT,
        inferred_activity TEXT NOT NULL,
        data TEXT NOT NULL,
        created_at TEXT DEFAULT CURRENT_TIMESTAMP
    )
"""

CREATE_HOURLY_SUMMARIES_TABLE = """
    CREATE TABLE IF NOT EXISTS hourly_summaries (
        id TEXT PRIMARY KEY,
        user_id TEXT NOT NULL,
        hour_start TEXT NOT NULL,
        local_date TEXT NOT NULL,
        data TEXT NOT NULL,
        locked_at TEXT,
        updated_at TEXT DEFAULT CURRENT_TIMESTAMP,
        UNIQUE (user_id, hour_start)
    )
"""

CREATE_EVENTS_TABLE = """
    CREATE TABLE IF NOT EXISTS events (
        id TEXT PRIMARY KEY,
        user_id TEXT NOT NULL,
        title TEXT NOT NULL,
        start_time TEXT NOT NULL,
        end_time TEXT NOT NULL,
        source TEXT NOT NULL,
        kind TEXT NOT NULL,
        source_id TEXT,
        meta TEXT NOT NULL,
        locked_at TEXT,
        created_at TEXT DEFAULT CURRENT_TIMESTAMP,
        updated_at TEXT DEFAULT CURRENT_TIMESTAMP
    )
"""

# Index creation statements
CREATE_LOCATION_SAMPLES_USER_TIME_INDEX = """
    CREATE INDEX IF NOT EXISTS idx_location_samples_user_time
    ON location_samples(user_id, timestamp)
"""

CREATE_SCREEN_SESSIONS_USER_TIME_INDEX = """
    CREATE INDEX IF NOT EXISTS idx_screen_sessions_user_time
    ON screen_sessions(user_id, start_time)
"""

CREATE_HEALTH_WORKOUTS_USER_TIME_INDEX = """
    CREATE INDEX IF NOT EXISTS idx_health_workouts_user_time
    ON health_workouts(user_id, start_time)
"""

CREATE_ACTIVITY_SEGMENTS_USER_TIME_INDEX = """
    CREATE INDEX IF NOT EXISTS idx_activity_segments_user_time
    ON activity_segments(user_id, start_time)
"""

CREATE_EVENTS_USER_TIME_INDEX = """
    CREATE INDEX IF NOT EXISTS idx_events_user_time
    ON events(user_id, start_time)
"""

CREATE_EVENTS_SOURCE_ID_INDEX = """
    CREATE INDEX IF NOT EXISTS idx_events_source_id
    ON events(user_id, source_id)
"""

ALL_TABLES = [
    CREATE_LOCATION_SAMPLES_TABLE,
    CREATE_SCREEN_SESSIONS_TABLE,
    CREATE_HEALTH_WORKOUTS_TABLE,
    CREATE_USER_PLACES_TABLE,
    CREATE_ACTIVITY_SEGMENTS_TABLE,
    CREATE_HOURLY_SUMMARIES_TABLE,
    CREATE_EVENTS_TABLE,
]

ALL_INDEXES = [
    CREATE_LOCATION_SAMPLES_USER_TIME_INDEX,
    CREATE_SCREEN_SESSIONS_USER_TIME_INDEX,
    CREATE_HEALTH_WORKOUTS_USER_TIME_INDEX,
    CREATE_ACTIVITY_SEGMENTS_USER_TIME_INDEX,
    CREATE_EVENTS_USER_TIME_INDEX,
    CREATE_EVENTS_SOURCE_ID_INDEX,
]
