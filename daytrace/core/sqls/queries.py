"""
Database query statements
Contains all parameterised SELECT, INSERT, UPDATE and DELETE statements
"""

# Evidence queries
INSERT_LOCATION_SAMPLE = """
    INSERT INTO location_samples (
        user_id, timestamp, latitude, longitude, provider, activity,
        battery, is_mocked, speed, accuracy
    )
    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
"""

SELECT_LOCATION_SAMPLES = """
    SELECT timestamp, latitude, longitude, provider, activity,
           battery, is_mocked, speed, accuracy
    FROM location_samples
    WHERE user_id = ? AND timestamp >= ? AND timestamp < ?
    ORDER BY timestamp ASC
"""

INSERT_SCREEN_SESSION = """
    INSERT OR REPLACE INTO screen_sessions (
        id, user_id, app_id, display_name, start_time, end_time
    )
    VALUES (?, ?, ?, ?, ?, ?)
"""

SELECT_SCREEN_SESSIONS = """
    SELECT id, app_id, display_name, start_time, end_time
    FROM screen_sessions
    WHERE user_id = ? AND start_time < ? AND end_time > ?
    ORDER BY start_time ASC, app_id ASC
"""

INSERT_HEALTH_WORKOUT = """
    INSERT INTO health_workouts (user_id, activity_type, start_time, end_time)
    VALUES (?, ?, ?, ?)
"""

SELECT_HEALTH_WORKOUTS = """
    SELECT activity_type, start_time, end_time
    FROM health_workouts
    WHERE user_id = ? AND start_time < ? AND end_time > ?
    ORDER BY start_time ASC
"""

INSERT_USER_PLACE = """
    INSERT OR REPLACE INTO user_places (
        id, user_id, label, category, latitude, longitude, radius_meters
    )
    VALUES (?, ?, ?, ?, ?, ?, ?)
"""

SELECT_USER_PLACES = """
    SELECT id, label, category, latitude, longitude, radius_meters
    FROM user_places
    WHERE user_id = ?
    ORDER BY id ASC
"""

# Segment queries
DELETE_SEGMENTS_IN_RANGE = """
    DELETE FROM activity_segments
    WHERE user_id = ? AND start_time >= ? AND start_time < ?
"""

INSERT_SEGMENT = """
    INSERT OR REPLACE INTO activity_segments (
        id, user_id, start_time, end_time, hour_bucket, place_id,
        inferred_activity, data
    )
    VALUES (?, ?, ?, ?, ?, ?, ?, ?)
"""

SELECT_SEGMENTS_IN_RANGE = """
    SELECT data
    FROM activity_segments
    WHERE user_id = ? AND start_time >= ? AND start_time < ?
    ORDER BY start_time ASC
"""

# Summary queries
SELECT_SUMMARY = """
    SELECT data
    FROM hourly_summaries
    WHERE user_id = ? AND hour_start = ?
"""

UPSERT_SUMMARY = """
    INSERT INTO hourly_summaries (id, user_id, hour_start, local_date, data, locked_at)
    VALUES (?, ?, ?, ?, ?, ?)
    ON CONFLICT(user_id, hour_start) DO UPDATE SET
        local_date = excluded.local_date,
        data = excluded.data,
        locked_at = excluded.locked_at,
        updated_at = CURRENT_TIMESTAMP
    WHERE hourly_summaries.locked_at IS NULL
"""

UPDATE_SUMMARY_LOCK = """
    UPDATE hourly_summaries
    SET data = ?, locked_at = ?, updated_at = CURRENT_TIMESTAMP
    WHERE user_id = ? AND hour_start = ?
"""

SELECT_SUMMARIES_FOR_DATE = """
    SELECT data
    FROM hourly_summaries
    WHERE user_id = ? AND local_date = ?
    ORDER BY hour_start ASC
"""

# Event queries
SELECT_EVENTS_OVERLAPPING = """
    SELECT id, user_id, title, start_time, end_time, meta, locked_at
    FROM events
    WHERE user_id = ? AND start_time < ? AND end_time > ?
    ORDER BY start_time ASC, id ASC
"""

INSERT_EVENT = """
    INSERT OR REPLACE INTO events (
        id, user_id, title, start_time, end_time, source, kind, source_id, meta
    )
    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
"""

# Locked and user-owned rows are left untouched on id collision
INSERT_DERIVED_EVENT = """
    INSERT INTO events (
        id, user_id, title, start_time, end_time, source, kind, source_id, meta
    )
    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
    ON CONFLICT(id) DO UPDATE SET
        title = excluded.title,
        start_time = excluded.start_time,
        end_time = excluded.end_time,
        source = excluded.source,
        kind = excluded.kind,
        source_id = excluded.source_id,
        meta = excluded.meta,
        updated_at = CURRENT_TIMESTAMP
    WHERE events.user_id = excluded.user_id
      AND events.locked_at IS NULL
      AND events.source IN ('derived', 'system')
"""

UPDATE_EVENT = """
    UPDATE events
    SET title = ?, start_time = ?, end_time = ?, source = ?, kind = ?,
        source_id = ?, meta = ?, updated_at = CURRENT_TIMESTAMP
    WHERE id = ? AND user_id = ?
      AND locked_at IS NULL AND source IN ('derived', 'system')
"""

EXTEND_EVENT = """
    UPDATE events
    SET end_time = ?, updated_at = CURRENT_TIMESTAMP
    WHERE id = ? AND user_id = ?
      AND locked_at IS NULL AND source IN ('derived', 'system')
"""

DELETE_EVENT = """
    DELETE FROM events
    WHERE id = ? AND user_id = ?
      AND locked_at IS NULL AND source IN ('derived', 'system')
"""

LOCK_EVENT = """
    UPDATE events
    SET locked_at = ?, updated_at = CURRENT_TIMESTAMP
    WHERE id = ? AND user_id = ?
"""
