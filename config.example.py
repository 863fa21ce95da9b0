# config.example.py

"""
Documentation-only module (safe to commit).

The real configuration is loaded from environment variables (optionally via a local .env file).
Do NOT commit real secrets. Use .env (local, gitignored).

This file exists to make the repo self-documenting even without opening .env.example.
"""

ENV_VARS = {
    # App / logging
    "CLASSSYNC_APP_NAME": "App display name (default: ClassSync).",
    "CLASSSYNC_LOG_LEVEL": "Console logging level (default: INFO).",
    # Supabase
    "CLASSSYNC_SUPABASE_URL": "Supabase project URL (SUPABASE_URL also accepted). Missing => setup required.",
    "CLASSSYNC_SUPABASE_ANON_KEY": "Supabase anon key (SUPABASE_ANON_KEY also accepted).",
    # Paths (gitignored)
    "CLASSSYNC_DATA_DIR": "Local data directory (default: .local/classsync).",
    "CLASSSYNC_DEVICE_STORE_PATH": "On-device SQLite store (default: <data_dir>/device.sqlite3).",
    # Assignment engine
    "CLASSSYNC_UNDO_WINDOW_SECONDS": "How long a completion can be undone (default: 5).",
    "CLASSSYNC_DEFAULT_DUE_TIME": "Due time assumed when an assignment has none (default: 23:59).",
    "CLASSSYNC_WRITE_FAILURE_POLICY": "retain (keep optimistic state) | rollback (default: retain).",
}
