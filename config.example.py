# config.example.py

"""
Documentation-only module (safe to commit).

The real configuration is loaded from environment variables (optionally via a local .env file).
Keep machine-specific paths in .env (local, gitignored).

This file exists to make the repo self-documenting even without opening .env.example.
"""

ENV_VARS = {
    # App / logging
    "TASKLOG_APP_NAME": "App display name (default: tasklog).",
    "TASKLOG_APP_TITLE": "Alternative name for TASKLOG_APP_NAME.",
    "TASKLOG_LOG_LEVEL": "Console logging level (default: INFO). The log file always gets DEBUG.",
    "TASKLOG_LOG_LEVELS": "Per-logger console levels as name=LEVEL pairs, comma separated "
                          "(e.g. tasklog.migration=DEBUG,tasklog.store=WARNING).",
    # Paths (gitignored)
    "TASKLOG_DATA_DIR": "Local data directory (default: .local/tasklog).",
    "TASKLOG_DB_PATH": "Store file (default: <data_dir>/tasklog.db).",
    "TASKLOG_IMAGES_DIR": "Task attachments (default: <data_dir>/images).",
    "TASKLOG_LEGACY_DIR": "Where older projects.json/modules.json/tasks.json/.config/config.json "
                          "are looked for on startup (default: <data_dir>).",
    "TASKLOG_LOG_DIR": "Directory for tasklog.log (default: <data_dir>).",
    # Startup
    "TASKLOG_MIGRATE_ON_STARTUP": "Import older data files on startup (true/false, default: true).",
}
