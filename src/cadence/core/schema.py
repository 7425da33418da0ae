"""
Engine tables for the sqlite store.

Architecture:
    ::

        Table Registry (CORE_TABLES):
        ┌────────────────────────────────────────────────────────────┐
        │ rules            → automation_rules      (tenant config)   │
        │ events           → automation_events     (event log)       │
        │ executions       → automation_executions (append-only)     │
        │ user_directory   → user_directory        (tenant config)   │
        │ document_pushes  → document_pushes       (provenance)      │
        │ data_sources     → sync_data_sources     (tenant config)   │
        │ sync_runs        → sync_runs             (append-only)     │
        │ synced_records   → sync_records          (upsert by ext id)│
        │ stage_history    → sync_stage_history    (intervals)       │
        └────────────────────────────────────────────────────────────┘

    Two indexes carry invariants rather than speed:

    - ``automation_executions (rule_id, event_id, attempt)`` is unique, so
      two workers racing on the same (rule, event) cannot both claim it.
    - ``sync_stage_history (data_source_id, entity_id) WHERE exited_at IS
      NULL`` is unique, so an entity can never hold two open intervals.

Timestamps are stored as ISO 8601 UTC strings with microseconds, which
sort lexicographically in time order.
"""

CORE_TABLES = {
    "rules": "automation_rules",
    "events": "automation_events",
    "executions": "automation_executions",
    "user_directory": "user_directory",
    "document_pushes": "document_pushes",
    "data_sources": "sync_data_sources",
    "sync_runs": "sync_runs",
    "synced_records": "sync_records",
    "stage_history": "sync_stage_history",
}


CORE_DDL = {
    "rules": """
        CREATE TABLE IF NOT EXISTS automation_rules (
            id TEXT PRIMARY KEY,
            tenant_id TEXT NOT NULL,
            name TEXT NOT NULL DEFAULT '',
            trigger_event TEXT NOT NULL,
            trigger_conditions TEXT NOT NULL DEFAULT '{}',  -- JSON predicate map
            action_type TEXT NOT NULL,
            action_config TEXT NOT NULL DEFAULT '{}',       -- JSON, validated on save
            is_active INTEGER NOT NULL DEFAULT 1,
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL
        )
    """,
    "rules_idx_lookup": """
        CREATE INDEX IF NOT EXISTS idx_rules_lookup
        ON automation_rules(tenant_id, trigger_event) WHERE is_active = 1
    """,
    "events": """
        CREATE TABLE IF NOT EXISTS automation_events (
            id TEXT PRIMARY KEY,
            tenant_id TEXT,
            event_type TEXT NOT NULL,
            payload TEXT NOT NULL DEFAULT '{}',
            occurred_at TEXT NOT NULL,
            received_at TEXT NOT NULL
        )
    """,
    "executions": """
        CREATE TABLE IF NOT EXISTS automation_executions (
            id TEXT PRIMARY KEY,
            rule_id TEXT NOT NULL,
            tenant_id TEXT NOT NULL,
            event_id TEXT,                      -- NULL for manual test runs
            event_type TEXT NOT NULL,
            event_data TEXT NOT NULL DEFAULT '{}',
            status TEXT NOT NULL,
            result TEXT,
            error_message TEXT,
            retryable INTEGER NOT NULL DEFAULT 0,
            attempt INTEGER NOT NULL DEFAULT 1,
            is_test INTEGER NOT NULL DEFAULT 0,
            created_at TEXT NOT NULL,
            started_at TEXT,
            completed_at TEXT
        )
    """,
    "executions_idx_dedup": """
        CREATE UNIQUE INDEX IF NOT EXISTS idx_executions_dedup
        ON automation_executions(rule_id, event_id, attempt)
    """,
    "executions_idx_rule": """
        CREATE INDEX IF NOT EXISTS idx_executions_rule
        ON automation_executions(rule_id, created_at)
    """,
    "user_directory": """
        CREATE TABLE IF NOT EXISTS user_directory (
            tenant_id TEXT NOT NULL,
            profile_id TEXT NOT NULL,
            channel TEXT NOT NULL,
            external_user_id TEXT NOT NULL,
            PRIMARY KEY (tenant_id, profile_id, channel)
        )
    """,
    "document_pushes": """
        CREATE TABLE IF NOT EXISTS document_pushes (
            id TEXT PRIMARY KEY,
            tenant_id TEXT NOT NULL,
            profile_id TEXT NOT NULL,
            document_id TEXT NOT NULL,
            document_type TEXT NOT NULL,
            source_id TEXT,
            title TEXT NOT NULL,
            folder TEXT NOT NULL,
            status TEXT NOT NULL,
            pushed_at TEXT NOT NULL
        )
    """,
    "data_sources": """
        CREATE TABLE IF NOT EXISTS sync_data_sources (
            id TEXT PRIMARY KEY,
            tenant_id TEXT NOT NULL,
            provider TEXT NOT NULL,
            object_type TEXT NOT NULL,
            stage_field TEXT,
            sync_frequency TEXT NOT NULL,
            is_active INTEGER NOT NULL DEFAULT 1,
            next_scheduled_sync_at TEXT,        -- NULL = due now (if schedulable)
            last_sync_at TEXT,
            last_sync_status TEXT,
            last_sync_error TEXT,
            records_count INTEGER NOT NULL DEFAULT 0,
            settings TEXT NOT NULL DEFAULT '{}',
            created_at TEXT NOT NULL
        )
    """,
    "data_sources_idx_due": """
        CREATE INDEX IF NOT EXISTS idx_data_sources_due
        ON sync_data_sources(next_scheduled_sync_at)
        WHERE is_active = 1 AND sync_frequency != 'manual'
    """,
    "sync_runs": """
        CREATE TABLE IF NOT EXISTS sync_runs (
            id TEXT PRIMARY KEY,
            data_source_id TEXT NOT NULL,
            tenant_id TEXT NOT NULL,
            triggered_by TEXT NOT NULL,
            status TEXT NOT NULL,
            started_at TEXT NOT NULL,
            completed_at TEXT,
            duration_ms INTEGER,
            records_fetched INTEGER NOT NULL DEFAULT 0,
            records_processed INTEGER NOT NULL DEFAULT 0,
            records_created INTEGER NOT NULL DEFAULT 0,
            records_updated INTEGER NOT NULL DEFAULT 0,
            stage_changes INTEGER NOT NULL DEFAULT 0,
            error_message TEXT
        )
    """,
    "sync_runs_idx_source": """
        CREATE INDEX IF NOT EXISTS idx_sync_runs_source
        ON sync_runs(data_source_id, started_at)
    """,
    "synced_records": """
        CREATE TABLE IF NOT EXISTS sync_records (
            data_source_id TEXT NOT NULL,
            external_id TEXT NOT NULL,
            tenant_id TEXT NOT NULL,
            object_type TEXT NOT NULL,
            data TEXT NOT NULL DEFAULT '{}',
            synced_at TEXT NOT NULL,
            PRIMARY KEY (data_source_id, external_id)
        )
    """,
    "stage_history": """
        CREATE TABLE IF NOT EXISTS sync_stage_history (
            id TEXT PRIMARY KEY,
            data_source_id TEXT NOT NULL,
            tenant_id TEXT NOT NULL,
            entity_type TEXT NOT NULL,
            entity_id TEXT NOT NULL,
            from_stage TEXT,
            to_stage TEXT NOT NULL,
            entered_at TEXT NOT NULL,
            exited_at TEXT
        )
    """,
    "stage_history_idx_open": """
        CREATE UNIQUE INDEX IF NOT EXISTS idx_stage_history_open
        ON sync_stage_history(data_source_id, entity_id) WHERE exited_at IS NULL
    """,
}


def create_tables(conn) -> None:
    """
    Create all engine tables.

    Safe to call multiple times (CREATE IF NOT EXISTS).
    """
    for _name, ddl in CORE_DDL.items():
        conn.execute(ddl)
    conn.commit()
