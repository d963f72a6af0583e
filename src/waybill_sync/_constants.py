"""Internal constants shared across the library."""

from __future__ import annotations

# ------------------------------------------------------------------
# Application storage keys
# ------------------------------------------------------------------

WAYBILLS = "waybills"
EMPLOYEES = "employees"
VEHICLES = "vehicles"
ORGANIZATIONS = "organizations"
FUEL_TYPES = "fuelTypes"
SAVED_ROUTES = "savedRoutes"
GARAGE_STOCK_ITEMS = "garageStockItems"
STOCK_TRANSACTIONS = "stockTransactions"
WAYBILL_BLANK_BATCHES = "waybillBlankBatches"
WAYBILL_BLANKS = "waybillBlanks"
TIRES = "tires"
USERS = "users"
STORAGES = "storages"
CALENDAR_EVENTS = "calendarEvents"
FUEL_CARD_SCHEDULES = "fuelCardSchedules"
BUSINESS_AUDIT = "businessAudit"
PERIOD_LOCKS = "periodLocks"
BALANCE_SNAPSHOTS = "balanceSnapshots"
COUNTERS = "counters"

APP_SETTINGS = "appSettings"
SEASON_SETTINGS = "seasonSettings"
PRINT_POSITIONS = "printPositions_v4_layout"
PRINT_EDITOR_PREFS = "printEditorPrefs"
ROLE_POLICIES = "rolePolicies"
DB_SEEDED_FLAG = "db_clean_seeded_flag_v6"

# ------------------------------------------------------------------
# Interchange / audit bookkeeping keys
# ------------------------------------------------------------------

BACKUP_KEY = "__backup_before_import__"
LAST_IMPORT_META_KEY = "__last_import_meta__"
LAST_EXPORT_META_KEY = "__last_export_meta__"
CURRENT_USER_KEY = "__current_user__"

AUDIT_INDEX_KEY = "__import_audit_log__"
AUDIT_CHUNK_PREFIX = "__import_audit_chunk__:"
AUDIT_MAX_EVENTS = 50
AUDIT_CHUNK_SIZE = 256_000

UNKNOWN_STORAGE_PREFIX = "compat:unknown:"
INTERNAL_KEY_PREFIX = "__"

DEFAULT_APP_ID = "waybill-app"

KNOWN_KEYS: frozenset[str] = frozenset(
    {
        WAYBILLS,
        EMPLOYEES,
        VEHICLES,
        ORGANIZATIONS,
        FUEL_TYPES,
        SAVED_ROUTES,
        GARAGE_STOCK_ITEMS,
        STOCK_TRANSACTIONS,
        WAYBILL_BLANK_BATCHES,
        WAYBILL_BLANKS,
        TIRES,
        USERS,
        STORAGES,
        CALENDAR_EVENTS,
        FUEL_CARD_SCHEDULES,
        BUSINESS_AUDIT,
        PERIOD_LOCKS,
        BALANCE_SNAPSHOTS,
        COUNTERS,
        APP_SETTINGS,
        SEASON_SETTINGS,
        PRINT_POSITIONS,
        PRINT_EDITOR_PREFS,
        ROLE_POLICIES,
        DB_SEEDED_FLAG,
    }
)

# Keys an import may never touch, whatever the policy says.
KEY_BLOCKLIST: frozenset[str] = frozenset(
    {
        CURRENT_USER_KEY,
        BACKUP_KEY,
        LAST_IMPORT_META_KEY,
        LAST_EXPORT_META_KEY,
        AUDIT_INDEX_KEY,
        DB_SEEDED_FLAG,
    }
)

# Keys stored as a single JSON value rather than an entity collection.
SINGLETON_KEYS: frozenset[str] = frozenset(
    {
        APP_SETTINGS,
        SEASON_SETTINGS,
        PRINT_POSITIONS,
        PRINT_EDITOR_PREFS,
        ROLE_POLICIES,
        DB_SEEDED_FLAG,
        BACKUP_KEY,
        LAST_IMPORT_META_KEY,
        LAST_EXPORT_META_KEY,
        AUDIT_INDEX_KEY,
        "dashboard_filters_v1",
        "waybill_journal_settings_v3",
        "orgManagement_collapsedSections",
        "employeeList_collapsedSections",
        "vehicleList_collapsedSections",
        "waybillDetail_collapsedSections",
    }
)

# Old key name -> current key name, applied by the 1 -> 2 bundle migration.
KEY_ALIASES: dict[str, str] = {
    "printPositions_v2": PRINT_POSITIONS,
    "printPositions_v3_layout": PRINT_POSITIONS,
    "db_seeded_flag_v4": DB_SEEDED_FLAG,
    "employee": EMPLOYEES,
    "vehicle": VEHICLES,
    "organization": ORGANIZATIONS,
    "fuelType": FUEL_TYPES,
    "savedRoute": SAVED_ROUTES,
    "waybill": WAYBILLS,
    "user": USERS,
    "garageStockItem": GARAGE_STOCK_ITEMS,
    "stockTransaction": STOCK_TRANSACTIONS,
    "waybillBlankBatch": WAYBILL_BLANK_BATCHES,
    "waybillBlank": WAYBILL_BLANKS,
}

# Document statuses that count as finalized for period locking.
POSTED_STATUS = "Posted"
COMPLETED_STATUS = "Completed"
