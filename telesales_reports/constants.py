"""Constants and enumerations for telesales report generation."""

from enum import StrEnum
from typing import Final


# Store API Configuration
DEFAULT_STORE_BASE_URL: Final[str] = "http://localhost:54321"
STORE_REST_PREFIX: Final[str] = "/rest/v1"
PROFILES_TABLE: Final[str] = "profiles_public"

# Default Values
DEFAULT_PAGE_LIMIT: Final[int] = 1000
DEFAULT_MAX_PAGES: Final[int] = 50
DEFAULT_TABLE_PAGE_SIZE: Final[int] = 10
DEFAULT_OUTPUT_DIR: Final[str] = "output"
DEFAULT_PRESETS_FILE: Final[str] = "presets.json"
DEFAULT_STATE_FILE: Final[str] = "streak_state.json"
DEFAULT_PRESETS_STORAGE_KEY: Final[str] = "report-filter-presets"
PREVIEW_ROW_LIMIT: Final[int] = 100

# Filter sentinel meaning "do not filter on this dimension"
ALL_FILTER_VALUE: Final[str] = "all"

# Fallback buckets
UNCLASSIFIED_STATUS_BUCKET: Final[str] = "unclassified"
MISSING_DIMENSION_LABEL: Final[str] = "Unknown"
OFF_HOURS_BUCKET: Final[str] = "off_hours"

# Hours of day shown in the hourly call matrix (8 AM to 8 PM)
WORKING_HOURS: Final[tuple[int, ...]] = tuple(range(8, 21))

# Formatting
DISPLAY_DATE_FORMAT: Final[str] = "%d/%m/%Y"
QUERY_DATE_FORMAT: Final[str] = "%Y-%m-%d"
FILENAME_DATE_FORMAT: Final[str] = "%Y-%m-%d"
GENERATED_AT_FORMAT: Final[str] = "%B %d, %Y %I:%M %p"
TOTALS_LABEL: Final[str] = "TOTAL"

# Share links
SHARE_LINK_PARAM: Final[str] = "presets"
PRESET_EXPORT_VERSION: Final[int] = 1
CUSTOM_PRESET_ID_PREFIX: Final[str] = "custom-"
CUSTOM_CATEGORY_ID_PREFIX: Final[str] = "category-"

# JSON Serialization
JSON_INDENT: Final[int] = 2

# Numeric Constants
EXIT_CODE_ERROR: Final[int] = 1
FIRST_PAGE: Final[int] = 1

BANK_GROUPS: Final[dict[str, tuple[str, ...]]] = {
    "group1": ("NBF", "UBL"),
    "group2": ("RAK", "Mashreq", "Wioriya"),
}
ALL_BANKS: Final[tuple[str, ...]] = BANK_GROUPS["group1"] + BANK_GROUPS["group2"]


class SortDirection(StrEnum):
    """Sort direction for tables and exports."""

    ASC = "asc"
    DESC = "desc"


class SubmissionStatus(StrEnum):
    """Bank submission outcomes recorded by the store."""

    APPROVED = "approved"
    REJECTED = "rejected"
    PENDING = "pending"


class FeedbackStatus(StrEnum):
    """Call feedback outcomes logged by agents."""

    INTERESTED = "interested"
    NOT_INTERESTED = "not_interested"
    NOT_ANSWERED = "not_answered"
    WRONG_NUMBER = "wrong_number"
    CALL_BACK = "call_back"


class ColumnTone(StrEnum):
    """Presentation tone applied to a whole export column."""

    NEUTRAL = "neutral"
    SUCCESS = "success"
    DANGER = "danger"
    WARNING = "warning"
    INFO = "info"


class ColumnKind(StrEnum):
    """Where a column takes its value from."""

    DIMENSION = "dimension"
    ATTRIBUTE = "attribute"
    COUNTER = "counter"
    METRIC = "metric"


class FilterDimension(StrEnum):
    """Dimension filters a ReportFilter can carry."""

    BANK = "bank"
    AGENT = "agent"
    TEAM = "team"
    STATUS = "status"
    SEVERITY = "severity"


class RecordKey(StrEnum):
    """Store record keys shared by several reports."""

    AGENT_ID = "agent_id"
    AGENT_NAME = "agent_name"
    TEAM_ID = "team_id"
    BANK_NAME = "bank_name"
    STATUS = "status"
    SUBMISSION_DATE = "submission_date"
    FEEDBACK_STATUS = "feedback_status"
    CALL_TIMESTAMP = "call_timestamp"
    CREATED_AT = "created_at"
    WHATSAPP_SENT = "whatsapp_sent"
    SEVERITY = "severity"


class PresetKey(StrEnum):
    """Serialized filter preset field names."""

    ID = "id"
    NAME = "name"
    TIME_PERIOD = "timePeriod"
    LEAD_STATUS = "leadStatus"
    CATEGORY = "category"
    CREATED_AT = "createdAt"
    USE_COUNT = "useCount"
    LAST_USED_AT = "lastUsedAt"


class PresetFileKey(StrEnum):
    """Top-level keys of an exported presets file."""

    VERSION = "version"
    EXPORTED_AT = "exportedAt"
    PRESETS = "presets"


class Role(StrEnum):
    """Application roles."""

    AGENT = "agent"
    SUPERVISOR = "supervisor"
    OPERATIONS_HEAD = "operations_head"
    ADMIN = "admin"
    SUPER_ADMIN = "super_admin"
    SALES_CONTROLLER = "sales_controller"


class LogMessage(StrEnum):
    """Log message templates."""

    FETCHING_PAGE = "Fetching {} page {}..."
    RETRIEVED_RECORDS = "Retrieved {} records (total: {})"
    MAX_PAGES_REACHED = "Reached maximum page limit of {}"
    AGGREGATED = "Aggregated {} events into {} summary rows"
    UNCLASSIFIED = "{} rows had no recognised {} and were counted as '{}'"
    MISSING_DIMENSION = "{} rows had no {} and were grouped under '{}'"
    NOTHING_TO_EXPORT = "Nothing to export: the report has no rows"
    EXPORTED = "Exported {} rows to {}"
    STALE_RESULT = "Discarding stale result for request {} (current: {})"
    SAVED_PRESETS = "Saved {} presets to {}"
    IMPORTED_PRESETS = "Imported {} presets, skipped {}"
    ERROR_OCCURRED = "Error occurred: {}"


class CliHelp(StrEnum):
    """CLI help messages."""

    APP = "Telesales report aggregation and export tool"
    PRESETS = "Manage saved report filter presets."
    REPORT = "Report to generate (see the 'reports' command)."
    INPUT = "Read events from a local .csv or .json file instead of the store."
    DATE = "Single day to report on (YYYY-MM-DD)."
    START = "First day of the reporting range (YYYY-MM-DD)."
    END = "Last day of the reporting range (YYYY-MM-DD)."
    BANK = "Only include this bank."
    AGENT = "Only include this agent id."
    TEAM = "Only include this team id."
    STATUS = "Only include this status."
    SORT = "Field to sort rows by."
    DESCENDING = "Sort in descending order."
    FORMAT = "Export format(s): csv, pdf."
    OUTPUT_DIR = "Directory the exported files are written to."
    API_URL = "Base URL of the data store REST API."
    API_KEY = "API key for the data store."
    PRESETS_FILE = "JSON file holding saved presets."
    VERBOSE = "Enable debug logging."
    PERIOD = "Named period: today, this_week, last_week, this_month, last_month, six_months, all_time."
    PRESET = "Apply a saved preset (its period and status) by id."
    SEVERITY = "Only include this alert severity."
    ROLE = "Role of the caller; limits the reports and data scope."
    USER_ID = "Agent id of the caller, used to scope agent-level roles."
    USER_TEAM = "Team id of the caller, used to scope team-level roles."
    PAGE = "Page to show."
    PAGE_SIZE = "Rows per page."
    CATEGORY = "Category id of the preset."
    PRESETS_OUTPUT = "File the exported presets are written to."
    PRESET_IDS = "Only share these preset ids."
    STREAK = "Show new login streak milestones and the end-of-day streak reminder."
    STREAK_DAYS = "Current login streak in days."
    LOGGED_IN_TODAY = "The user has already logged in today."
    DISMISS_REMINDER = "Dismiss the streak reminder for the rest of today."
    STATE_FILE = "JSON file holding milestone and reminder state."


class TimePeriod(StrEnum):
    """Named reporting periods a preset can carry."""

    TODAY = "today"
    THIS_WEEK = "this_week"
    LAST_WEEK = "last_week"
    THIS_MONTH = "this_month"
    LAST_MONTH = "last_month"
    SIX_MONTHS = "six_months"
    ALL_TIME = "all_time"
