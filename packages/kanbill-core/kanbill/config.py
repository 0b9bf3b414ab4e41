"""
Kanbill Configuration

Loads settings from ~/.kanbill/config.yaml with environment variable overrides.
Supports SQLite, PostgreSQL (including a Supabase database URL) and the
Supabase REST API as task stores.
"""

from __future__ import annotations
from dataclasses import dataclass, field, asdict
from pathlib import Path
from typing import Optional, List, Tuple
import os
import logging

from kanbill.models.board import BUDGET, DEFAULT_COLUMNS, DONE, TODO

logger = logging.getLogger(__name__)

try:
    import yaml
    HAS_YAML = True
except ImportError:
    HAS_YAML = False

CONFIG_DIR = Path.home() / ".kanbill"
CONFIG_FILE = CONFIG_DIR / "config.yaml"


@dataclass
class DatabaseConfig:
    """Database configuration settings."""

    type: str = "sqlite"  # "sqlite" or "postgres"
    sqlite_path: str = "~/.kanbill/kanbill.db"
    postgres_url: Optional[str] = None


@dataclass
class SupabaseConfig:
    """Supabase REST settings. Used instead of the database when url and key are set."""

    url: Optional[str] = None
    key: Optional[str] = None
    table: str = "tasks"

    @property
    def enabled(self) -> bool:
        return bool(self.url and self.key)


@dataclass
class IdentityConfig:
    """Who owns the board."""

    user_id: Optional[str] = None
    name: Optional[str] = None
    email: Optional[str] = None


@dataclass
class BoardConfig:
    """Board layout and timing."""

    columns: List[Tuple[str, str]] = field(default_factory=lambda: list(DEFAULT_COLUMNS))
    intake_column: str = TODO
    done_column: str = DONE
    budget_column: str = BUDGET
    approve_column: str = TODO
    tick_interval: float = 1.0  # seconds
    recurrence_delay: float = 0.5  # seconds
    starter_tasks: bool = False

    @property
    def column_ids(self) -> List[str]:
        return [cid for cid, _ in self.columns]

    def validate(self) -> None:
        ids = self.column_ids
        for name in ("intake_column", "done_column", "approve_column", "budget_column"):
            if getattr(self, name) not in ids:
                raise ValueError(f"board.{name} '{getattr(self, name)}' is not a configured column")
        if self.tick_interval <= 0:
            raise ValueError("board.tick_interval must be positive")
        if self.recurrence_delay < 0:
            raise ValueError("board.recurrence_delay cannot be negative")


@dataclass
class BillingConfig:
    """Billing defaults."""

    hourly_rate: float = 150.0
    currency: str = "BRL"
    default_pix_key: Optional[str] = None


@dataclass
class KanbillConfig:
    """
    Complete Kanbill configuration.

    Loaded from ~/.kanbill/config.yaml with environment variable overrides.
    """

    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    supabase: SupabaseConfig = field(default_factory=SupabaseConfig)
    identity: IdentityConfig = field(default_factory=IdentityConfig)
    board: BoardConfig = field(default_factory=BoardConfig)
    billing: BillingConfig = field(default_factory=BillingConfig)

    @property
    def user_id(self) -> Optional[str]:
        return self.identity.user_id

    def to_dict(self) -> dict:
        """Convert to dictionary for display (masks secrets)."""
        result = asdict(self)

        if result.get("database", {}).get("postgres_url"):
            url = result["database"]["postgres_url"]
            result["database"]["postgres_url"] = url[:30] + "..." if len(url) > 30 else "***"

        if result.get("supabase", {}).get("key"):
            result["supabase"]["key"] = "***"

        return result


def _parse_database_config(data: dict) -> DatabaseConfig:
    """Parse database configuration from YAML data."""
    db_data = data.get("database", {})

    db_type = db_data.get("type", "sqlite")

    sqlite_config = db_data.get("sqlite", {})
    sqlite_path = sqlite_config.get("path", "~/.kanbill/kanbill.db")

    postgres_config = db_data.get("postgres", {})
    postgres_url = postgres_config.get("url")

    # Check for URL from environment variable reference
    url_env = postgres_config.get("url_env")
    if url_env and not postgres_url:
        postgres_url = os.environ.get(url_env)

    return DatabaseConfig(
        type=db_type,
        sqlite_path=sqlite_path,
        postgres_url=postgres_url,
    )


def _parse_supabase_config(data: dict) -> SupabaseConfig:
    """Parse Supabase REST configuration from YAML data."""
    sb_data = data.get("supabase", {})

    key = sb_data.get("key")
    key_env = sb_data.get("key_env")
    if key_env and not key:
        key = os.environ.get(key_env)

    return SupabaseConfig(
        url=sb_data.get("url"),
        key=key,
        table=sb_data.get("table", "tasks"),
    )


def _parse_identity_config(data: dict) -> IdentityConfig:
    identity_data = data.get("identity", {})

    return IdentityConfig(
        user_id=identity_data.get("user_id"),
        name=identity_data.get("name"),
        email=identity_data.get("email"),
    )


def _parse_board_config(data: dict) -> BoardConfig:
    """Parse board layout from YAML data.

    Columns are a list of ``{id, title}`` mappings or bare ids.
    """
    board_data = data.get("board", {})
    defaults = BoardConfig()

    columns = defaults.columns
    if board_data.get("columns"):
        columns = []
        for entry in board_data["columns"]:
            if isinstance(entry, dict):
                columns.append((entry["id"], entry.get("title", entry["id"])))
            else:
                columns.append((str(entry), str(entry).replace("-", " ").title()))

    return BoardConfig(
        columns=columns,
        intake_column=board_data.get("intake_column", defaults.intake_column),
        done_column=board_data.get("done_column", defaults.done_column),
        budget_column=board_data.get("budget_column", defaults.budget_column),
        approve_column=board_data.get("approve_column", defaults.approve_column),
        tick_interval=float(board_data.get("tick_interval", defaults.tick_interval)),
        recurrence_delay=float(board_data.get("recurrence_delay", defaults.recurrence_delay)),
        starter_tasks=bool(board_data.get("starter_tasks", defaults.starter_tasks)),
    )


def _parse_billing_config(data: dict) -> BillingConfig:
    billing_data = data.get("billing", {})

    return BillingConfig(
        hourly_rate=float(billing_data.get("hourly_rate", 150.0)),
        currency=billing_data.get("currency", "BRL"),
        default_pix_key=billing_data.get("default_pix_key"),
    )


def load_config(config_path: Optional[Path] = None) -> KanbillConfig:
    """
    Load configuration from file with environment variable overrides.

    Args:
        config_path: Optional path to config file. Defaults to ~/.kanbill/config.yaml

    Returns:
        KanbillConfig instance
    """
    config_file = config_path or CONFIG_FILE
    config = KanbillConfig()

    if HAS_YAML and config_file.exists():
        try:
            with open(config_file, 'r') as f:
                data = yaml.safe_load(f) or {}

            config.database = _parse_database_config(data)
            config.supabase = _parse_supabase_config(data)
            config.identity = _parse_identity_config(data)
            config.board = _parse_board_config(data)
            config.billing = _parse_billing_config(data)

        except yaml.YAMLError as e:
            logger.warning(f"Could not parse config file at {config_file}: {e}")
        except (KeyError, TypeError, ValueError) as e:
            logger.warning(f"Invalid config in {config_file}: {e}")

    # Environment variable overrides
    if os.environ.get("KANBILL_DATABASE_URL"):
        config.database.type = "postgres"
        config.database.postgres_url = os.environ["KANBILL_DATABASE_URL"]
    elif os.environ.get("SUPABASE_DB_URL"):
        config.database.type = "postgres"
        config.database.postgres_url = os.environ["SUPABASE_DB_URL"]

    if os.environ.get("SUPABASE_URL"):
        config.supabase.url = os.environ["SUPABASE_URL"]
    if os.environ.get("SUPABASE_ANON_KEY"):
        config.supabase.key = os.environ["SUPABASE_ANON_KEY"]

    if os.environ.get("KANBILL_USER_ID"):
        config.identity.user_id = os.environ["KANBILL_USER_ID"]

    if os.environ.get("KANBILL_INTAKE_COLUMN"):
        config.board.intake_column = os.environ["KANBILL_INTAKE_COLUMN"]

    return config


def save_config(config: KanbillConfig, config_path: Optional[Path] = None) -> None:
    """
    Save configuration to file.

    Secrets (database URL, Supabase key) are written only if set directly;
    prefer the environment for those.
    """
    if not HAS_YAML:
        raise RuntimeError("PyYAML not installed. Run: pip install pyyaml")

    config_file = config_path or CONFIG_FILE

    config_file.parent.mkdir(parents=True, exist_ok=True)

    data = {
        "database": {
            "type": config.database.type,
        },
        "identity": {},
        "board": {
            "columns": [{"id": cid, "title": title} for cid, title in config.board.columns],
            "intake_column": config.board.intake_column,
            "done_column": config.board.done_column,
            "budget_column": config.board.budget_column,
            "approve_column": config.board.approve_column,
            "tick_interval": config.board.tick_interval,
            "recurrence_delay": config.board.recurrence_delay,
            "starter_tasks": config.board.starter_tasks,
        },
        "billing": {
            "hourly_rate": config.billing.hourly_rate,
            "currency": config.billing.currency,
        },
    }

    if config.database.type == "sqlite":
        data["database"]["sqlite"] = {"path": config.database.sqlite_path}
    elif config.database.postgres_url:
        data["database"]["postgres"] = {"url": config.database.postgres_url}

    if config.supabase.url:
        data["supabase"] = {"url": config.supabase.url, "table": config.supabase.table}
        if config.supabase.key:
            data["supabase"]["key"] = config.supabase.key

    for key in ("user_id", "name", "email"):
        value = getattr(config.identity, key)
        if value:
            data["identity"][key] = value

    if config.billing.default_pix_key:
        data["billing"]["default_pix_key"] = config.billing.default_pix_key

    with open(config_file, 'w') as f:
        yaml.dump(data, f, default_flow_style=False, sort_keys=False)

    # Secure permissions (readable only by owner)
    config_file.chmod(0o600)

    logger.info(f"Configuration saved to {config_file}")


def ensure_config_dir() -> Path:
    """Ensure config directory exists and return its path."""
    CONFIG_DIR.mkdir(parents=True, exist_ok=True)
    return CONFIG_DIR


# Cached config instance
_config: Optional[KanbillConfig] = None


def get_config() -> KanbillConfig:
    """Get cached config instance, loading if needed."""
    global _config
    if _config is None:
        _config = load_config()
    return _config


def reload_config() -> KanbillConfig:
    """Force reload config from file."""
    global _config
    _config = load_config()
    return _config
