"""Configuration loader, validation and account registry."""

from pathlib import Path
from typing import Any, Optional
import logging
import os

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .models.transaction import AccountKind, AccountPair, MatchMode
from .utils.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

ENV_FINTOC_SECRET_TOKEN = "FINTOC_SECRET_TOKEN"
ENV_LUNCH_MONEY_API_TOKEN = "LUNCH_MONEY_API_TOKEN"


class TokensConfig(BaseModel):
    """API credentials."""

    model_config = ConfigDict(frozen=True)

    fintoc_secret_token: str = ""
    lunch_money_api_token: str = ""


class AccountConfig(BaseModel):
    """A single bank account and its ledger asset target."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    name: str
    fintoc_account_id: str
    lunch_money_asset_id: str
    account_type: AccountKind = Field(alias="type")
    skip_movements: bool = False

    @field_validator("lunch_money_asset_id", mode="before")
    @classmethod
    def _asset_id_as_text(cls, value: Any) -> Any:
        # YAML reads unquoted ids as integers
        if isinstance(value, int) and not isinstance(value, bool):
            return str(value)
        return value


class BankConfig(BaseModel):
    """A bank link and the accounts reachable through it."""

    model_config = ConfigDict(frozen=True)

    name: str
    link_token: str = ""
    accounts: list[AccountConfig] = Field(default_factory=list)


class SyncSettings(BaseModel):
    """Settings for a sync run."""

    model_config = ConfigDict(frozen=True)

    default_start_from: str = "30d"
    match_mode: MatchMode = MatchMode.AUTO
    concurrent: bool = False
    max_workers: Optional[int] = Field(default=None, ge=1)


class HttpConfig(BaseModel):
    """Settings shared by the HTTP clients."""

    model_config = ConfigDict(frozen=True)

    timeout: float = Field(default=30.0, gt=0)
    fintoc_base_url: str = "https://api.fintoc.com/v1"
    lunch_money_base_url: str = "https://dev.lunchmoney.app/v1"


class LoggingConfig(BaseModel):
    """Configuration for logging."""

    model_config = ConfigDict(frozen=True)

    level: str = "INFO"
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


class SyncConfig(BaseModel):
    """Main configuration model, built once per process and passed explicitly."""

    model_config = ConfigDict(frozen=True)

    tokens: TokensConfig = Field(default_factory=TokensConfig)
    banks: list[BankConfig] = Field(default_factory=list)
    sync_settings: SyncSettings = Field(default_factory=SyncSettings)
    http: HttpConfig = Field(default_factory=HttpConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    config_file_path: Optional[str] = None


def get_default_config() -> dict[str, Any]:
    """Return the default configuration as a dictionary."""
    return {
        "tokens": {
            "fintoc_secret_token": "",
            "lunch_money_api_token": "",
        },
        "banks": [],
        "sync_settings": {
            "default_start_from": "30d",
            "match_mode": "auto",
            "concurrent": False,
            "max_workers": None,
        },
        "http": {
            "timeout": 30.0,
            "fintoc_base_url": "https://api.fintoc.com/v1",
            "lunch_money_base_url": "https://dev.lunchmoney.app/v1",
        },
        "logging": {
            "level": "INFO",
            "format": "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        },
    }


def get_sample_config() -> dict[str, Any]:
    """Return the default configuration with one example bank filled in."""
    config_dict = get_default_config()
    config_dict["tokens"] = {
        "fintoc_secret_token": "sk_live_XXXXXXXX",
        "lunch_money_api_token": "XXXXXXXX",
    }
    config_dict["banks"] = [
        {
            "name": "My Bank",
            "link_token": "link_XXXXXXXX_token_XXXXXXXX",
            "accounts": [
                {
                    "name": "Checking",
                    "fintoc_account_id": "acc_XXXXXXXX",
                    "lunch_money_asset_id": "12345",
                    "type": "Checking",
                    "skip_movements": False,
                },
                {
                    "name": "Credit Card",
                    "fintoc_account_id": "acc_YYYYYYYY",
                    "lunch_money_asset_id": "67890",
                    "type": "Credit",
                    "skip_movements": True,
                },
            ],
        }
    ]
    return config_dict


def load_config(config_path: Optional[Path] = None) -> SyncConfig:
    """
    Load configuration from a YAML file or use defaults.

    Tokens found in the FINTOC_SECRET_TOKEN and LUNCH_MONEY_API_TOKEN
    environment variables take precedence over the file.

    Args:
        config_path: Path to YAML configuration file (optional)

    Returns:
        SyncConfig object with loaded or default settings

    Raises:
        ConfigurationError: If the file cannot be parsed or fails validation
    """
    config_dict = get_default_config()

    if config_path and config_path.exists():
        logger.info(f"Loading configuration from: {config_path}")
        try:
            with open(config_path, "r", encoding="utf-8") as f:
                user_config = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in {config_path}: {e}") from e

        if not isinstance(user_config, dict):
            raise ConfigurationError(f"{config_path} must contain a mapping at the top level")

        config_dict = _deep_merge(config_dict, user_config)
        config_dict["config_file_path"] = str(config_path)
    elif config_path:
        logger.warning(f"Configuration file not found: {config_path}; using defaults")
    else:
        logger.info("Using default configuration")

    _apply_env_overrides(config_dict)

    try:
        return SyncConfig(**config_dict)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid configuration: {e}") from e


def _apply_env_overrides(config_dict: dict[str, Any]) -> None:
    tokens = config_dict.setdefault("tokens", {})
    for env_name, key in (
        (ENV_FINTOC_SECRET_TOKEN, "fintoc_secret_token"),
        (ENV_LUNCH_MONEY_API_TOKEN, "lunch_money_api_token"),
    ):
        value = os.environ.get(env_name)
        if value:
            logger.debug(f"Using {key} from ${env_name}")
            tokens[key] = value


def _deep_merge(base: dict, override: dict) -> dict:
    """
    Deep merge two dictionaries.

    Args:
        base: Base dictionary
        override: Dictionary to merge on top

    Returns:
        Merged dictionary
    """
    result = base.copy()

    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value

    return result


def require_tokens(config: SyncConfig, fintoc: bool = True, lunch_money: bool = True) -> None:
    """
    Ensure the tokens a command needs are present.

    Raises:
        ConfigurationError: If a required token is empty
    """
    missing = []
    if fintoc and not config.tokens.fintoc_secret_token:
        missing.append(f"tokens.fintoc_secret_token (or ${ENV_FINTOC_SECRET_TOKEN})")
    if lunch_money and not config.tokens.lunch_money_api_token:
        missing.append(f"tokens.lunch_money_api_token (or ${ENV_LUNCH_MONEY_API_TOKEN})")
    if missing:
        raise ConfigurationError("Missing API token(s): " + ", ".join(missing))


def generate_default_config(output_path: Path) -> None:
    """
    Generate a sample configuration file.

    Args:
        output_path: Path to write the configuration file
    """
    config_dict = get_sample_config()

    yaml_content = """# Fintoc to Lunch Money sync configuration
# Account types: Checking, Savings, Credit
# match_mode: auto (external id, else date + amount), reference, fingerprint
# Tokens may also be supplied through $FINTOC_SECRET_TOKEN and $LUNCH_MONEY_API_TOKEN

"""
    yaml_content += yaml.dump(config_dict, default_flow_style=False, sort_keys=False)

    output_path.parent.mkdir(parents=True, exist_ok=True)
    with open(output_path, "w", encoding="utf-8") as f:
        f.write(yaml_content)

    logger.info(f"Generated configuration file: {output_path}")


class AccountRegistry:
    """
    Resolves the configured (bank, account) pairs to sync.

    Pairs are produced in configuration order. Selection by bank and account
    name is exact; an empty name selects everything at that level.
    """

    def __init__(self, config: SyncConfig):
        self.config = config

    @property
    def default_window(self) -> str:
        return self.config.sync_settings.default_start_from

    def banks(self, bank_name: str = "") -> list[BankConfig]:
        return [b for b in self.config.banks if not bank_name or b.name == bank_name]

    def pairs(self, bank_name: str = "", account_name: str = "") -> list[AccountPair]:
        """
        Return the account pairs in scope.

        Args:
            bank_name: Only pairs of this bank (empty for all)
            account_name: Only accounts with this name (empty for all)

        Returns:
            Ordered list of AccountPair
        """
        selected: list[AccountPair] = []
        for bank in self.banks(bank_name):
            for account in bank.accounts:
                if account_name and account.name != account_name:
                    continue
                selected.append(
                    AccountPair(
                        bank_name=bank.name,
                        account_name=account.name,
                        account_id=account.fintoc_account_id,
                        asset_id=account.lunch_money_asset_id,
                        kind=account.account_type,
                        link_token=bank.link_token,
                        skip_movements=account.skip_movements,
                    )
                )

        self._warn_shared_assets(selected)
        return selected

    @staticmethod
    def _warn_shared_assets(pairs: list[AccountPair]) -> None:
        seen: dict[str, AccountPair] = {}
        for pair in pairs:
            other = seen.get(pair.asset_id)
            if other is not None:
                logger.warning(
                    f"{pair.label} and {other.label} both target ledger asset {pair.asset_id}"
                )
            else:
                seen[pair.asset_id] = pair
