"""
Initializes the Dynaconf settings object for the portable_stack component.
This module is the single source of truth for all configuration.

Defaults ship in config/settings.toml. A settings.local.toml placed next to
it, a config/.secrets.toml, or PORTABLE_STACK_* environment variables
(e.g. PORTABLE_STACK_STACK__DB_PASSWORD) override them.
"""

from pathlib import Path
from dynaconf import Dynaconf

PACKAGE_ROOT = Path(__file__).parent

settings = Dynaconf(
    root_path=PACKAGE_ROOT,
    settings_files=["config/settings.toml"],
    secrets="config/.secrets.toml",
    envvar_prefix="PORTABLE_STACK",
    merge_enabled=True,
    environments=False,
    load_dotenv=False,
)
