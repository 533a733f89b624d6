"""
The Configuration Synthesizer.

Every artifact is rendered from one ParameterSet, so a port, path or
credential that appears in two files is the same value in both. Rendering is
pure (text in memory); writing goes through write_artifact, which never emits
a byte-order mark.
"""

import logging
import re
from pathlib import Path, PureWindowsPath
from typing import Dict, Sequence

from ..application.domain import ENV_UNSAFE_RE, ParameterSet
from ..application.exceptions import ConfigurationError

from . import templates

UTF8_BOM = b"\xef\xbb\xbf"

ACCELERATOR_MODULE = "mod_fcgid.so"
DEFAULT_PHP_MODULE = "php8apache2_4.dll"
PHP_EXTENSIONS = ("curl", "fileinfo", "mbstring", "mysqli", "openssl", "pdo_mysql", "zip")
DB_HOSTS = ("localhost", "127.0.0.1", "::1")

_SAFE_ENV_VALUE = re.compile(r"^[A-Za-z0-9_.:/@+=,-]*$")


def forward_slashes(path) -> str:
    """Renders a path the way Apache, MariaDB and PHP config grammars expect."""
    return PureWindowsPath(str(path)).as_posix()


def write_artifact(path: Path, text: str, encoding: str = "utf-8") -> Path:
    """
    Writes a text artifact without a byte-order mark.

    Args:
        path: Target file; parent directories are created.
        text: The rendered content.
        encoding: 'utf-8' (never with BOM) or 'ascii' for consumers that only
                  accept plain ASCII.

    Raises:
        ConfigurationError: If the encoding is unsupported or the text cannot
                            be represented in it.
    """

    if encoding not in ("utf-8", "ascii"):
        raise ConfigurationError(f"Unsupported artifact encoding '{encoding}'")
    text = text.lstrip("\ufeff")
    try:
        data = text.encode(encoding)
    except UnicodeEncodeError as e:
        raise ConfigurationError(
            f"{path.name} must be pure ASCII but contains {text[e.start:e.end]!r}"
        ) from e

    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(data)
    return path


def quote_env_value(value: str) -> str:
    """
    Quotes a .env value only when it holds characters dotenv parsers treat specially.

    Raises:
        ConfigurationError: If no quoting reads back as the same value.
    """
    if _SAFE_ENV_VALUE.match(value):
        return value
    if ENV_UNSAFE_RE.search(value):
        raise ConfigurationError(f"{value!r} cannot be written to a .env file verbatim")
    if "'" not in value:
        return f"'{value}'"
    return '"' + value.replace('"', '\\"') + '"'


def sql_string(value: str) -> str:
    return "'" + value.replace("\\", "\\\\").replace("'", "''") + "'"


def sql_identifier(value: str) -> str:
    return "`" + value.replace("`", "``") + "`"


def find_php_module(php_dir: Path) -> str:
    """Names the Apache handler DLL shipped with the runtime, if present."""
    modules = sorted(php_dir.glob("php*apache2_4.dll")) if php_dir.is_dir() else []
    return modules[0].name if modules else DEFAULT_PHP_MODULE


def _paths(params: ParameterSet) -> Dict[str, str]:
    layout = params.layout
    return {
        "apache": forward_slashes(layout.apache_dir),
        "php": forward_slashes(layout.php_dir),
        "mariadb": forward_slashes(layout.mariadb_dir),
        "data": forward_slashes(layout.data_dir),
        "document_root": forward_slashes(layout.document_root),
        "logs": forward_slashes(layout.logs_dir),
        "tmp": forward_slashes(layout.tmp_dir),
    }


def render_httpd_conf(params: ParameterSet) -> str:
    """
    Renders the web server config.

    The PHP wiring depends on whether the FastCGI module is on disk right now:
    with it, PHP runs through php-cgi.exe; without it, through the module DLL.
    """
    layout = params.layout
    paths = _paths(params)
    accelerated = (layout.apache_dir / "modules" / ACCELERATOR_MODULE).is_file()
    if accelerated:
        php_block = templates.PHP_FCGID_BLOCK.format(**paths)
    else:
        php_block = templates.PHP_MODULE_BLOCK.format(
            php_module=find_php_module(layout.php_dir), **paths
        )
    return templates.HTTPD_CONF.format(
        app_port=params.app_port,
        php_block=php_block,
        exec_cgi=" ExecCGI" if accelerated else "",
        **paths,
    )


def render_my_ini(params: ParameterSet) -> str:
    text = templates.MY_INI.format(db_port=params.db_port, **_paths(params))
    return text.lstrip()


def render_php_ini(params: ParameterSet, extensions: Sequence[str] = PHP_EXTENSIONS) -> str:
    return templates.PHP_INI.format(
        extensions="\n".join(f"extension={name}" for name in extensions),
        **_paths(params),
    )


def render_env(params: ParameterSet, app_name: str = "PortableStack") -> str:
    return templates.ENV_FILE.format(
        app_name=quote_env_value(app_name),
        app_secret=params.app_secret,
        app_url=params.app_url,
        db_port=params.db_port,
        db_name=params.db_name,
        db_user=params.db_user,
        db_password=quote_env_value(params.db_password),
    )


def render_credentials_sql(params: ParameterSet, hosts: Sequence[str] = DB_HOSTS) -> str:
    """Renders an idempotent script creating the database and its user."""
    database = sql_identifier(params.db_name)
    password = sql_string(params.db_password)
    statements = [
        templates.USER_STATEMENTS.format(
            account=f"{sql_string(params.db_user)}@{sql_string(host)}",
            password=password,
            database=database,
        )
        for host in hosts
    ]
    return templates.CREDENTIALS_SQL.format(
        database=database, user_statements="\n".join(statements)
    )


class ConfigurationSynthesizer:
    """Writes every file-based config artifact for one parameter set."""

    def __init__(self, params: ParameterSet, app_name: str = "PortableStack"):
        self.logger = logging.getLogger(self.__class__.__name__)
        self.params = params
        self.app_name = app_name

    def artifacts(self) -> Dict[Path, str]:
        """Renders all artifacts, keyed by their target path."""
        layout = self.params.layout
        return {
            layout.httpd_conf: render_httpd_conf(self.params),
            layout.my_ini: render_my_ini(self.params),
            layout.php_ini: render_php_ini(self.params),
            layout.env_file: render_env(self.params, self.app_name),
        }

    def write_all(self):
        """Renders and writes every artifact; returns the written paths."""
        written = []
        for path, text in self.artifacts().items():
            write_artifact(path, text)
            self.logger.info(f"Wrote {path}")
            written.append(path)
        for directory in (self.params.layout.logs_dir, self.params.layout.tmp_dir):
            directory.mkdir(parents=True, exist_ok=True)
        return written
