"""
Text templates for the generated configuration artifacts.

Placeholders are filled by str.format, so literal braces are doubled. All
paths are substituted in forward-slash form.
"""

HTTPD_CONF = """\
# Generated by portable-stack. Changes are overwritten on the next install.
ServerRoot "{apache}"
Listen {app_port}
ServerName localhost:{app_port}

LoadModule actions_module modules/mod_actions.so
LoadModule alias_module modules/mod_alias.so
LoadModule authz_core_module modules/mod_authz_core.so
LoadModule authz_host_module modules/mod_authz_host.so
LoadModule dir_module modules/mod_dir.so
LoadModule env_module modules/mod_env.so
LoadModule headers_module modules/mod_headers.so
LoadModule log_config_module modules/mod_log_config.so
LoadModule mime_module modules/mod_mime.so
LoadModule rewrite_module modules/mod_rewrite.so
LoadModule setenvif_module modules/mod_setenvif.so

{php_block}
ServerAdmin admin@localhost
DocumentRoot "{document_root}"

<Directory />
    AllowOverride None
    Require all denied
</Directory>

<Directory "{document_root}">
    Options FollowSymLinks{exec_cgi}
    AllowOverride All
    Require all granted
</Directory>

DirectoryIndex index.php index.html

<Files ".ht*">
    Require all denied
</Files>

ErrorLog "{logs}/apache_error.log"
LogLevel warn
LogFormat "%h %l %u %t \\"%r\\" %>s %b" common
CustomLog "{logs}/apache_access.log" common

TypesConfig conf/mime.types
AddType application/x-compress .Z
AddType application/x-gzip .gz .tgz
"""

PHP_MODULE_BLOCK = """\
LoadModule php_module "{php}/{php_module}"
PHPIniDir "{php}"
<FilesMatch \\.php$>
    SetHandler application/x-httpd-php
</FilesMatch>
"""

PHP_FCGID_BLOCK = """\
LoadModule fcgid_module modules/mod_fcgid.so
FcgidInitialEnv PHPRC "{php}"
FcgidInitialEnv PHP_FCGI_MAX_REQUESTS 1000
FcgidIOTimeout 300
FcgidMaxRequestLen 104857600
<FilesMatch \\.php$>
    AddHandler fcgid-script .php
    FcgidWrapper "{php}/php-cgi.exe" .php
</FilesMatch>
"""

# The server refuses to start unless the first bytes are the section header.
MY_INI = """\
[mysqld]
basedir="{mariadb}"
datadir="{data}"
port={db_port}
bind-address=127.0.0.1
character-set-server=utf8mb4
collation-server=utf8mb4_unicode_ci
max_allowed_packet=64M
innodb_buffer_pool_size=128M
log-error="{logs}/mariadb_error.log"

[client]
port={db_port}
host=127.0.0.1
default-character-set=utf8mb4
"""

PHP_INI = """\
[PHP]
engine = On
short_open_tag = Off
memory_limit = 512M
max_execution_time = 120
post_max_size = 64M
upload_max_filesize = 64M
display_errors = Off
log_errors = On
error_log = "{logs}/php_error.log"
extension_dir = "{php}/ext"
upload_tmp_dir = "{tmp}"
sys_temp_dir = "{tmp}"
{extensions}

[Date]
date.timezone = UTC

[Session]
session.save_path = "{tmp}"
"""

ENV_FILE = """\
APP_NAME={app_name}
APP_ENV=local
APP_KEY={app_secret}
APP_DEBUG=false
APP_URL={app_url}

LOG_CHANNEL=stack
LOG_LEVEL=warning

DB_CONNECTION=mysql
DB_HOST=127.0.0.1
DB_PORT={db_port}
DB_DATABASE={db_name}
DB_USERNAME={db_user}
DB_PASSWORD={db_password}

SESSION_DRIVER=file
CACHE_STORE=file
"""

CREDENTIALS_SQL = """\
CREATE DATABASE IF NOT EXISTS {database} CHARACTER SET utf8mb4 COLLATE utf8mb4_unicode_ci;
{user_statements}
FLUSH PRIVILEGES;
"""

USER_STATEMENTS = """\
CREATE USER IF NOT EXISTS {account} IDENTIFIED BY {password};
ALTER USER {account} IDENTIFIED BY {password};
GRANT ALL PRIVILEGES ON {database}.* TO {account};"""
