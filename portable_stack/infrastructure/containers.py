"""
Dependency Injection container for the portable_stack component.

This container uses the `dependency-injector` library to wire together all
the components of the application, such as services and infrastructure adapters,
based on the application's configuration and command-line arguments.
"""

import functools
from datetime import timedelta
from pathlib import Path
from typing import Dict, List

from dependency_injector import containers, providers
from dotenv import dotenv_values
import httpx

from ..application.acquisition import FallbackOrchestrator
from ..application.discovery import SourceDiscoverer
from ..application.domain import (
    APP_SECRET_PREFIX,
    Component,
    DiscoveryStrategy,
    DownloadStatistics,
    ParameterSet,
    StackLayout,
)
from ..application.exceptions import ConfigurationError
from ..application.service import ComponentPipeline, InstallerService
from ..settings import settings

from .archives import ArchiveNormalizer
from .config_writer import ConfigurationSynthesizer
from .database import DatabaseBootstrapper, TemporaryDatabaseServer
from .downloader import HttpDownloader
from .hashing import Sha256Hasher
from .location_cache import JsonLocationCache
from .manual import default_watch_dir
from .processes import AsyncProcessRunner
from .prober import HttpProber
from .sources import STRATEGIES


def _pick(cli_args: dict, stack, name: str):
    value = (cli_args or {}).get(name)
    return value if value is not None else stack[name]


def existing_app_secret(layout: StackLayout):
    """Returns the APP_KEY of an already generated environment file, if any."""
    if not layout.env_file.is_file():
        return None
    secret = dotenv_values(layout.env_file).get("APP_KEY")
    if secret and secret.startswith(APP_SECRET_PREFIX):
        return secret
    return None


def build_parameter_set(cli_args: dict, config) -> ParameterSet:
    """Merges command-line values over the [stack] defaults, once per run."""
    stack = config.stack
    root = Path(_pick(cli_args, stack, "root"))
    return ParameterSet.create(
        root=root,
        app_port=_pick(cli_args, stack, "app_port"),
        db_port=_pick(cli_args, stack, "db_port"),
        db_name=_pick(cli_args, stack, "db_name"),
        db_user=_pick(cli_args, stack, "db_user"),
        db_password=_pick(cli_args, stack, "db_password"),
        app_secret=existing_app_secret(StackLayout(root)),
    )


def build_components(sections) -> List[Component]:
    """Turns the [components.*] tables into Component values, in file order."""
    components = []
    for key, section in sections.items():
        key = key.lower()
        fallback_urls = tuple(section.get("fallback_urls", ()))
        if not fallback_urls:
            raise ConfigurationError(f"Component '{key}' needs at least one fallback URL")
        components.append(
            Component(
                key=key,
                name=section.name,
                marker=section.marker,
                min_size=int(section.min_size),
                page_url=section.page_url,
                manual_pattern=section.manual_pattern,
                strip=bool(section.get("strip", False)),
                fallback_urls=fallback_urls,
            )
        )
    return components


def build_strategies(
    client: httpx.AsyncClient, user_agent: str, timeout: float, sections
) -> Dict[str, DiscoveryStrategy]:
    """Instantiates the discovery strategy of every component that has a [source]."""
    strategies = {}
    for key, section in sections.items():
        key = key.lower()
        source = section.get("source")
        if not source:
            continue
        if key not in STRATEGIES:
            raise ConfigurationError(f"No discovery strategy exists for '{key}'")
        strategies[key] = STRATEGIES[key](
            client, user_agent, timeout, **{k.lower(): v for k, v in source.items()}
        )
    return strategies


def resolve_watch_dir(configured: str) -> Path:
    return Path(configured).expanduser() if configured else default_watch_dir()


def cache_path(layout: StackLayout, file_name: str) -> Path:
    return layout.downloads_dir / file_name


class Container(containers.DeclarativeContainer):
    """DI container for wiring the application components."""

    cli_args = providers.Configuration()

    config = providers.Object(settings)

    http_client = providers.Singleton(httpx.AsyncClient)

    statistics = providers.Singleton(DownloadStatistics)

    runner = providers.Singleton(AsyncProcessRunner)

    parameters = providers.Singleton(
        build_parameter_set,
        cli_args=cli_args,
        config=config,
    )

    layout = parameters.provided.layout

    components = providers.Singleton(
        build_components,
        sections=config().components,
    )

    location_cache = providers.Singleton(
        JsonLocationCache,
        path=providers.Callable(
            cache_path, layout=layout, file_name=config().cache.file_name
        ),
        max_age=providers.Callable(timedelta, hours=config().cache.max_age_hours),
        bypass=cli_args.no_cache,
    )

    prober = providers.Factory(
        HttpProber,
        client=http_client,
        user_agent=config().http.user_agent,
        timeout=config().http.probe_timeout,
    )

    downloader = providers.Factory(
        HttpDownloader,
        client=http_client,
        user_agent=config().http.user_agent,
        timeout=config().http.download_timeout,
        chunk_size=config().http.chunk_size,
        statistics=statistics,
        attempts=config().download.attempts,
        retry_delay=config().download.retry_delay,
        show_progress=config().http.show_progress,
    )

    hasher = providers.Factory(
        Sha256Hasher,
        chunk_size=config().download.hasher_chunk_size,
    )

    strategies = providers.Singleton(
        build_strategies,
        client=http_client,
        user_agent=config().http.user_agent,
        timeout=config().http.discovery_timeout,
        sections=config().components,
    )

    discoverer = providers.Factory(
        SourceDiscoverer,
        strategies=strategies,
        cache=location_cache,
        prober=prober,
    )

    orchestrator = providers.Factory(
        FallbackOrchestrator,
        prober=prober,
        downloader=downloader,
        hasher=hasher,
        downloads_dir=parameters.provided.layout.downloads_dir,
        watch_dir=providers.Callable(resolve_watch_dir, config().manual.watch_dir),
    )

    extractor = providers.Factory(
        ArchiveNormalizer,
        runner=runner,
        sfx_timeout=config().process.extract_timeout,
    )

    # Replaced by the command-line front end with interactive handlers.
    intervention_handler = providers.Object(None)
    failure_handler = providers.Object(None)

    pipeline = providers.Factory(
        ComponentPipeline,
        discoverer=discoverer,
        orchestrator=orchestrator,
        extractor=extractor,
        layout=layout,
        intervention_handler=intervention_handler,
    )

    synthesizer = providers.Factory(
        ConfigurationSynthesizer,
        params=parameters,
        app_name=config().stack.app_name,
    )

    bootstrapper = providers.Factory(
        DatabaseBootstrapper,
        runner=runner,
        params=parameters,
        init_timeout=config().process.db_init_timeout,
        client_timeout=config().process.db_client_timeout,
    )

    server_factory = providers.Object(
        functools.partial(
            TemporaryDatabaseServer,
            start_timeout=config().process.db_start_timeout,
        )
    )

    installer_service = providers.Factory(
        InstallerService,
        pipeline=pipeline,
        components=components,
        synthesizer=synthesizer,
        bootstrapper=bootstrapper,
        server_factory=server_factory,
        statistics=statistics,
        failure_handler=failure_handler,
    )
