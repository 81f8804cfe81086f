"""High-level orchestration for the Microsub server."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Type

import uvicorn
from fastapi import FastAPI
from sqlalchemy.orm import Session, sessionmaker

from . import db
from .adapter import Adapter
from .adapters.opml import OPMLAdapter
from .adapters.subscriptions import SubscriptionAdapter
from .auth import Principal, TokenAuthorizer
from .config import AdapterConfig, TokenConfig
from .endpoint import Endpoint
from .models import AdapterInfo
from .registry import Registry
from .server import create_app

logger = logging.getLogger(__name__)

ADAPTER_CLASSES: Dict[str, Type[Adapter]] = {
    "opml": OPMLAdapter,
    "subscriptions": SubscriptionAdapter,
}


@dataclass
class RunConfig:
    """Runtime options for executing the application."""

    adapters: List[AdapterConfig]
    tokens: List[TokenConfig] = field(default_factory=list)
    host: str = "127.0.0.1"
    port: int = 8000
    endpoint_url: Optional[str] = None
    database_connection_string: Optional[str] = None
    log_level: str = "info"


def _int_option(options: Dict[str, str], name: str, default: int) -> int:
    raw = options.get(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"Adapter option '{name}' must be an integer: {raw}") from None


def _adapter_class(adapter_config: AdapterConfig) -> Type[Adapter]:
    adapter_class = ADAPTER_CLASSES.get(adapter_config.type)
    if adapter_class is None:
        raise ValueError(
            f"Unknown adapter type '{adapter_config.type}'. "
            f"Expected one of: {', '.join(ADAPTER_CLASSES)}"
        )
    return adapter_class


def _build_adapter(
    adapter_config: AdapterConfig,
    session_factory: Optional[sessionmaker[Session]],
) -> Adapter:
    adapter_class = _adapter_class(adapter_config)
    options = adapter_config.options
    kwargs: Dict[str, Any] = {"concurrency": _int_option(options, "concurrency", 10)}
    if adapter_config.priority is not None:
        kwargs["priority"] = adapter_config.priority

    if adapter_class is OPMLAdapter:
        feeds_file = options.get("feeds")
        if not feeds_file:
            raise ValueError("The opml adapter requires a <feeds> option.")
        if options.get("title"):
            kwargs["title"] = options["title"]
        return OPMLAdapter.from_file(feeds_file, **kwargs)

    if session_factory is None:
        raise ValueError(
            "The subscriptions adapter requires a database connection string."
        )
    return SubscriptionAdapter(session_factory, **kwargs)


def build_registry(config: RunConfig) -> Registry:
    """Instantiate the configured adapters and seal the registry."""
    session_factory: Optional[sessionmaker[Session]] = None
    if config.database_connection_string:
        engine = db.init_engine(config.database_connection_string)
        if engine:
            session_factory = db.get_session_factory(engine)

    registry = Registry()
    for adapter_config in config.adapters:
        registry.register(_build_adapter(adapter_config, session_factory))
    registry.seal()

    if not len(registry):
        raise RuntimeError("No adapters are configured.")
    return registry


def describe_adapters(config: RunConfig) -> List[AdapterInfo]:
    """Describe the configured adapters in fallback order without building them."""
    infos: List[AdapterInfo] = []
    for adapter_config in config.adapters:
        adapter_class = _adapter_class(adapter_config)
        if any(info.id == adapter_class.id for info in infos):
            raise ValueError(
                f"Adapter id '{adapter_class.id}' is already registered."
            )
        priority = adapter_config.priority
        if priority is None:
            priority = adapter_class.priority
        infos.append(
            AdapterInfo(id=adapter_class.id, name=adapter_class.name, priority=priority)
        )
    # Same order as the registry: priority, then configuration order.
    infos.sort(key=lambda info: info.priority)
    if not infos:
        raise RuntimeError("No adapters are configured.")
    return infos


def build_authorizer(tokens: List[TokenConfig]) -> TokenAuthorizer:
    if not tokens:
        logger.warning("No access tokens configured; every request will be rejected.")
    return TokenAuthorizer(
        {
            token.value: Principal(user_id=token.user_id, scopes=token.scopes)
            for token in tokens
        }
    )


def build_app(config: RunConfig) -> FastAPI:
    registry = build_registry(config)
    endpoint = Endpoint(registry)
    return create_app(endpoint, build_authorizer(config.tokens), config.endpoint_url)


def execute(config: RunConfig) -> None:
    """Build the application and serve it until interrupted."""
    app = build_app(config)
    logger.info("Serving Microsub endpoint on %s:%d", config.host, config.port)
    uvicorn.run(
        app,
        host=config.host,
        port=config.port,
        log_level=config.log_level.lower(),
        # Keep the handlers installed by configure_logging.
        log_config=None,
    )
