"""Configuration loading for the Microsub server."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, FrozenSet, List, Optional
from xml.etree import ElementTree as ET

from .models import FeedConfig

logger = logging.getLogger(__name__)

# Option values that name files and must resolve against the config file.
PATH_OPTIONS = ("feeds",)


@dataclass
class ServerConfig:
    host: str = "127.0.0.1"
    port: int = 8000
    endpoint_url: Optional[str] = None


@dataclass
class LoggingConfig:
    level: str = "INFO"
    file: Optional[str] = None


@dataclass
class DatabaseConfig:
    connection_string: Optional[str] = None


@dataclass
class AdapterConfig:
    type: str
    priority: Optional[int] = None
    options: Dict[str, str] = field(default_factory=dict)


@dataclass
class TokenConfig:
    value: str
    user_id: str
    scopes: FrozenSet[str] = frozenset()


@dataclass
class AppConfig:
    env_file: Optional[str] = None
    server: ServerConfig = field(default_factory=ServerConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    adapters: List[AdapterConfig] = field(default_factory=list)
    tokens: List[TokenConfig] = field(default_factory=list)


def parse_feeds_config(path: str) -> List[FeedConfig]:
    """Parse an OPML file and return feed definitions."""
    logger.info("Loading feed configuration from %s", path)
    tree = ET.parse(path)
    root = tree.getroot()
    body = root.find("body")
    feeds: List[FeedConfig] = []

    def walk(outline: ET.Element, current_category: Optional[str]) -> None:
        title = outline.attrib.get("title") or outline.attrib.get("text")
        feed_url = outline.attrib.get("xmlUrl")
        children = list(outline.findall("outline"))

        # Some exporters omit type="rss"; xmlUrl is what makes an outline a feed.
        if feed_url:
            feeds.append(
                FeedConfig(
                    category=current_category or title or "Uncategorized",
                    title=title or feed_url,
                    url=feed_url,
                )
            )
            logger.debug(
                "Registered feed '%s' (category='%s')", feed_url, feeds[-1].category
            )
            return

        next_category = title if title else current_category
        for child in children:
            walk(child, next_category)

    if body is None:
        raise ValueError(f"{path} is missing the <body> section.")

    for outline in body.findall("outline"):
        walk(outline, outline.attrib.get("title") or outline.attrib.get("text"))

    logger.info("Loaded %d feed endpoints from configuration", len(feeds))
    return feeds


def _resolve_path(base_path: Path, target_path: str) -> str:
    """Resolve a path relative to the base config file if it's not absolute."""
    target = Path(target_path)
    if target.is_absolute():
        return str(target)
    return str((base_path.parent / target).resolve())


def parse_env_config(path: str) -> Dict[str, str]:
    """Parse environment variables from XML."""
    env_vars = {}
    if not path:
        return env_vars

    logger.info("Loading environment configuration from %s", path)
    try:
        tree = ET.parse(path)
        root = tree.getroot()
        for var in root.findall("variable"):
            name = var.attrib.get("name")
            value = var.text
            if name and value:
                env_vars[name] = value.strip()
    except Exception as exc:
        logger.warning("Failed to load environment config: %s", exc)
        raise

    return env_vars


def _parse_adapter(node: ET.Element, config_path: Path) -> AdapterConfig:
    adapter_type = (node.attrib.get("type") or "").strip()
    if not adapter_type:
        raise ValueError("Adapter element must have a 'type' attribute.")

    priority = None
    raw_priority = node.attrib.get("priority")
    if raw_priority:
        try:
            priority = int(raw_priority)
        except ValueError:
            raise ValueError(
                f"Adapter '{adapter_type}' has a non-integer priority: {raw_priority}"
            ) from None

    options: Dict[str, str] = {}
    for child in node:
        if child.text is None:
            continue
        value = child.text.strip()
        if child.tag in PATH_OPTIONS:
            value = _resolve_path(config_path, value)
        options[child.tag] = value

    return AdapterConfig(type=adapter_type, priority=priority, options=options)


def _parse_token(node: ET.Element) -> TokenConfig:
    value = node.attrib.get("value")
    user_id = node.attrib.get("user")
    if not value or not user_id:
        raise ValueError("Token element must have 'value' and 'user' attributes.")
    scopes = frozenset(node.attrib.get("scope", "").split())
    return TokenConfig(value=value, user_id=user_id, scopes=scopes)


def parse_app_config(path: str) -> AppConfig:
    """Parse the main application configuration XML."""
    config_path = Path(path).resolve()
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    logger.info("Loading application configuration from %s", config_path)
    tree = ET.parse(config_path)
    root = tree.getroot()

    # Env
    env_node = root.find("env")
    env_file = (
        _resolve_path(config_path, env_node.text.strip())
        if env_node is not None and env_node.text
        else None
    )

    # Server
    server_node = root.find("server")
    server = ServerConfig()
    if server_node is not None:
        server.host = server_node.findtext("host", server.host).strip()
        server.port = int(server_node.findtext("port", str(server.port)))
        endpoint_url = server_node.findtext("endpoint-url")
        if endpoint_url:
            server.endpoint_url = endpoint_url.strip()

    # Logging
    log_node = root.find("logging")
    logging_config = LoggingConfig()
    if log_node is not None:
        logging_config.level = log_node.findtext("level", "INFO")
        log_file = log_node.findtext("file")
        if log_file:
            logging_config.file = _resolve_path(config_path, log_file)

    # Database
    db_node = root.find("database")
    db_config = DatabaseConfig()
    if db_node is not None:
        db_config.connection_string = db_node.findtext("connection-string")

    # Adapters
    adapters_node = root.find("adapters")
    adapters = []
    if adapters_node is not None:
        adapters = [
            _parse_adapter(node, config_path)
            for node in adapters_node.findall("adapter")
        ]
    if not adapters:
        raise ValueError("Config must declare at least one <adapter>.")

    # Tokens
    tokens_node = root.find("tokens")
    tokens = []
    if tokens_node is not None:
        tokens = [_parse_token(node) for node in tokens_node.findall("token")]

    return AppConfig(
        env_file=env_file,
        server=server,
        logging=logging_config,
        database=db_config,
        adapters=adapters,
        tokens=tokens,
    )
