"""Configuration loader for PlayCast."""

import os
from dataclasses import dataclass, field
from pathlib import Path

try:
    import tomllib
except ImportError:
    import tomli as tomllib  # Python 3.10 fallback

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)

DEFAULT_MIRRORS = {
    "innertube": [
        "https://www.youtube.com",
        "https://youtubei.googleapis.com",
    ],
    "invidious": [
        "https://inv.nadeko.net",
        "https://invidious.nerdvpn.de",
        "https://yewtu.be",
    ],
    "soundcloud": [
        "https://api-v2.soundcloud.com",
    ],
    "soundcloud_proxy": [],
}


@dataclass
class ServerConfig:
    """Configuration for the REST API server."""

    host: str = "0.0.0.0"
    port: int = 5050
    data_dir: str = ""
    db_file: str = ""

    def __post_init__(self):
        if not self.data_dir:
            self.data_dir = os.path.expanduser("~/.playcast")
        if not self.db_file:
            self.db_file = os.path.join(self.data_dir, "playcast.db")


@dataclass
class ResolverConfig:
    """Network behaviour of the provider resolver."""

    max_attempts: int = 3
    timeout: float = 10.0            # seconds, per attempt
    user_agent: str = DEFAULT_USER_AGENT
    search_limit: int = 20
    default_search_provider: str = "youtube"
    mirrors: dict[str, list[str]] = field(
        default_factory=lambda: {k: list(v) for k, v in DEFAULT_MIRRORS.items()}
    )


@dataclass
class SoundCloudConfig:
    """SoundCloud client id handling.

    The client id is normally scraped from soundcloud.com. When that fails,
    default_client_id is used; PLAYCAST_SOUNDCLOUD_CLIENT_ID overrides it.
    """

    default_client_id: str = ""
    client_id_ttl: int = 3600

    def __post_init__(self):
        env_id = os.environ.get("PLAYCAST_SOUNDCLOUD_CLIENT_ID", "")
        if env_id:
            self.default_client_id = env_id


@dataclass
class Config:
    """Top-level PlayCast configuration."""

    server: ServerConfig = field(default_factory=ServerConfig)
    resolver: ResolverConfig = field(default_factory=ResolverConfig)
    soundcloud: SoundCloudConfig = field(default_factory=SoundCloudConfig)


def load_config(path: str | None = None) -> Config:
    """Load configuration from playcast.toml.

    Search order:
    1. Explicit path argument
    2. ./playcast.toml
    3. ~/.config/playcast/playcast.toml
    4. Defaults
    """
    search_paths = []
    if path:
        search_paths.append(Path(path))
    search_paths.extend([
        Path("playcast.toml"),
        Path.home() / ".config" / "playcast" / "playcast.toml",
    ])

    for p in search_paths:
        if p.exists():
            with open(p, "rb") as f:
                data = tomllib.load(f)
            return _parse_config(data)

    return Config()


def _parse_config(data: dict) -> Config:
    """Parse a TOML dict into Config."""
    config = Config()

    if "server" in data:
        s = data["server"]
        config.server = ServerConfig(
            host=s.get("host", config.server.host),
            port=s.get("port", config.server.port),
            data_dir=s.get("data_dir", ""),
            db_file=s.get("db_file", ""),
        )

    if "resolver" in data:
        r = data["resolver"]
        config.resolver.max_attempts = max(1, int(r.get("max_attempts", config.resolver.max_attempts)))
        config.resolver.timeout = float(r.get("timeout", config.resolver.timeout))
        config.resolver.user_agent = r.get("user_agent", config.resolver.user_agent)
        config.resolver.search_limit = int(r.get("search_limit", config.resolver.search_limit))
        config.resolver.default_search_provider = r.get(
            "default_search_provider", config.resolver.default_search_provider,
        )

    if "mirrors" in data:
        for dialect, urls in data["mirrors"].items():
            config.resolver.mirrors[dialect] = [u.rstrip("/") for u in urls if u]

    if "soundcloud" in data:
        sc = data["soundcloud"]
        config.soundcloud = SoundCloudConfig(
            default_client_id=sc.get("default_client_id", ""),
            client_id_ttl=sc.get("client_id_ttl", config.soundcloud.client_id_ttl),
        )

    return config
