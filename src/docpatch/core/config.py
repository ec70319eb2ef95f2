"""Configuration management for docpatch (docpatch.toml parsing + defaults)."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

try:
    import tomllib
except ImportError:
    import tomli as tomllib  # type: ignore[no-redef]


DEFAULT_STYLESHEET = (
    "https://cdnjs.cloudflare.com/ajax/libs/github-markdown-css/5.2.0/"
    "github-markdown-dark.min.css"
)


@dataclass
class StoreConfig:
    analysis_dir: str = ".docpatch/analysis"
    documents_dir: str = ".docpatch/documents"
    backup_before_write: bool = True


@dataclass
class MatchConfig:
    """Heuristic thresholds for the fuzzy token strategy."""

    max_gap: int = 50
    min_token_length: int = 3
    min_tokens: int = 3


@dataclass
class ChangelogConfig:
    marker: str = "AI Update"
    site_changelog_path: str = "/CHANGELOG.md"


@dataclass
class RenderConfig:
    enabled: bool = True
    stylesheet: str = DEFAULT_STYLESHEET


@dataclass
class SessionConfig:
    analysis_artifacts: list[str] = field(
        default_factory=lambda: [
            "dimension-results.json",
            "processed-content.json",
            "report.json",
        ]
    )


@dataclass
class CdnConfig:
    endpoint: str = ""
    distribution_id: str = ""
    token: str = ""
    timeout: float = 10.0

    @property
    def enabled(self) -> bool:
        return bool(self.endpoint and self.distribution_id)


@dataclass
class DocPatchConfig:
    """Complete docpatch configuration."""

    store: StoreConfig = field(default_factory=StoreConfig)
    match: MatchConfig = field(default_factory=MatchConfig)
    changelog: ChangelogConfig = field(default_factory=ChangelogConfig)
    render: RenderConfig = field(default_factory=RenderConfig)
    session: SessionConfig = field(default_factory=SessionConfig)
    cdn: CdnConfig = field(default_factory=CdnConfig)


def load_config(project_path: Path | None = None) -> DocPatchConfig:
    """Load configuration from docpatch.toml if present, then apply env overrides."""
    config = DocPatchConfig()

    if project_path is None:
        project_path = Path.cwd()

    config_file = project_path / "docpatch.toml"
    if config_file.exists():
        with open(config_file, "rb") as f:
            data = tomllib.load(f)
        _apply_toml(config, data)

    _apply_env(config)
    return config


def _apply_toml(config: DocPatchConfig, data: dict) -> None:
    if "store" in data:
        s = data["store"]
        for attr in ("analysis_dir", "documents_dir", "backup_before_write"):
            if attr in s:
                setattr(config.store, attr, s[attr])

    if "match" in data:
        m = data["match"]
        for attr in ("max_gap", "min_token_length", "min_tokens"):
            if attr in m:
                setattr(config.match, attr, int(m[attr]))

    if "changelog" in data:
        c = data["changelog"]
        for attr in ("marker", "site_changelog_path"):
            if attr in c:
                setattr(config.changelog, attr, c[attr])

    if "render" in data:
        r = data["render"]
        if "enabled" in r:
            config.render.enabled = r["enabled"]
        if "stylesheet" in r:
            config.render.stylesheet = r["stylesheet"]

    if "session" in data:
        if "analysis_artifacts" in data["session"]:
            config.session.analysis_artifacts = list(data["session"]["analysis_artifacts"])

    if "cdn" in data:
        cdn = data["cdn"]
        if "endpoint" in cdn:
            config.cdn.endpoint = cdn["endpoint"]
        if "distribution_id" in cdn:
            config.cdn.distribution_id = cdn["distribution_id"]
        if "timeout" in cdn:
            config.cdn.timeout = float(cdn["timeout"])


def _apply_env(config: DocPatchConfig) -> None:
    # The CDN token is only ever read from the environment.
    overrides = {
        "DOCPATCH_ANALYSIS_DIR": (config.store, "analysis_dir"),
        "DOCPATCH_DOCUMENTS_DIR": (config.store, "documents_dir"),
        "DOCPATCH_CDN_ENDPOINT": (config.cdn, "endpoint"),
        "DOCPATCH_DISTRIBUTION_ID": (config.cdn, "distribution_id"),
        "DOCPATCH_CDN_TOKEN": (config.cdn, "token"),
    }
    for var, (section, attr) in overrides.items():
        value = os.environ.get(var)
        if value:
            setattr(section, attr, value)


def resolve_dir(project_path: Path, value: str) -> Path:
    """Resolve a configured directory against the project path."""
    path = Path(value).expanduser()
    if path.is_absolute():
        return path
    return project_path / path
