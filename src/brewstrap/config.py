"""TOML manifest loading for brewstrap."""

from __future__ import annotations

import os
import tomllib
from pathlib import Path
from typing import Any, Dict, Mapping

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from .models import ItemDescriptor, ItemKind, PreferenceSetting, PreferenceType, RuntimeCommand, Stage

DEFAULT_CONFIG_FILENAME = "brewstrap.toml"

DEFAULT_HOMEBREW_INSTALL = (
    "/bin/bash",
    "-c",
    'NONINTERACTIVE=1 /bin/bash -c "$(curl -fsSL https://raw.githubusercontent.com/Homebrew/install/HEAD/install.sh)"',
)

DEFAULT_SHELL_PROFILE = "~/.zprofile"


class ConfigError(RuntimeError):
    """Raised when a manifest cannot be parsed or validated."""


def _expand_path(raw: str | os.PathLike[str] | Path, *, base_dir: Path) -> Path:
    """Return an absolute ``Path`` by expanding env vars and user segments."""

    text = str(raw)
    expanded = Path(os.path.expandvars(text)).expanduser()
    if expanded.is_absolute():
        return expanded.resolve(strict=False)
    return (base_dir / expanded).resolve(strict=False)


class Settings(BaseModel):
    """Global options from the ``[settings]`` table."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    backup_suffix: str = "backup"
    require_command_line_tools: bool = True
    update_homebrew: bool = True
    cleanup: bool = True
    brew_executable: str = "brew"
    homebrew_install_command: tuple[str, ...] = DEFAULT_HOMEBREW_INSTALL
    shell_profile: Path | None = None
    log_level: str = "WARNING"
    log_file: Path | None = None

    @classmethod
    def from_raw(cls, raw: Mapping[str, Any], *, base_dir: Path) -> "Settings":
        data = dict(raw)
        if data.get("log_file") is not None:
            data["log_file"] = _expand_path(data["log_file"], base_dir=base_dir)
        # An empty string turns off the profile update.
        profile = data.get("shell_profile", DEFAULT_SHELL_PROFILE)
        data["shell_profile"] = _expand_path(profile, base_dir=base_dir) if profile else None
        return cls(**data)


class PackagesConfig(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    taps: tuple[str, ...] = ()
    formulae: tuple[str, ...] = ()
    casks: tuple[str, ...] = ()


class RuntimeConfig(BaseModel):
    """A toolchain installed through its own manager, such as ``uv`` or ``nvm``."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    id: str
    check: tuple[str, ...] = Field(min_length=1)
    install: tuple[str, ...] = Field(min_length=1)
    expect: str | None = None


class ExtensionsConfig(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    hosts: tuple[str, ...] = ("code",)
    items: tuple[str, ...] = ()


class FileConfig(BaseModel):
    """A template copied to a fixed destination."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    id: str
    source: Path
    target: Path
    requires: Path | None = None


class PreferenceConfig(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid", populate_by_name=True)

    domain: str
    key: str
    value_type: PreferenceType = Field(alias="type")
    value: bool | int | float | str

    @model_validator(mode="after")
    def _check_value_type(self) -> "PreferenceConfig":
        expected: dict[PreferenceType, tuple[type, ...]] = {
            PreferenceType.BOOL: (bool,),
            PreferenceType.INT: (int,),
            PreferenceType.FLOAT: (int, float),
            PreferenceType.STRING: (str,),
        }
        allowed = expected[self.value_type]
        if not isinstance(self.value, allowed) or (
            self.value_type is not PreferenceType.BOOL and isinstance(self.value, bool)
        ):
            raise ValueError(f"{self.domain} {self.key}: value {self.value!r} is not a {self.value_type.value}")
        return self

    def setting(self) -> PreferenceSetting:
        value = self.value
        if isinstance(value, str):
            value = os.path.expandvars(value)
        return PreferenceSetting(domain=self.domain, key=self.key, value_type=self.value_type, value=value)


class Config(BaseModel):
    """Fully parsed manifest."""

    model_config = ConfigDict(frozen=True)

    config_path: Path
    settings: Settings
    packages: PackagesConfig = Field(default_factory=PackagesConfig)
    runtimes: tuple[RuntimeConfig, ...] = ()
    extensions: ExtensionsConfig = Field(default_factory=ExtensionsConfig)
    files: tuple[FileConfig, ...] = ()
    preferences: tuple[PreferenceConfig, ...] = ()
    versions: Dict[str, tuple[str, ...]] = Field(default_factory=dict)

    def items(self, stage: Stage) -> tuple[ItemDescriptor, ...]:
        """Return the declared items processed by ``stage``, in order."""

        if stage is Stage.TOOL_PROVISION:
            return (
                ItemDescriptor(
                    id="homebrew",
                    kind=ItemKind.TOOL,
                    source=self.settings.brew_executable,
                    target=self.settings.shell_profile,
                    runtime=RuntimeCommand(check=(), install=self.settings.homebrew_install_command),
                ),
            )

        if stage is Stage.PACKAGE_PROVISION:
            items: list[ItemDescriptor] = []
            for kind, names in (
                (ItemKind.TAP, self.packages.taps),
                (ItemKind.FORMULA, self.packages.formulae),
                (ItemKind.CASK, self.packages.casks),
            ):
                items.extend(ItemDescriptor(id=name, kind=kind, source=name) for name in names)
            items.extend(
                ItemDescriptor(
                    id=runtime.id,
                    kind=ItemKind.RUNTIME,
                    source=runtime.install[0],
                    runtime=RuntimeCommand(check=runtime.check, install=runtime.install, expect=runtime.expect),
                )
                for runtime in self.runtimes
            )
            return tuple(items)

        if stage is Stage.CONFIG_PROVISION:
            items = [
                ItemDescriptor(id=f"{host}:{extension}", kind=ItemKind.EXTENSION, source=extension, host=host)
                for host in self.extensions.hosts
                for extension in self.extensions.items
            ]
            items.extend(
                ItemDescriptor(
                    id=entry.id,
                    kind=ItemKind.CONFIG_FILE,
                    source=str(entry.source),
                    target=entry.target,
                    requires=entry.requires,
                )
                for entry in self.files
            )
            return tuple(items)

        if stage is Stage.SYSTEM_PREFERENCES:
            return tuple(
                ItemDescriptor(
                    id=f"{pref.domain}:{pref.key}",
                    kind=ItemKind.PREFERENCE,
                    source=pref.domain,
                    preference=pref.setting(),
                )
                for pref in self.preferences
            )

        return ()


def load_config(path: Path | None = None) -> Config:
    """Load and validate a manifest.

    Args:
        path: Optional path to the TOML file, or to a directory holding
            ``brewstrap.toml``. Defaults to ``brewstrap.toml`` in the current
            working directory.
    """

    config_path = _resolve_config_path(path)
    base_dir = config_path.parent

    try:
        with config_path.open("rb") as handle:
            data = tomllib.load(handle)
    except tomllib.TOMLDecodeError as exc:
        raise ConfigError(f"Configuration file '{config_path}' is not valid TOML: {exc}") from exc

    try:
        config = Config(
            config_path=config_path,
            settings=Settings.from_raw(data.get("settings", {}), base_dir=base_dir),
            packages=PackagesConfig(**data.get("packages", {})),
            runtimes=tuple(RuntimeConfig(**raw) for raw in data.get("runtimes", [])),
            extensions=_load_extensions(data.get("extensions", {}), base_dir=base_dir),
            files=tuple(_load_file(raw, base_dir=base_dir) for raw in data.get("files", [])),
            preferences=tuple(PreferenceConfig(**raw) for raw in data.get("preferences", [])),
            versions={label: tuple(argv) for label, argv in (data.get("summary", {}).get("versions") or {}).items()},
        )
    except (ValidationError, TypeError, KeyError) as exc:
        raise ConfigError(f"Invalid configuration in '{config_path}': {exc}") from exc

    _check_unique(config)
    return config


def _load_extensions(raw: Mapping[str, Any], *, base_dir: Path) -> ExtensionsConfig:
    data = dict(raw)
    listing = data.pop("file", None)
    items = list(data.pop("items", []))
    if listing is not None:
        listing_path = _expand_path(listing, base_dir=base_dir)
        if not listing_path.is_file():
            raise ConfigError(f"Extension list '{listing_path}' does not exist")
        for line in listing_path.read_text().splitlines():
            extension = line.strip()
            if extension and extension not in items:
                items.append(extension)
    return ExtensionsConfig(items=tuple(items), **data)


def _load_file(raw: Mapping[str, Any], *, base_dir: Path) -> FileConfig:
    for field_name in ("id", "source", "target"):
        if field_name not in raw:
            raise ConfigError(f"Each [[files]] entry must define '{field_name}'")

    requires = raw.get("requires")
    return FileConfig(
        id=raw["id"],
        source=_expand_path(raw["source"], base_dir=base_dir),
        target=_expand_path(raw["target"], base_dir=base_dir),
        requires=_expand_path(requires, base_dir=base_dir) if requires is not None else None,
    )


def _check_unique(config: Config) -> None:
    for stage in Stage:
        seen: set[tuple[str, str]] = set()
        for item in config.items(stage):
            if item.key() in seen:
                raise ConfigError(f"Duplicate {item.kind.value} '{item.id}' in {stage.value}")
            seen.add(item.key())


def _resolve_config_path(path: Path | None) -> Path:
    if path is None:
        path = Path.cwd() / DEFAULT_CONFIG_FILENAME
    else:
        path = Path(path)

    if not path.exists():
        raise ConfigError(f"Configuration file '{path}' does not exist")
    if path.is_dir():
        candidate = path / DEFAULT_CONFIG_FILENAME
        if not candidate.exists():
            raise ConfigError(f"Expected to find '{DEFAULT_CONFIG_FILENAME}' inside '{path}', but none was located")
        path = candidate

    return path.resolve(strict=False)
