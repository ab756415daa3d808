"""
Scenario model — what a single verification run should do.

A scenario is either a fresh install of the chart under test, or an
upgrade that first seeds a previously released baseline version. The
mode/baseline pairing is checked when the descriptor is built, so an
invalid scenario never reaches the runner.
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, model_validator

from chartverify.core.errors import ConfigError


class ScenarioMode(str, Enum):
    INSTALL = "install"
    UPGRADE = "upgrade"


class ScenarioDescriptor(BaseModel):
    """Immutable description of one scenario run.

    ``from_version`` is the concrete baseline version (aliases such as
    ``stable`` are resolved before the descriptor is built; the alias is
    kept in ``baseline_alias`` for display only).
    """

    model_config = ConfigDict(frozen=True)

    name: str = ""
    mode: ScenarioMode
    to_version: str
    from_version: str | None = None
    baseline_alias: str | None = None
    values_overlay: tuple[str, ...] = Field(default_factory=tuple)
    soft_fail: bool = False

    @model_validator(mode="after")
    def _check_mode(self) -> ScenarioDescriptor:
        # ConfigError is not a ValueError, so pydantic lets it propagate as-is.
        if self.mode is ScenarioMode.UPGRADE and not self.from_version:
            raise ConfigError(
                f"Scenario '{self.label}': upgrade mode requires from_version",
                context={"scenario": self.name, "mode": self.mode.value},
            )
        if self.mode is ScenarioMode.INSTALL and self.from_version is not None:
            raise ConfigError(
                f"Scenario '{self.label}': install mode must not set from_version",
                context={"scenario": self.name, "from_version": self.from_version},
            )
        if not self.to_version:
            raise ConfigError(f"Scenario '{self.label}': to_version is required")
        return self

    @classmethod
    def install(
        cls,
        to_version: str,
        *,
        name: str = "install",
        values_overlay: list[str] | tuple[str, ...] = (),
        soft_fail: bool = False,
    ) -> ScenarioDescriptor:
        return cls(
            name=name,
            mode=ScenarioMode.INSTALL,
            to_version=to_version,
            values_overlay=tuple(values_overlay),
            soft_fail=soft_fail,
        )

    @classmethod
    def upgrade(
        cls,
        from_version: str,
        to_version: str,
        *,
        name: str = "upgrade",
        baseline_alias: str | None = None,
        values_overlay: list[str] | tuple[str, ...] = (),
        soft_fail: bool = False,
    ) -> ScenarioDescriptor:
        return cls(
            name=name,
            mode=ScenarioMode.UPGRADE,
            from_version=from_version,
            to_version=to_version,
            baseline_alias=baseline_alias,
            values_overlay=tuple(values_overlay),
            soft_fail=soft_fail,
        )

    @property
    def is_upgrade(self) -> bool:
        return self.mode is ScenarioMode.UPGRADE

    @property
    def label(self) -> str:
        return self.name or self.mode.value

    def describe(self) -> str:
        """One-line human description."""
        if self.is_upgrade:
            alias = f" ({self.baseline_alias})" if self.baseline_alias else ""
            return f"upgrade {self.from_version}{alias} → {self.to_version}"
        return f"install {self.to_version}"
