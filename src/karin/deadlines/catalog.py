"""Static catalog of Ley Karin deadline templates loaded from YAML."""

from __future__ import annotations

import logging
from pathlib import Path

import yaml
from pydantic import BaseModel, Field, ValidationError

from karin.core.types import DeadlinePriority, ProcessStage

logger = logging.getLogger(__name__)

_DEFAULT_CONFIG_PATH = Path(__file__).resolve().parents[3] / "config" / "karin_deadlines.yml"


class DeadlineTemplate(BaseModel):
    """A statutory deadline declared for one process stage."""

    model_config = {"frozen": True}

    name: str
    description: str = ""
    stage: ProcessStage
    is_legal_requirement: bool = True
    priority: DeadlinePriority = DeadlinePriority.MEDIUM
    business_days: int = Field(default=0, ge=0)
    calendar_days: int | None = Field(default=None, ge=0)
    legal_reference: str | None = None
    next_action: str | None = None
    extendable: bool = False
    max_extension_days: int = Field(default=0, ge=0)

    @property
    def uses_calendar_days(self) -> bool:
        return self.calendar_days is not None


class DeadlineCatalog:
    """Ordered, immutable list of deadline templates."""

    def __init__(self, templates: list[DeadlineTemplate]) -> None:
        self._templates: tuple[DeadlineTemplate, ...] = tuple(templates)

    @classmethod
    def from_yaml(cls, config_path: str | Path | None = None) -> DeadlineCatalog:
        path = Path(config_path) if config_path else _DEFAULT_CONFIG_PATH
        with open(path) as fh:
            raw = yaml.safe_load(fh) or {}

        templates: list[DeadlineTemplate] = []
        for index, entry in enumerate(raw.get("deadlines", [])):
            try:
                templates.append(DeadlineTemplate(**entry))
            except (TypeError, ValidationError) as exc:
                raise ValueError(
                    f"Invalid deadline template #{index} in {path}: {exc}"
                ) from exc

        if not templates:
            logger.warning("Deadline catalog %s declares no deadlines", path)
        return cls(templates)

    @property
    def templates(self) -> tuple[DeadlineTemplate, ...]:
        return self._templates

    def for_stage(self, stage: ProcessStage) -> list[DeadlineTemplate]:
        return [t for t in self._templates if t.stage == stage]

    def __iter__(self):
        return iter(self._templates)

    def __len__(self) -> int:
        return len(self._templates)
