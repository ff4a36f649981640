"""Load suite definitions and run artifacts from YAML or JSON files."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Optional

import yaml
from pydantic import BaseModel, Field, model_validator

from suitekit.types import (
    EndpointTarget,
    JudgeConfig,
    PromptTarget,
    RunComparison,
    Target,
    TargetType,
    TestCase,
    TestRun,
    ValidationRule,
)


class Suite(BaseModel):
    """A suite file: one target plus the cases and rules to run against it."""

    name: str = ""
    target_type: TargetType = "prompt"
    target: Target
    target_version: Optional[int] = None
    test_cases: list[TestCase] = Field(default_factory=list)
    validation_rules: list[ValidationRule] = Field(default_factory=list)
    judge_config: JudgeConfig = Field(default_factory=JudgeConfig)

    @model_validator(mode="before")
    @classmethod
    def _target_matches_type(cls, data: Any) -> Any:
        if isinstance(data, dict) and isinstance(data.get("target"), dict):
            model = EndpointTarget if data.get("target_type") == "endpoint" else PromptTarget
            data = {**data, "target": model.model_validate(data["target"])}
        return data


def _read(path: str | Path) -> Any:
    p = Path(path)
    text = p.read_text(encoding="utf-8")
    if p.suffix.lower() in (".yaml", ".yml"):
        return yaml.safe_load(text)
    return json.loads(text)


def load_suite(path: str | Path) -> Suite:
    raw = _read(path)
    if not isinstance(raw, dict):
        raise ValueError(f"Suite file must contain a mapping: {path}")
    raw.setdefault("name", Path(path).stem)
    return Suite.model_validate(raw)


def load_run(path: str | Path) -> TestRun:
    return TestRun.model_validate(_read(path))


def write_json(model: BaseModel, path: str | Path) -> Path:
    out = Path(path)
    out.parent.mkdir(parents=True, exist_ok=True)
    out.write_text(
        json.dumps(model.model_dump(mode="json", exclude_none=True), indent=2, ensure_ascii=False),
        encoding="utf-8",
    )
    return out


def write_run(run: TestRun, path: str | Path) -> Path:
    return write_json(run, path)


def write_comparison(comparison: RunComparison, path: str | Path) -> Path:
    return write_json(comparison, path)
