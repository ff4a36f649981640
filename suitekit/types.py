"""Core data models for targets, test cases, results, runs and comparisons."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import StrEnum
from typing import Any, Literal, Optional, Union
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, model_validator

from suitekit.errors import MissingCredentialsError


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _new_id() -> str:
    return uuid4().hex


# ---------------------------------------------------------------------------
# Provider request / response
# ---------------------------------------------------------------------------

Role = Literal["system", "user", "assistant"]

PROVIDER_LABELS: dict[str, str] = {
    "openai": "OpenAI",
    "anthropic": "Anthropic",
    "gemini": "Gemini",
    "grok": "Grok",
    "deepseek": "DeepSeek",
}


class Message(BaseModel):
    role: Role
    content: str


class CompletionRequest(BaseModel):
    model: str
    messages: list[Message]
    temperature: Optional[float] = Field(default=None, ge=0.0, le=2.0)
    max_tokens: Optional[int] = Field(default=None, ge=1, le=128000)
    top_p: Optional[float] = Field(default=None, ge=0.0, le=1.0)
    frequency_penalty: Optional[float] = Field(default=None, ge=-2.0, le=2.0)
    presence_penalty: Optional[float] = Field(default=None, ge=-2.0, le=2.0)
    # Template variables for adapters that render their own payload.
    variables: dict[str, str] = Field(default_factory=dict)

    @model_validator(mode="after")
    def _single_system_message(self) -> "CompletionRequest":
        if sum(1 for m in self.messages if m.role == "system") > 1:
            raise ValueError("At most one system message is allowed")
        return self

    @property
    def system_prompt(self) -> Optional[str]:
        for message in self.messages:
            if message.role == "system":
                return message.content
        return None

    @property
    def turns(self) -> list[Message]:
        return [m for m in self.messages if m.role != "system"]


class Usage(BaseModel):
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0


class CompletionResult(BaseModel):
    content: str
    model: str
    usage: Optional[Usage] = None
    finish_reason: Optional[str] = None


class Credentials(BaseModel):
    """Provider name -> API key. Absent keys are never silently skipped."""

    keys: dict[str, str] = Field(default_factory=dict)

    @model_validator(mode="before")
    @classmethod
    def _accept_flat_mapping(cls, data: Any) -> Any:
        if isinstance(data, dict) and "keys" not in data:
            return {"keys": data}
        return data

    def require(self, provider: str, context: Optional[str] = None) -> str:
        key = self.keys.get(provider)
        if not key:
            suffix = f" for {context}" if context else ""
            raise MissingCredentialsError(
                provider, f"{PROVIDER_LABELS.get(provider, provider)} API key is required{suffix}"
            )
        return key


# ---------------------------------------------------------------------------
# Targets
# ---------------------------------------------------------------------------

class ModelConfig(BaseModel):
    provider: Optional[str] = None
    model: Optional[str] = None
    temperature: Optional[float] = None
    max_tokens: Optional[int] = None
    top_p: Optional[float] = None
    frequency_penalty: Optional[float] = None
    presence_penalty: Optional[float] = None


class PromptVersion(BaseModel):
    version: int
    content: str
    system_prompt: Optional[str] = None
    llm_config: ModelConfig = Field(default_factory=ModelConfig)


class PromptTarget(BaseModel):
    name: str = ""
    versions: list[PromptVersion] = Field(default_factory=list)
    current_version: Optional[int] = None

    def resolve_version(self, target_version: Optional[int] = None) -> Optional[PromptVersion]:
        wanted = target_version or self.current_version
        for version in self.versions:
            if version.version == wanted:
                return version
        return self.versions[-1] if self.versions else None


class EndpointAuth(BaseModel):
    type: Literal["none", "bearer", "api_key", "basic"] = "none"
    token: Optional[str] = None
    api_key_header: Optional[str] = None
    api_key: Optional[str] = None
    username: Optional[str] = None
    password: Optional[str] = None


class EndpointConfig(BaseModel):
    method: Literal["GET", "POST", "PUT", "PATCH", "DELETE"] = "POST"
    url: str
    headers: dict[str, str] = Field(default_factory=dict)
    auth: EndpointAuth = Field(default_factory=EndpointAuth)
    body_template: Optional[str] = None
    content_type: str = "application/json"
    response_content_path: Optional[str] = None


class EndpointTarget(BaseModel):
    name: str = ""
    config: EndpointConfig


TargetType = Literal["prompt", "endpoint"]
Target = Union[PromptTarget, EndpointTarget]


# ---------------------------------------------------------------------------
# Rules, judge, test cases
# ---------------------------------------------------------------------------

RuleType = Literal[
    "contains",
    "excludes",
    "minLength",
    "maxLength",
    "regex",
    "jsonSchema",
    "maxResponseTime",
    "isJson",
    "containsJson",
]

Severity = Literal["fail", "warning"]


class ValidationRule(BaseModel):
    type: RuleType
    value: Union[str, int, float] = ""
    message: Optional[str] = None
    severity: Severity = "fail"


class JudgeCriterion(BaseModel):
    name: str
    description: str = ""
    weight: float = 1.0


class JudgeValidationRule(BaseModel):
    name: str
    description: str = ""
    failure_message: Optional[str] = None
    severity: Severity = "fail"


class JudgeConfig(BaseModel):
    enabled: bool = False
    provider: Optional[str] = None
    model: Optional[str] = None
    criteria: list[JudgeCriterion] = Field(default_factory=list)
    validation_rules: list[JudgeValidationRule] = Field(default_factory=list)
    min_score: Optional[float] = Field(default=None, ge=0.0, le=1.0)


class ConversationTurn(BaseModel):
    """One scripted turn. Assistant turns are replayed, never generated."""

    role: Literal["user", "assistant"]
    content: str = ""
    inputs: dict[str, str] = Field(default_factory=dict)
    simulated_response: Optional[str] = None
    validation_rules: list[ValidationRule] = Field(default_factory=list)
    judge_validation_rules: list[JudgeValidationRule] = Field(default_factory=list)


class TokenInjection(BaseModel):
    type: Literal["header", "body", "query"]
    target: Optional[str] = None
    prefix: Optional[str] = None


class TokenExtraction(BaseModel):
    enabled: bool = False
    response_path: Optional[str] = None
    injection: Optional[TokenInjection] = None


class VariableExtraction(BaseModel):
    name: str
    response_path: str


class SessionConfig(BaseModel):
    """State carried between the turns of an endpoint conversation."""

    enabled: bool = False
    persist_cookies: bool = False
    token_extraction: Optional[TokenExtraction] = None
    variable_extraction: list[VariableExtraction] = Field(default_factory=list)


ValidationTiming = Literal["per-turn", "final-only"]


class TestCase(BaseModel):
    __test__ = False  # keep pytest from collecting this model

    id: str = Field(default_factory=_new_id)
    name: str
    inputs: dict[str, str] = Field(default_factory=dict)
    expected_output: Optional[str] = None
    tags: list[str] = Field(default_factory=list)
    enabled: bool = True
    validation_mode: Literal["text", "rules"] = "text"
    validation_rules: list[ValidationRule] = Field(default_factory=list)
    judge_validation_rules: list[JudgeValidationRule] = Field(default_factory=list)
    notes: Optional[str] = None
    is_conversation: bool = False
    conversation: list[ConversationTurn] = Field(default_factory=list)
    validation_timing: ValidationTiming = "final-only"
    session_config: Optional[SessionConfig] = None


class ModelOverride(BaseModel):
    provider: str
    model: str


# ---------------------------------------------------------------------------
# Results and runs
# ---------------------------------------------------------------------------

class TurnResult(BaseModel):
    turn_index: int
    role: Literal["user", "assistant"]
    input: str
    output: str
    response_time_ms: int = 0
    validation_passed: Optional[bool] = None
    validation_errors: Optional[list[str]] = None
    extracted_variables: Optional[dict[str, str]] = None


class TestResult(BaseModel):
    __test__ = False

    test_case_id: str
    test_case_name: str
    inputs: dict[str, str] = Field(default_factory=dict)
    output: str = ""
    extracted_content: Optional[str] = None
    validation_passed: bool = False
    validation_errors: list[str] = Field(default_factory=list)
    judge_score: Optional[float] = None
    judge_scores: Optional[dict[str, float]] = None
    judge_reasoning: Optional[str] = None
    judge_validation_passed: Optional[bool] = None
    judge_validation_results: Optional[dict[str, bool]] = None
    judge_validation_errors: Optional[list[str]] = None
    judge_validation_warnings: Optional[list[str]] = None
    response_time_ms: int = 0
    error: Optional[str] = None
    iteration: Optional[int] = None
    is_conversation: Optional[bool] = None
    turn_results: Optional[list[TurnResult]] = None
    total_turns: Optional[int] = None

    @property
    def passed(self) -> bool:
        return self.validation_passed and not self.error


class TestRunSummary(BaseModel):
    __test__ = False

    total: int = 0
    passed: int = 0
    failed: int = 0
    avg_score: Optional[float] = None
    avg_response_time: float = 0


class RunStatus(StrEnum):
    running = "running"
    completed = "completed"
    failed = "failed"
    incomplete = "incomplete"


class TestRun(BaseModel):
    __test__ = False
    model_config = ConfigDict(protected_namespaces=())

    id: str = Field(default_factory=_new_id)
    run_at: datetime = Field(default_factory=_utcnow)
    status: RunStatus = RunStatus.running
    results: list[TestResult] = Field(default_factory=list)
    summary: TestRunSummary = Field(default_factory=TestRunSummary)
    note: Optional[str] = Field(default=None, max_length=500)
    model_override: Optional[ModelOverride] = None
    iterations: Optional[int] = None


# ---------------------------------------------------------------------------
# Comparison
# ---------------------------------------------------------------------------

class ComparisonStatus(StrEnum):
    improved = "improved"
    regressed = "regressed"
    unchanged = "unchanged"
    new = "new"
    removed = "removed"


class ResultSnapshot(BaseModel):
    passed: bool
    score: Optional[float] = None
    response_time_ms: int = 0
    output: str = ""
    error: Optional[str] = None
    validation_errors: list[str] = Field(default_factory=list)


class TestCaseComparison(BaseModel):
    __test__ = False

    test_case_id: str
    test_case_name: str
    status: ComparisonStatus
    baseline: Optional[ResultSnapshot] = None
    compare: Optional[ResultSnapshot] = None
    score_delta: Optional[float] = None
    response_time_delta: Optional[int] = None


class ComparisonSummary(BaseModel):
    improved: int = 0
    regressed: int = 0
    unchanged: int = 0
    new: int = 0
    removed: int = 0
    pass_rate_delta: float = 0.0
    avg_score_delta: Optional[float] = None
    avg_response_time_delta: float = 0


class RunReference(BaseModel):
    run_id: str
    run_at: datetime
    summary: TestRunSummary


class RunComparison(BaseModel):
    baseline: RunReference
    compare: RunReference
    summary: ComparisonSummary
    test_cases: list[TestCaseComparison] = Field(default_factory=list)


def dump(model: BaseModel) -> dict[str, Any]:
    """JSON-ready dict, dropping unset optionals."""
    return model.model_dump(mode="json", exclude_none=True)
