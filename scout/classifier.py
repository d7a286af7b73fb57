"""
Natural-language classifier boundary.

The query parser only depends on the narrow Classifier protocol, so the
OpenAI function-calling client below can be swapped for a mock, a local
model or another vendor. Any response that does not match the fixed
output schema is reported as a ClassifierError.
"""

import json
import logging
from dataclasses import dataclass
from typing import Literal, Protocol

import openai
from openai import OpenAI
from pydantic import BaseModel, ConfigDict, ValidationError
from pydantic.alias_generators import to_camel

from .errors import ClassifierError, ClassifierUnavailable
from .models import TokenUsage
from .schema import FOOTBALL_POSITIONS, MAJOR_LEAGUES, TRANSFER_STATUS
from .token_tracker import TokenTracker

logger = logging.getLogger(__name__)

FUNCTION_NAME = "parse_search_query"

SYSTEM_PROMPT = f"""\
You are a football scout query parser. Parse natural language scouting requests
into structured search parameters by calling {FUNCTION_NAME}.

Position codes: {", ".join(FOOTBALL_POSITIONS)}
- Striker/Forward: ST, CF
- Midfielder: CM, CDM, CAM, LM, RM
- Winger: LW, RW
- Defender: CB, LB, RB, LWB, RWB
- Goalkeeper: GK

Leagues (use these exact names): {", ".join(MAJOR_LEAGUES)}

Guidelines:
- Only set a field if the request clearly implies it
- "under 23" → age.max 23; "over 30" → age.min 30; "young" alone is not an age range
- Market values are in euros: "under €20m" → marketValue.max 20000000
- "free agent", "contract expiring" → transferStatus "contract_ending"
- parsedIntent: one sentence restating what the scout is looking for
- priorityFactors: the criteria that matter most, most important first
  (position, age, nationality, league, marketValue, performance, contract)
"""

SEARCH_PARAMETERS_SCHEMA = {
    "type": "object",
    "properties": {
        "position": {
            "type": "array",
            "items": {"type": "string"},
            "description": "Football positions (e.g., ST, CM, CB)",
        },
        "age": {
            "type": "object",
            "properties": {
                "min": {"type": "number", "minimum": 16, "maximum": 45},
                "max": {"type": "number", "minimum": 16, "maximum": 45},
            },
            "additionalProperties": False,
        },
        "nationality": {
            "type": "array",
            "items": {"type": "string"},
            "description": "Countries/nationalities",
        },
        "league": {
            "type": "array",
            "items": {"type": "string"},
            "description": "Football leagues (e.g., Premier League, La Liga)",
        },
        "marketValue": {
            "type": "object",
            "properties": {
                "min": {"type": "number", "minimum": 0},
                "max": {"type": "number", "minimum": 0},
            },
            "additionalProperties": False,
            "description": "Market value range in euros",
        },
        "transferStatus": {
            "type": "string",
            "enum": list(TRANSFER_STATUS),
            "description": "Transfer availability status",
        },
        "keywords": {
            "type": "array",
            "items": {"type": "string"},
            "description": "Additional search keywords",
        },
        "parsedIntent": {
            "type": "string",
            "description": "Clear description of search intent",
        },
        "priorityFactors": {
            "type": "array",
            "items": {"type": "string"},
            "description": "Most important search criteria in order",
        },
    },
    "required": ["parsedIntent", "priorityFactors"],
    "additionalProperties": False,
}


# ── Response schema ────────────────────────────────────────────────────────

class NumericRange(BaseModel):
    model_config = ConfigDict(extra="forbid")

    min: float | None = None
    max: float | None = None


class ClassifierOutput(BaseModel):
    """What the classifier must return. Values are still clamped downstream."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="forbid")

    position: list[str] = []
    age: NumericRange | None = None
    nationality: list[str] = []
    league: list[str] = []
    market_value: NumericRange | None = None  # euros
    transfer_status: Literal[TRANSFER_STATUS] | None = None
    keywords: list[str] = []
    parsed_intent: str
    priority_factors: list[str]


@dataclass(frozen=True)
class ClassifierResult:
    output: ClassifierOutput
    usage: TokenUsage | None = None


def parse_classifier_output(arguments: str | dict) -> ClassifierOutput:
    """Decode and schema-check a function-call payload."""
    try:
        data = json.loads(arguments) if isinstance(arguments, str) else arguments
    except json.JSONDecodeError as e:
        raise ClassifierError(f"Malformed function-call arguments: {e}") from e
    if not isinstance(data, dict):
        raise ClassifierError("Function-call arguments are not an object")
    try:
        return ClassifierOutput.model_validate(data)
    except ValidationError as e:
        raise ClassifierError(f"Classifier output failed schema validation: {e.error_count()} error(s)") from e


class Classifier(Protocol):
    def classify(self, text: str, *, timeout: float | None = None) -> ClassifierResult:
        """Return structured parameters for *text* or raise ClassifierError."""
        ...


class OpenAIClassifier:
    """OpenAI function-calling classifier. Retries are left to the caller."""

    def __init__(
        self,
        api_key: str | None = None,
        model: str = "gpt-4o-mini",
        temperature: float = 0.1,
        tracker: TokenTracker | None = None,
    ):
        self.api_key = api_key
        self.model = model
        self.temperature = temperature
        self.tracker = tracker
        self._client: OpenAI | None = None

    def _get_client(self) -> OpenAI:
        if self._client is None:
            if not self.api_key:
                raise ClassifierUnavailable("OPENAI_API_KEY is not set")
            self._client = OpenAI(api_key=self.api_key, max_retries=0)
        return self._client

    def classify(self, text: str, *, timeout: float | None = None) -> ClassifierResult:
        client = self._get_client()
        try:
            response = client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": SYSTEM_PROMPT},
                    {"role": "user", "content": f'Parse this football scout query: "{text}"'},
                ],
                tools=[{
                    "type": "function",
                    "function": {
                        "name": FUNCTION_NAME,
                        "description": "Parse a football scout query into structured search parameters",
                        "parameters": SEARCH_PARAMETERS_SCHEMA,
                    },
                }],
                tool_choice={"type": "function", "function": {"name": FUNCTION_NAME}},
                temperature=self.temperature,
                timeout=timeout,
            )
        except openai.OpenAIError as e:
            raise ClassifierError(f"Classifier request failed: {e}") from e

        usage = None
        if response.usage is not None:
            usage = TokenUsage(
                prompt_tokens=response.usage.prompt_tokens,
                completion_tokens=response.usage.completion_tokens,
                total_tokens=response.usage.total_tokens,
            )
            if self.tracker is not None:
                self.tracker.log(
                    model=self.model,
                    purpose="query_classification",
                    input_tokens=usage.prompt_tokens,
                    output_tokens=usage.completion_tokens,
                )

        message = response.choices[0].message if response.choices else None
        tool_calls = (message.tool_calls or []) if message is not None else []
        call = next((c for c in tool_calls if c.function.name == FUNCTION_NAME), None)
        if call is None:
            raise ClassifierError("No function call returned")

        return ClassifierResult(output=parse_classifier_output(call.function.arguments), usage=usage)
