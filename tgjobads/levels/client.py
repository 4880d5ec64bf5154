"""
LLM-backed position level classifier.

Sends the ad text to an OpenAI chat model and expects compact JSON
`{"pl": <0..7>}`. Retries are not done here; the orchestrator owns
timeouts, backoff and the circuit breaker.
"""

import os
from typing import Optional

from openai import OpenAI
from pydantic import BaseModel, Field, ValidationError

from ..logger import get_logger
from ..models import LEVEL_FROM_WIRE, PositionLevel

logger = get_logger()

SYSTEM_PROMPT = """\
## Position Level Extraction

Map mentions in job ads to one of these levels:
0 Unknown
1 Intern (стажёр, trainee, internship, практикант)
2 Junior (джуниор, младший, начинающий)
3 Middle (мидл, middle, опытный, самостоятельный)
4 Senior (сеньор, senior, ведущий разработчик)
5 Lead (тимлид, lead, руководитель разработки, head of dev)
6 Architect (архитектор, architect, solution architect)
7 Manager (менеджер, project manager, product manager, engineering manager)

If several levels are mentioned (e.g. Middle/Senior), pick the highest.
Prefer the more specific signal ("Team Lead" is Lead, not Senior).
If no level is clear, return 0.

Return compact JSON with one key: `pl` (integer 0-7).
Example: "Senior C# Developer, remote" -> {"pl":4}
"""


class ClassificationError(Exception):
    """The classifier returned nothing usable for this ad."""
    pass


class PositionLevelResponse(BaseModel):
    pl: int = Field(ge=0, le=7, description="Position level code")


class LlmLevelClassifier:

    def __init__(
        self,
        model: str = "gpt-4o-mini",
        timeout: float = 30.0,
        api_key: Optional[str] = None,
        client: Optional[OpenAI] = None,
    ):
        if client is None:
            api_key = api_key or os.getenv("OPENAI_API_KEY")
            if not api_key:
                raise ValueError(
                    "OpenAI API key not found. Set OPENAI_API_KEY environment variable "
                    "or pass api_key to the constructor."
                )
            client = OpenAI(api_key=api_key, timeout=timeout, max_retries=0)
        self.client = client
        self.model = model
        self.timeout = timeout

    def classify(self, text: str) -> PositionLevel:
        if not text or not text.strip():
            return PositionLevel.UNKNOWN

        logger.record_external_call()
        response = self.client.chat.completions.create(
            model=self.model,
            messages=[
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": text},
            ],
            response_format={"type": "json_object"},
            timeout=self.timeout,
        )
        return parse_level_response(response.choices[0].message.content)


def parse_level_response(raw: Optional[str]) -> PositionLevel:
    if not raw:
        raise ClassificationError("Empty response from classifier")
    try:
        parsed = PositionLevelResponse.model_validate_json(raw)
    except ValidationError as e:
        raise ClassificationError(f"Invalid classifier response: {raw!r}") from e
    return LEVEL_FROM_WIRE[parsed.pl]
