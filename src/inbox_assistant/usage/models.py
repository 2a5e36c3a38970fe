"""Usage record model for LLM token accounting.

One record is appended after every successful LLM call.  Records are never
updated or deleted.
"""

from pydantic import BaseModel, ConfigDict


class UsageRecord(BaseModel):
    """Token consumption and estimated cost of one LLM call."""

    model_config = ConfigDict(frozen=True)

    email: str
    provider: str
    model: str
    label: str
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0
    cost: float = 0.0
