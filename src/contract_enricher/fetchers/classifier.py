"""Artistic-score classification of Solidity code via OpenAI."""

from typing import Optional

import openai
from openai import AsyncOpenAI

from ..config import settings
from ..errors import ConfigurationError
from ..logging_config import get_logger
from ..parsers.classification import parse_annotation_or_none
from ..pipeline.records import Annotation
from .base import Outcome, RetryPolicy, ServiceAdapter, TransientKind

logger = get_logger(__name__)

SYSTEM_PROMPT = """
You are an assistant that rates how artistic a piece of Solidity code is, on an integer scale from 1 to 3, and briefly explains why.
- 1: Practical code (a typical smart contract)
- 2: Practical code that contains poetic elements
- 3: Code whose main purpose is artistic expression

[Output format]
Output the score and the reason in the following form:
1 | A standard smart contract with a practical Solidity structure.

Keep the reason under 100 characters and make it simple.
""".strip()

USER_PROMPT_TEMPLATE = """
Rate how artistic the following Solidity code is (1-3) and give the reason.
Always answer in exactly this format:
<score> | <reason>

```
{code}
```
""".strip()


def build_messages(code: str) -> list[dict[str, str]]:
    """Chat messages for one classification request."""
    return [
        {"role": "system", "content": SYSTEM_PROMPT},
        {"role": "user", "content": USER_PROMPT_TEMPLATE.format(code=code)},
    ]


class ArtisticClassifier(ServiceAdapter[Annotation]):
    """Scores code with a chat model at temperature 0."""

    name = "openai"

    # Request timeout and lock conflict: the same request can succeed later
    RETRYABLE_CLIENT_STATUSES = frozenset({408, 409})

    def __init__(
        self,
        client: AsyncOpenAI,
        model: Optional[str] = None,
        retry_policy: Optional[RetryPolicy] = None,
    ):
        super().__init__(retry_policy)
        self.client = client
        self.model = model or settings.openai_model

    async def _attempt(self, payload: str) -> Outcome[Annotation]:
        try:
            response = await self.client.chat.completions.create(
                model=self.model,
                messages=build_messages(payload),
                temperature=0.0,
            )
        except openai.RateLimitError as e:
            return Outcome.transient(TransientKind.THROTTLED, f"Rate limited: {e}")
        except openai.APIConnectionError as e:
            # Includes timeouts
            return Outcome.transient(TransientKind.NETWORK, f"Network error: {e}")
        except (openai.AuthenticationError, openai.PermissionDeniedError) as e:
            # Every later request would be refused the same way
            raise ConfigurationError(f"OpenAI rejected the API key: {e.status_code}") from e
        except openai.APIStatusError as e:
            if e.status_code >= 500 or e.status_code in self.RETRYABLE_CLIENT_STATUSES:
                return Outcome.transient(TransientKind.STATUS, f"HTTP error: {e.status_code}")
            logger.error(f"OpenAI API error {e.status_code}: {e.message}")
            return Outcome.failure(f"API error {e.status_code}")

        content = ""
        if response.choices:
            content = response.choices[0].message.content or ""

        # A malformed reply is a prompt/content mismatch: keep the record, drop the score
        return Outcome.success(parse_annotation_or_none(content.strip()))
