import logging
import re
from dataclasses import dataclass, field
from typing import Dict, List, Optional

import ollama

logger = logging.getLogger(__name__)

CODE_FENCE_PATTERN = re.compile(r"```[a-zA-Z]*\n([\s\S]+?)\n```")


class LLMError(Exception):
    """The language model could not produce a response"""


@dataclass
class ChatResponse:
    content: str
    usage: Dict[str, int] = field(default_factory=dict)


def strip_code_fence(content: str) -> str:
    """Return the body of the first fenced block, or the text unchanged"""
    content = content.strip()
    match = CODE_FENCE_PATTERN.search(content)
    if match:
        return match.group(1)
    return content


class LLMService:
    """Chat completions through a local Ollama model"""

    def __init__(
        self,
        model: str = "llama3.2",
        temperature: Optional[float] = None,
        client: Optional[ollama.AsyncClient] = None,
    ):
        self.model = model
        self.temperature = temperature
        # host comes from OLLAMA_HOST
        self.client = client or ollama.AsyncClient()

    async def chat(self, messages: List[Dict[str, str]]) -> ChatResponse:
        """Send ``[{"role": ..., "content": ...}]`` and return the reply"""
        options = {"temperature": self.temperature} if self.temperature is not None else None
        logger.info("Requesting completion from %s (%d messages)", self.model, len(messages))

        try:
            response = await self.client.chat(model=self.model, messages=messages, options=options)
        except ollama.ResponseError as e:
            raise LLMError(f"Ollama error ({e.status_code}): {e.error}") from e

        usage = {
            "input_tokens": response.get("prompt_eval_count") or 0,
            "output_tokens": response.get("eval_count") or 0,
        }
        return ChatResponse(content=response['message']['content'], usage=usage)

    async def complete(self, prompt: str) -> str:
        """Single-turn prompt, returns the reply text"""
        response = await self.chat([{"role": "user", "content": prompt}])
        return response.content
