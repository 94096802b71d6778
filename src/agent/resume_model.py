import logging
from typing import Any, AsyncIterator, Optional, Type

from pydantic import BaseModel

from .model_factory import ModelRole, get_model

logger = logging.getLogger('cvboost.agent.resume_model')


class ResumeModel:
    """
    Streams a structured object from a chat model.

    Each yielded dict is the partial object received so far; the last one is the
    complete object if the provider finished normally.
    """

    def __init__(self, role: ModelRole = "primary"):
        self.role = role

    async def stream_object(
        self,
        schema: Type[BaseModel],
        prompt: str,
        temperature: float = 0.3,
        max_tokens: Optional[int] = 4000,
    ) -> AsyncIterator[dict[str, Any]]:
        model = get_model(self.role, temperature=temperature, max_tokens=max_tokens)
        structured = model.with_structured_output(schema.model_json_schema())

        logger.debug(f"Streaming {schema.__name__} from {self.role} model")
        async for chunk in structured.astream(prompt):
            if isinstance(chunk, BaseModel):
                chunk = chunk.model_dump()
            if chunk:
                yield chunk
