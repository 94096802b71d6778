"""
NDJSON streaming for credit-protected operations.

Each line is a JSON object with a ``type`` of ``partial``, ``complete``,
``cancelled`` or ``error``. The stream drives the operation registry so that
only a stream which runs to the end with a valid result settles credits.
"""
import json
import logging
from typing import Any, AsyncGenerator, AsyncIterator, Awaitable, Callable, Optional, Type

from fastapi import Request
from pydantic import BaseModel, ValidationError

from auth.settlement import OperationRegistry

logger = logging.getLogger('cvboost.service.operation_stream')

NDJSON_MEDIA_TYPE = "application/x-ndjson"

OnSuccess = Callable[[dict[str, Any]], Awaitable[None]]


def to_ndjson(event_type: str, **fields: Any) -> str:
    return json.dumps({"type": event_type, **fields}, default=str) + "\n"


async def stream_protected_operation(
    request: Request,
    registry: OperationRegistry,
    token: str,
    chunks: AsyncIterator[dict[str, Any]],
    schema: Type[BaseModel],
    on_success: Optional[OnSuccess] = None,
) -> AsyncGenerator[str, None]:
    """
    Relay partial objects from the model and settle the operation at the end.

    Outcomes:
        - client disconnect or stop request: operation aborted, nothing charged
        - model error, empty output or an invalid final object: operation failed,
          nothing charged
        - final object validates against ``schema``: operation completed and settled

    Args:
        request: The incoming request, polled for disconnects
        registry: Registry the operation was started on
        token: Operation token from ``begin_operation``
        chunks: Partial objects streamed by the model
        schema: Model the final object must validate against
        on_success: Called with the validated result after settlement. Errors are logged.
    """
    last_chunk: Optional[dict[str, Any]] = None

    try:
        async for chunk in chunks:
            if await request.is_disconnected():
                logger.info(f"Client disconnected during operation {token}")
                await registry.abort_operation(token)
                return

            if await registry.is_cancelled(token):
                logger.info(f"Stop requested for operation {token}, ending stream")
                await registry.abort_operation(token)
                yield to_ndjson("cancelled", operationId=token)
                return

            last_chunk = chunk
            yield to_ndjson("partial", data=chunk)

        if last_chunk is None:
            await registry.fail_operation(token, "model returned no output")
            yield to_ndjson("error", error="The model returned an empty response. Please try again.")
            return

        try:
            result = schema.model_validate(last_chunk)
        except ValidationError as e:
            await registry.fail_operation(token, f"incomplete {schema.__name__}: {e.error_count()} validation errors")
            yield to_ndjson("error", error="The model returned an incomplete response. Please try again.")
            return

        settled = await registry.complete_operation(token)
        if not settled:
            logger.warning(f"Operation {token} was no longer pending at completion")

        data = result.model_dump(mode="json")
        if on_success is not None:
            try:
                await on_success(data)
            except Exception as e:
                logger.error(f"Post-completion hook failed for operation {token}: {e}", exc_info=True)

        yield to_ndjson("complete", data=data, operationId=token)

    except Exception as e:
        logger.error(f"Operation {token} failed while streaming: {type(e).__name__}: {e}", exc_info=True)
        await registry.fail_operation(token, f"{type(e).__name__}: {e}")
        yield to_ndjson("error", error="The operation failed. No credits were charged.")

    finally:
        # Covers generator close and task cancellation; a no-op once the operation has finished
        if await registry.get_operation(token) is not None:
            await registry.abort_operation(token)
