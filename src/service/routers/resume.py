import json
import logging
import uuid
from typing import Any, Optional, Type, TypeVar

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import BaseModel, ValidationError

from agent import OptimizedResume, ResumeAnalysis, ResumeModel
from agent.prompts import (
    ANALYZE_RESUME_PROMPT,
    OPTIMIZE_RESUME_PROMPT,
    analyze_job_section,
    build_prompt,
    optimize_job_section,
)
from analyses import AnalysisRecord
from auth.gate import AuthorizedContext
from auth.identity import Caller
from auth.rate_limiting import rate_limit_headers
from auth.usage_tracking import AuditAction, get_tier_limits
from schema import AnalyzeRequest, OptimizeRequest, StopOperationResponse
from utils.validation import contains_malicious_patterns
from ..config import AdmissionComponents
from ..dependencies import get_caller, get_components, get_resume_model, require_admission
from ..operation_stream import NDJSON_MEDIA_TYPE, stream_protected_operation

logger = logging.getLogger('cvboost.service.routers.resume')

router = APIRouter()

ANALYSIS_COST = 1
ANALYSIS_ACTION = "resume_analysis"
OPTIMIZATION_COST = 1
OPTIMIZATION_ACTION = "resume_optimization"

RequestModel = TypeVar("RequestModel", bound=BaseModel)


async def _invalid_input(
    components: AdmissionComponents,
    context: AuthorizedContext,
    endpoint: str,
    error_message: str,
    body: dict[str, Any],
) -> JSONResponse:
    await components.audit_log.log_event(
        AuditAction.VALIDATION_FAILED,
        user_id=context.user_id,
        ip_address=context.ip_address,
        success=False,
        error_message=error_message,
        metadata={"endpoint": endpoint},
    )
    return JSONResponse(status_code=400, content=body)


async def _parse_body(
    request: Request,
    model: Type[RequestModel],
    components: AdmissionComponents,
    context: AuthorizedContext,
    endpoint: str,
) -> RequestModel | JSONResponse:
    """Validate the JSON body, rejecting malformed or malicious input with an audited 400"""
    try:
        raw = await request.json()
    except ValueError:
        return await _invalid_input(components, context, endpoint, "Malformed JSON body", {"error": "Invalid input"})

    try:
        parsed = model.model_validate(raw)
    except ValidationError as e:
        details = json.loads(e.json(include_url=False))
        return await _invalid_input(
            components, context, endpoint, str(e), {"error": "Invalid input", "details": details}
        )

    raw_texts = [raw.get("resumeText"), raw.get("jobDescription")]
    if any(isinstance(text, str) and contains_malicious_patterns(text) for text in raw_texts):
        return await _invalid_input(
            components, context, endpoint, "Malicious content detected", {"error": "Invalid content detected"}
        )

    return parsed


def _stream_headers(context: AuthorizedContext, token: str) -> dict[str, str]:
    headers = {"X-Operation-ID": token}
    if context.rate_limit is not None:
        headers.update(rate_limit_headers(context.rate_limit))
    return headers


@router.post("/analyze", response_class=StreamingResponse)
async def analyze_resume(
    request: Request,
    context: AuthorizedContext = Depends(
        require_admission(
            require_credits=True, credits_required=ANALYSIS_COST, endpoint="analyze", allow_anonymous=True
        )
    ),
    components: AdmissionComponents = Depends(get_components),
    model: ResumeModel = Depends(get_resume_model),
):
    """
    Stream an ATS analysis of a resume as NDJSON.

    Anonymous callers are only rate limited. Signed-in callers need one credit,
    charged when the stream completes, and the finished analysis is saved to
    their history under the id returned in the ``X-Analysis-ID`` header.
    """
    parsed = await _parse_body(request, AnalyzeRequest, components, context, "analyze")
    if isinstance(parsed, JSONResponse):
        return parsed

    resume_id: Optional[str] = str(parsed.resumeId) if parsed.resumeId else None

    await components.audit_log.log_event(
        AuditAction.ANALYSIS_STARTED,
        user_id=context.user_id,
        ip_address=context.ip_address,
        metadata={"resumeLength": len(parsed.resumeText), "hasJobDescription": bool(parsed.jobDescription)},
    )

    prompt = build_prompt(ANALYZE_RESUME_PROMPT, {
        "resumeText": parsed.resumeText,
        "jobDescriptionSection": analyze_job_section(parsed.jobDescription),
    })

    registry = components.operation_registry
    # Anonymous operations carry no user and are never billed
    token = await registry.begin_operation(
        context.user_id, ANALYSIS_COST, ANALYSIS_ACTION, owner=context.owner_key
    )
    analysis_id = str(uuid.uuid4()) if context.user_id is not None else None

    async def on_success(result: dict[str, Any]) -> None:
        await components.audit_log.log_event(
            AuditAction.ANALYSIS_COMPLETED,
            user_id=context.user_id,
            ip_address=context.ip_address,
            metadata={"atsScore": result.get("atsScore"), "resumeId": resume_id, "analysisId": analysis_id},
        )
        if context.user_id is not None and analysis_id is not None:
            await components.analysis_store.save(AnalysisRecord(
                id=analysis_id,
                user_id=context.user_id,
                resume_id=resume_id,
                job_description=parsed.jobDescription,
                ats_score=result.get("atsScore"),
                analysis_result=result,
                credits_used=0 if context.tier and get_tier_limits(context.tier).unlimited_credits else ANALYSIS_COST,
            ))

    headers = _stream_headers(context, token)
    if analysis_id is not None:
        headers["X-Analysis-ID"] = analysis_id

    chunks = model.stream_object(ResumeAnalysis, prompt, temperature=0.3, max_tokens=4000)
    return StreamingResponse(
        stream_protected_operation(request, registry, token, chunks, ResumeAnalysis, on_success),
        media_type=NDJSON_MEDIA_TYPE,
        headers=headers,
    )


@router.post("/optimize", response_class=StreamingResponse)
async def optimize_resume(
    request: Request,
    context: AuthorizedContext = Depends(
        require_admission(require_credits=True, credits_required=OPTIMIZATION_COST, endpoint="optimize")
    ),
    components: AdmissionComponents = Depends(get_components),
    model: ResumeModel = Depends(get_resume_model),
):
    """
    Stream an ATS-optimized rewrite of a resume as NDJSON.

    Costs one credit, charged only when the stream completes with a valid resume.
    The operation id is returned in the ``X-Operation-ID`` header and can be
    passed to ``POST /operations/{operation_id}/stop``.
    """
    parsed = await _parse_body(request, OptimizeRequest, components, context, "optimize")
    if isinstance(parsed, JSONResponse):
        return parsed

    analysis_id: Optional[str] = str(parsed.analysisId) if parsed.analysisId else None

    await components.audit_log.log_event(
        AuditAction.OPTIMIZATION_STARTED,
        user_id=context.user_id,
        ip_address=context.ip_address,
        metadata={"analysisId": analysis_id},
    )

    prompt = build_prompt(OPTIMIZE_RESUME_PROMPT, {
        "resumeText": parsed.resumeText,
        "analysisInsights": parsed.analysisInsights or "No prior analysis available.",
        "jobDescriptionSection": optimize_job_section(parsed.jobDescription),
    })

    registry = components.operation_registry
    token = await registry.begin_operation(
        context.user_id, OPTIMIZATION_COST, OPTIMIZATION_ACTION, owner=context.owner_key
    )

    async def on_success(result: dict[str, Any]) -> None:
        await components.audit_log.log_event(
            AuditAction.OPTIMIZATION_COMPLETED,
            user_id=context.user_id,
            ip_address=context.ip_address,
            metadata={"analysisId": analysis_id},
        )
        if analysis_id is not None and context.user_id is not None:
            attached = await components.analysis_store.attach_optimization(context.user_id, analysis_id, result)
            if not attached:
                logger.warning(f"Optimized resume not saved: analysis {analysis_id} not found for {context.user_id}")

    chunks = model.stream_object(OptimizedResume, prompt, temperature=0.4, max_tokens=4000)
    return StreamingResponse(
        stream_protected_operation(request, registry, token, chunks, OptimizedResume, on_success),
        media_type=NDJSON_MEDIA_TYPE,
        headers=_stream_headers(context, token),
    )


@router.post("/operations/{operation_id}/stop")
async def stop_operation(
    operation_id: str,
    caller: Caller = Depends(get_caller),
    components: AdmissionComponents = Depends(get_components),
) -> StopOperationResponse:
    """
    Request cancellation of an in-flight operation.

    The stream stops at the next chunk and the operation is aborted without
    charging credits. Only the caller that started the operation may stop it:
    the same user, or for anonymous operations the same client IP.
    """
    cancelled = await components.operation_registry.request_cancellation(operation_id, caller.owner_key)
    if not cancelled:
        logger.info(f"Stop request for unknown or foreign operation {operation_id}")
    return StopOperationResponse(operationId=operation_id, cancelled=cancelled)
