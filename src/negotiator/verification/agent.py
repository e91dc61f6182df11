"""Verification stage: re-confirm the best deal with its vendor."""

from __future__ import annotations

import structlog

from negotiator.collaborators.telephony import OutboundCaller
from negotiator.config import Settings
from negotiator.domain.models import AgentEvent, Requirements, VerificationResult, WorkflowState
from negotiator.domain.types import AgentName, EventType, VerificationStatus
from negotiator.llm.client import ReasoningService
from negotiator.llm.models import VerificationOutput
from negotiator.llm.parsing import parse_reply
from negotiator.llm.prompts import VERIFICATION_ANALYSIS_PROMPT
from negotiator.negotiation.agent import CALL_ERRORS, place_and_wait
from negotiator.workflow.transitions import WorkflowEvent

logger = structlog.get_logger()


async def _analyze(
    transcript: str,
    expected_price: float,
    requirements: Requirements,
    reasoning: ReasoningService,
) -> VerificationOutput | None:
    prompt = VERIFICATION_ANALYSIS_PROMPT.format(
        expected_price=expected_price,
        service=requirements.service,
        from_location=requirements.from_location,
        to_location=requirements.to_location,
        date=requirements.date,
        time=requirements.time or "not specified",
        transcript=transcript,
    )
    try:
        reply = await reasoning.invoke(prompt)
    except Exception:
        logger.warning("verification_analysis_failed", exc_info=True)
        return None
    return parse_reply(reply, VerificationOutput)


async def verify_best_deal(
    state: WorkflowState,
    *,
    caller: OutboundCaller,
    reasoning: ReasoningService,
    settings: Settings,
) -> tuple[WorkflowEvent, list[AgentEvent]]:
    """Confirm the best deal's terms, unless verification was skipped.

    Any failure leaves the deal ``pending`` rather than failing the session.
    """
    state.hand_over(AgentName.VERIFICATION)
    deal = state.best_deal
    if deal is None:
        result = VerificationResult(status=VerificationStatus.PENDING, notes="No deal to verify")
    elif state.skip_verification:
        result = VerificationResult(status=VerificationStatus.SKIPPED, notes="Skipped by user")
    else:
        requirements = state.requirements or Requirements()
        try:
            call_id, report = await place_and_wait(
                caller, deal.vendor, requirements, deal.price, settings, purpose="verification"
            )
        except CALL_ERRORS as exc:
            logger.warning("verification_call_failed", session_id=state.session_id, error=str(exc))
            result = VerificationResult(status=VerificationStatus.PENDING, notes=str(exc))
        else:
            result = VerificationResult(
                status=VerificationStatus.PENDING,
                verification_call_id=call_id,
                notes="Verification call did not produce a transcript",
            )
            if report is not None and report.transcript:
                analysis = await _analyze(report.transcript, deal.price, requirements, reasoning)
                if analysis is not None:
                    result = VerificationResult(
                        status=(
                            VerificationStatus.VERIFIED
                            if analysis.verified
                            else VerificationStatus.DISCREPANCY
                        ),
                        verification_call_id=call_id,
                        confirmed_price=analysis.confirmed_price,
                        notes="; ".join([analysis.notes, *analysis.discrepancies]).strip("; "),
                    )

    state.verification = result
    if deal is not None:
        deal.verification_status = result.status
    logger.info("verification_finished", session_id=state.session_id, status=result.status)
    return WorkflowEvent.VERIFIED, [
        AgentEvent(
            type=EventType.VERIFICATION_RESULT,
            agent=AgentName.VERIFICATION,
            message=f"Verification {result.status}",
            data=result.model_dump(mode="json"),
        )
    ]
