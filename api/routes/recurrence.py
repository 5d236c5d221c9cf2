"""
Recurrence helper routes.

Lets clients validate rule strings and preview upcoming occurrences with
the same engine the reminder scheduler uses.
"""

from fastapi import APIRouter, Depends

from engine.recurrence import (
    evaluate_next_occurrence, format_rule, parse_rule_strict, upcoming_occurrences
)
from ..models import User
from ..schemas import (
    RecurrenceParseRequest, RecurrenceParseResponse, RecurrenceRuleResponse,
    RecurrenceNextRequest, RecurrenceNextResponse
)
from ..dependencies import get_current_user

router = APIRouter(prefix="/recurrence", tags=["recurrence"])


@router.post("/parse", response_model=RecurrenceParseResponse)
async def parse_recurrence(
    parse_request: RecurrenceParseRequest,
    current_user: User = Depends(get_current_user)
) -> RecurrenceParseResponse:
    """
    Parse a rule string and return it in canonical form.

    An unparseable rule yields 422 with the reason.
    """
    rule = parse_rule_strict(parse_request.rule)
    return RecurrenceParseResponse(
        valid=True,
        rule=RecurrenceRuleResponse(**rule.to_dict()),
        formatted=format_rule(rule),
    )


@router.post("/next", response_model=RecurrenceNextResponse)
async def next_occurrence(
    next_request: RecurrenceNextRequest,
    current_user: User = Depends(get_current_user)
) -> RecurrenceNextResponse:
    """
    Compute the next occurrence after `baseDate`.

    `status` is scheduled, ended (past endDate) or unsupported (CUSTOM
    rules). With `limit` above 1, `occurrences` lists that many upcoming
    dates, capped by the rule's count.
    """
    rule = parse_rule_strict(next_request.rule)
    outcome = evaluate_next_occurrence(next_request.base_date, rule)

    occurrences = []
    if outcome.scheduled:
        occurrences = upcoming_occurrences(next_request.base_date, rule, limit=next_request.limit)

    return RecurrenceNextResponse(
        status=outcome.status.value,
        next_date=outcome.next_date,
        occurrences=occurrences,
    )
