"""
Document state machine.

The legal status transitions of every document kind, as data. Each entry
maps ``(current_status, action)`` to the target status and the single side
effect the transition triggers. The document service looks transitions up
here instead of comparing status strings inline.

Delivery:  draft -submit-> waiting -validate-> ready -process-> done
Receipt:   draft -validate-> ready -process-> done
Transfer:  draft -start-> in_transit -complete-> completed

Every pre-commit status can also be canceled, which releases reservations.
Deletion is allowed from draft only.
"""

from typing import NamedTuple

from django.db import models

from inventory.models import MovementDocument
from utils.exceptions import DocumentAlreadyProcessedError, InvalidStatusTransitionError

Kind = MovementDocument.Kind
Status = MovementDocument.Status


class Action(models.TextChoices):
    SUBMIT = 'submit', 'Submit'
    VALIDATE = 'validate', 'Validate'
    PROCESS = 'process', 'Process'
    START = 'start', 'Start'
    COMPLETE = 'complete', 'Complete'
    CANCEL = 'cancel', 'Cancel'


class Effect(models.TextChoices):
    NONE = 'none', 'No side effect'
    RESERVE = 'reserve', 'Reserve stock'
    COMMIT = 'commit', 'Commit to ledger'
    RELEASE = 'release', 'Release reservations'


class Transition(NamedTuple):
    target: str
    effect: str


TRANSITIONS = {
    Kind.DELIVERY: {
        (Status.DRAFT, Action.SUBMIT): Transition(Status.WAITING, Effect.NONE),
        (Status.WAITING, Action.VALIDATE): Transition(Status.READY, Effect.RESERVE),
        (Status.READY, Action.PROCESS): Transition(Status.DONE, Effect.COMMIT),
        (Status.DRAFT, Action.CANCEL): Transition(Status.CANCELED, Effect.RELEASE),
        (Status.WAITING, Action.CANCEL): Transition(Status.CANCELED, Effect.RELEASE),
        (Status.READY, Action.CANCEL): Transition(Status.CANCELED, Effect.RELEASE),
    },
    Kind.RECEIPT: {
        (Status.DRAFT, Action.VALIDATE): Transition(Status.READY, Effect.NONE),
        (Status.READY, Action.PROCESS): Transition(Status.DONE, Effect.COMMIT),
        (Status.DRAFT, Action.CANCEL): Transition(Status.CANCELED, Effect.RELEASE),
        (Status.READY, Action.CANCEL): Transition(Status.CANCELED, Effect.RELEASE),
    },
    Kind.TRANSFER: {
        (Status.DRAFT, Action.START): Transition(Status.IN_TRANSIT, Effect.RESERVE),
        (Status.IN_TRANSIT, Action.COMPLETE): Transition(Status.COMPLETED, Effect.COMMIT),
        (Status.DRAFT, Action.CANCEL): Transition(Status.CANCELED, Effect.RELEASE),
        (Status.IN_TRANSIT, Action.CANCEL): Transition(Status.CANCELED, Effect.RELEASE),
    },
}

# Actions that commit stock; replaying them on a processed document is
# reported as DocumentAlreadyProcessedError.
COMMIT_ACTIONS = (Action.PROCESS, Action.COMPLETE)


def allowed_actions(kind, status):
    """Actions that can be applied to a document of ``kind`` in ``status``."""
    status = Status(status)
    return [
        action for (from_status, action) in TRANSITIONS[Kind(kind)]
        if from_status == status
    ]


def resolve_transition(document, action):
    """
    Look up the transition for ``action`` on ``document``.

    Args:
        document: MovementDocument instance (its current status is used)
        action: Action value (e.g. 'validate')

    Returns:
        Transition(target, effect)

    Raises:
        DocumentAlreadyProcessedError: If a commit action is replayed on a
            processed document
        InvalidStatusTransitionError: If the action is unknown or not allowed
            from the current status
    """
    try:
        action = Action(action)
    except ValueError:
        raise InvalidStatusTransitionError(
            document.status, action,
            message=f'Unknown action "{action}"'
        )

    status = Status(document.status)
    if status in MovementDocument.PROCESSED_STATUSES and action in COMMIT_ACTIONS:
        raise DocumentAlreadyProcessedError(document.reference, status.value)

    transition = TRANSITIONS[Kind(document.kind)].get((status, action))
    if transition is None:
        raise InvalidStatusTransitionError(
            status.value, action.value,
            message=f'Cannot {action.value} a {document.get_kind_display().lower()} '
                    f'that is {status.label.lower()}'
        )
    return transition


def ensure_editable(document, operation='edit'):
    """
    Raise InvalidStatusTransitionError unless the document is still a draft.
    Covers line item changes, header edits and deletion.
    """
    if document.status != Status.DRAFT:
        raise InvalidStatusTransitionError(
            document.status, operation,
            message=f'Document {document.reference} is {document.status} and cannot be {_past(operation)}'
        )


def _past(operation):
    return {'edit': 'edited', 'delete': 'deleted'}.get(operation, 'modified')
