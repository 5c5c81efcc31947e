"""
Unit tests for the document state machine table.
"""

from django.test import SimpleTestCase

from inventory.models import MovementDocument
from inventory.state_machine import (
    Action, Effect, TRANSITIONS, allowed_actions, ensure_editable, resolve_transition
)
from utils.exceptions import DocumentAlreadyProcessedError, InvalidStatusTransitionError

Kind = MovementDocument.Kind
Status = MovementDocument.Status


def _document(kind, status):
    return MovementDocument(kind=kind, status=status, reference='WH/TEST/0001')


class StateMachineTest(SimpleTestCase):
    """Test cases for transition lookup."""

    def test_delivery_happy_path(self):
        steps = [
            (Status.DRAFT, Action.SUBMIT, Status.WAITING, Effect.NONE),
            (Status.WAITING, Action.VALIDATE, Status.READY, Effect.RESERVE),
            (Status.READY, Action.PROCESS, Status.DONE, Effect.COMMIT),
        ]
        for status, action, target, effect in steps:
            with self.subTest(status=status, action=action):
                transition = resolve_transition(_document(Kind.DELIVERY, status), action)
                self.assertEqual(transition.target, target)
                self.assertEqual(transition.effect, effect)

    def test_receipt_skips_waiting(self):
        transition = resolve_transition(_document(Kind.RECEIPT, Status.DRAFT), 'validate')
        self.assertEqual(transition.target, Status.READY)
        self.assertEqual(transition.effect, Effect.NONE)

    def test_transfer_reserves_on_start_and_commits_on_complete(self):
        start = resolve_transition(_document(Kind.TRANSFER, Status.DRAFT), 'start')
        complete = resolve_transition(_document(Kind.TRANSFER, Status.IN_TRANSIT), 'complete')

        self.assertEqual((start.target, start.effect), (Status.IN_TRANSIT, Effect.RESERVE))
        self.assertEqual((complete.target, complete.effect), (Status.COMPLETED, Effect.COMMIT))

    def test_every_pre_commit_status_can_cancel(self):
        """Cancel releases from every active status and from none of the terminal ones."""
        for kind, table in TRANSITIONS.items():
            statuses = {status for status, _ in table}
            for status in statuses:
                with self.subTest(kind=kind, status=status):
                    transition = resolve_transition(_document(kind, status), Action.CANCEL)
                    self.assertEqual(transition.target, Status.CANCELED)
                    self.assertEqual(transition.effect, Effect.RELEASE)

    def test_terminal_statuses_have_no_transitions(self):
        for kind in Kind:
            for status in (Status.DONE, Status.COMPLETED, Status.CANCELED):
                with self.subTest(kind=kind, status=status):
                    self.assertEqual(allowed_actions(kind, status), [])

    def test_skipping_a_step_is_rejected(self):
        """Test that a draft delivery cannot be processed directly."""
        with self.assertRaises(InvalidStatusTransitionError) as context:
            resolve_transition(_document(Kind.DELIVERY, Status.DRAFT), Action.PROCESS)

        self.assertEqual(context.exception.from_status, 'draft')
        self.assertEqual(context.exception.to_status, 'process')

    def test_action_from_other_kind_is_rejected(self):
        with self.assertRaises(InvalidStatusTransitionError):
            resolve_transition(_document(Kind.DELIVERY, Status.DRAFT), Action.START)
        with self.assertRaises(InvalidStatusTransitionError):
            resolve_transition(_document(Kind.RECEIPT, Status.DRAFT), Action.SUBMIT)

    def test_unknown_action_is_rejected(self):
        with self.assertRaises(InvalidStatusTransitionError) as context:
            resolve_transition(_document(Kind.DELIVERY, Status.DRAFT), 'ship')
        self.assertIn('Unknown action', str(context.exception.detail['message']))

    def test_replayed_commit_reports_already_processed(self):
        """Processing a done document raises DocumentAlreadyProcessedError."""
        with self.assertRaises(DocumentAlreadyProcessedError) as context:
            resolve_transition(_document(Kind.DELIVERY, Status.DONE), Action.PROCESS)
        self.assertEqual(context.exception.status, 'done')

        with self.assertRaises(DocumentAlreadyProcessedError):
            resolve_transition(_document(Kind.TRANSFER, Status.COMPLETED), Action.COMPLETE)

    def test_cancel_after_done_is_invalid(self):
        with self.assertRaises(InvalidStatusTransitionError):
            resolve_transition(_document(Kind.DELIVERY, Status.DONE), Action.CANCEL)

    def test_allowed_actions(self):
        self.assertEqual(
            allowed_actions(Kind.DELIVERY, Status.WAITING),
            [Action.VALIDATE, Action.CANCEL]
        )
        self.assertEqual(allowed_actions('transfer', 'draft'), [Action.START, Action.CANCEL])

    def test_ensure_editable(self):
        ensure_editable(_document(Kind.DELIVERY, Status.DRAFT))

        for status in (Status.WAITING, Status.READY, Status.DONE, Status.CANCELED):
            with self.subTest(status=status):
                with self.assertRaises(InvalidStatusTransitionError):
                    ensure_editable(_document(Kind.DELIVERY, status), operation='delete')
