"""Tests for escalade.orchestrator.escalate."""
import unittest

from escalade.models.base import ModelSpec
from escalade.orchestrator.escalate import (
    EscalationPolicy,
    EscalationState,
    LadderConfigError,
    can_escalate,
    ladder_index,
    next_model,
)

SMALL = ModelSpec("small")
MEDIUM = ModelSpec("medium")
LARGE = ModelSpec("large")


class TestEscalationPolicy(unittest.TestCase):
    def test_ladder_is_stored_as_tuple(self):
        policy = EscalationPolicy(max_attempts=2, ladder=[SMALL, LARGE])
        self.assertEqual(policy.ladder, (SMALL, LARGE))

    def test_empty_ladder_rejected(self):
        with self.assertRaises(LadderConfigError):
            EscalationPolicy(max_attempts=2, ladder=[])

    def test_duplicate_names_rejected(self):
        with self.assertRaises(LadderConfigError):
            EscalationPolicy(max_attempts=2, ladder=[SMALL, ModelSpec("small", temperature=0.1)])

    def test_negative_attempts_rejected(self):
        with self.assertRaises(LadderConfigError):
            EscalationPolicy(max_attempts=-1, ladder=[SMALL])


class TestNextModel(unittest.TestCase):
    def setUp(self):
        self.policy = EscalationPolicy(max_attempts=5, ladder=[SMALL, MEDIUM, LARGE])

    def test_moves_one_step_forward(self):
        state = EscalationState(current_model=SMALL, attempts=1)
        self.assertEqual(next_model(state, self.policy), MEDIUM)

    def test_last_entry_cannot_escalate(self):
        state = EscalationState(current_model=LARGE, attempts=1)
        self.assertFalse(can_escalate(state, self.policy))
        self.assertIsNone(next_model(state, self.policy))

    def test_attempt_budget_blocks_escalation(self):
        policy = EscalationPolicy(max_attempts=1, ladder=[SMALL, LARGE])
        state = EscalationState(current_model=SMALL, attempts=1)
        self.assertIsNone(next_model(state, policy))

    def test_lookup_is_by_name(self):
        state = EscalationState(current_model=ModelSpec("small", temperature=0.9), attempts=0)
        self.assertEqual(next_model(state, self.policy), MEDIUM)

    def test_unknown_model_fails_fast(self):
        state = EscalationState(current_model=ModelSpec("ghost"), attempts=0)
        with self.assertRaises(LadderConfigError) as ctx:
            next_model(state, self.policy)
        self.assertIn("ghost", str(ctx.exception))

    def test_repeated_escalation_is_monotonic(self):
        state = EscalationState(current_model=SMALL, attempts=0)
        positions = [ladder_index(state.current_model, self.policy.ladder)]
        while True:
            state.attempts += 1
            upgrade = next_model(state, self.policy)
            if upgrade is None:
                break
            state.current_model = upgrade
            positions.append(ladder_index(upgrade, self.policy.ladder))
        self.assertEqual(positions, [0, 1, 2])
        self.assertEqual(state.current_model, LARGE)


if __name__ == "__main__":
    unittest.main()
