"""Tests for escalade.orchestrator.loop."""
import time
import unittest

from escalade.models.base import ModelSpec, TransportError
from escalade.orchestrator.escalate import EscalationPolicy, LadderConfigError
from escalade.orchestrator.loop import (
    LoopOptions,
    SessionTimeoutError,
    build_messages,
    check_deadline,
    run_orchestrator,
)

from fakes import ScriptedProvider, verdict

MODEL_A = ModelSpec("model-a")
MODEL_B = ModelSpec("model-b")
JUDGE = ModelSpec("judge", temperature=0.0)


def _options(provider, ladder, max_retries=2, max_attempts=3, **kwargs):
    return LoopOptions(
        provider=provider,
        initial_model=ladder[0],
        verifier_model=JUDGE,
        escalation_policy=EscalationPolicy(max_attempts=max_attempts, ladder=ladder),
        max_retries=max_retries,
        min_confidence=0.75,
        **kwargs,
    )


class TestRunOrchestrator(unittest.TestCase):
    def test_accepts_on_first_attempt(self):
        provider = ScriptedProvider(verdicts=[verdict(True, 0.9)])
        result = run_orchestrator("q", [], _options(provider, [MODEL_A]))
        self.assertEqual(result.attempts, 1)
        self.assertEqual(result.model, "model-a")
        self.assertAlmostEqual(result.confidence, 0.9)
        self.assertEqual(result.content, "answer from model-a")
        self.assertEqual(provider.stages(), ["answer", "verify"])

    def test_escalates_to_next_model(self):
        provider = ScriptedProvider(verdicts=[verdict(False, 0.3), verdict(True, 0.8)])
        result = run_orchestrator("q", [], _options(provider, [MODEL_A, MODEL_B], max_retries=3))
        self.assertEqual(result.model, "model-b")
        self.assertEqual(result.attempts, 2)
        self.assertEqual(provider.models_for("answer"), ["model-a", "model-b"])
        self.assertEqual([a.model for a in result.history], ["model-a", "model-b"])

    def test_middle_band_retries_same_model_until_exhausted(self):
        provider = ScriptedProvider(verdicts=[verdict(False, 0.6)])
        result = run_orchestrator("q", [], _options(provider, [MODEL_A], max_retries=2))
        self.assertEqual(result.attempts, 2)
        self.assertAlmostEqual(result.confidence, 0.6)
        self.assertEqual(provider.models_for("answer"), ["model-a", "model-a"])
        self.assertFalse(result.history[-1].approved)

    def test_approved_below_threshold_is_not_accepted(self):
        provider = ScriptedProvider(verdicts=[verdict(True, 0.7)])
        result = run_orchestrator("q", [], _options(provider, [MODEL_A], max_retries=3))
        self.assertEqual(result.attempts, 3)

    def test_terminates_within_max_retries(self):
        ladder = [ModelSpec(f"m{i}") for i in range(6)]
        for max_retries in (1, 2, 3, 5):
            provider = ScriptedProvider(verdicts=[verdict(False, 0.1)])
            result = run_orchestrator("q", [], _options(provider, ladder, max_retries=max_retries, max_attempts=10))
            self.assertEqual(result.attempts, max_retries)
            self.assertEqual(len(provider.models_for("answer")), max_retries)

    def test_retry_budget_caps_escalation(self):
        ladder = [ModelSpec(f"m{i}") for i in range(4)]
        provider = ScriptedProvider(verdicts=[verdict(False, 0.1)])
        result = run_orchestrator("q", [], _options(provider, ladder, max_retries=2, max_attempts=5))
        self.assertEqual(provider.models_for("answer"), ["m0", "m1"])
        self.assertEqual((result.model, result.attempts), ("m1", 2))

    def test_escalation_stops_at_top_of_ladder(self):
        provider = ScriptedProvider(verdicts=[verdict(False, 0.1)])
        result = run_orchestrator("q", [], _options(provider, [MODEL_A, MODEL_B], max_retries=4))
        self.assertEqual(provider.models_for("answer"), ["model-a", "model-b", "model-b", "model-b"])
        self.assertEqual(result.model, "model-b")

    def test_initial_model_missing_from_ladder(self):
        provider = ScriptedProvider()
        options = _options(provider, [MODEL_B])
        options.initial_model = MODEL_A
        with self.assertRaises(LadderConfigError):
            run_orchestrator("q", [], options)
        self.assertEqual(provider.calls, [])

    def test_transport_error_aborts_loop(self):
        provider = ScriptedProvider(fail_on="answer")
        with self.assertRaises(TransportError):
            run_orchestrator("q", [], _options(provider, [MODEL_A]))

    def test_unparseable_verdict_counts_as_rejection(self):
        provider = ScriptedProvider(verdicts=["not json"])
        result = run_orchestrator("q", [], _options(provider, [MODEL_A], max_retries=1))
        self.assertEqual(result.confidence, 0.0)
        self.assertEqual(result.attempts, 1)

    def test_events_are_emitted_in_order(self):
        events = []
        provider = ScriptedProvider(verdicts=[verdict(False, 0.2), verdict(True, 0.95)])
        options = _options(provider, [MODEL_A, MODEL_B], max_retries=3, on_event=lambda n, d: events.append(n))
        run_orchestrator("q", ["ctx"], options)
        self.assertEqual(events, [
            "loop.iteration", "loop.verdict", "loop.escalate",
            "loop.iteration", "loop.verdict", "loop.accepted",
        ])

    def test_expired_deadline_raises_before_backend_call(self):
        provider = ScriptedProvider()
        options = _options(provider, [MODEL_A], deadline=time.monotonic() - 1)
        with self.assertRaises(SessionTimeoutError):
            run_orchestrator("q", [], options)
        self.assertEqual(provider.calls, [])

    def test_result_dict_history_is_optional(self):
        provider = ScriptedProvider(verdicts=[verdict(True, 0.9, "fine")])
        result = run_orchestrator("q", [], _options(provider, [MODEL_A]))
        self.assertNotIn("history", result.to_dict())
        history = result.to_dict(include_history=True)["history"]
        self.assertEqual(history[0]["notes"], "fine")


class TestHelpers(unittest.TestCase):
    def test_messages_without_context_send_prompt_alone(self):
        messages = build_messages("hello", [])
        self.assertEqual(messages[1].content, "hello")

    def test_messages_number_the_context(self):
        messages = build_messages("hello", ["alpha", "beta"])
        self.assertIn("[1] alpha\n[2] beta", messages[1].content)
        self.assertTrue(messages[1].content.endswith("hello"))

    def test_no_deadline_never_raises(self):
        check_deadline(None, "loop")


if __name__ == "__main__":
    unittest.main()
