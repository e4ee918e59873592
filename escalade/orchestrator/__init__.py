"""Plan, generate, verify and escalate-or-revise orchestration."""
