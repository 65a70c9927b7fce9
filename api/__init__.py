"""HTTP surface for the severity and escalation engine."""
