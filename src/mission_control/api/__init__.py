"""HTTP boundary for the job orchestration engine."""
