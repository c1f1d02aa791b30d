"""Agent registry, routing, prompt composition, decomposition and QA scoring."""
