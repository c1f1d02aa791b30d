"""Mission control: job orchestration engine for an AI agent workforce."""

__version__ = "0.1.0"
