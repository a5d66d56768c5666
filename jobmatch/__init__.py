"""Client-side session orchestration for the JobMatchNow résumé matcher."""

__version__ = "0.1.0"
