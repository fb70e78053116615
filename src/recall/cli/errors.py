"""recall rich error messages — actionable feedback.

Every error shown to the user must contain:
  1. What went wrong (clear cause)
  2. The exact action the user should take to fix it

Usage:
    from recall.cli.errors import err_no_db
    console.print(err_no_db(".recall.db"))
    raise typer.Exit(1)
"""

from __future__ import annotations

from recall.errors import AnswerUnavailable


def err_no_api_key(provider: str) -> str:
    """No API key for *provider*.

    Example:
        No API key for 'openai'. Set:  export OPENAI_API_KEY=sk-...
    """
    env_map = {
        "openai": "OPENAI_API_KEY",
        "anthropic": "ANTHROPIC_API_KEY",
        "cohere": "COHERE_API_KEY",
        "gemini": "GEMINI_API_KEY",
        "mistral": "MISTRAL_API_KEY",
        "azure": "AZURE_API_KEY",
        "voyage": "VOYAGE_API_KEY",
    }
    env_var = env_map.get(provider.lower(), f"{provider.upper()}_API_KEY")
    return (
        f"[red]Error:[/] No API key for '{provider}'.\n"
        f"  Set:  export {env_var}=sk-..."
    )


def err_no_db(db_path: str = ".recall.db") -> str:
    """No database at *db_path*."""
    return (
        f"[red]Error:[/] No database found at '{db_path}'.\n"
        "  Run:  recall init"
    )


def err_config(detail: str) -> str:
    """recall.yaml or the global config is invalid."""
    return (
        f"[red]Error:[/] Invalid configuration: {detail}\n"
        "  Fix recall.yaml (or ~/.recall/config.yaml) and retry."
    )


def err_store(detail: str) -> str:
    """A database read or write failed."""
    return (
        f"[red]Error:[/] Database operation failed: {detail}\n"
        "  Check that no other process holds a write lock, then retry."
    )


def err_meeting_not_found(meeting_id: str) -> str:
    """Meeting id not in the database."""
    return (
        f"[yellow]Meeting not found:[/] '{meeting_id}'.\n"
        "  Run:  recall status  to list meetings."
    )


def err_transcript_file(path: str, detail: str) -> str:
    """Transcript file missing or malformed."""
    return (
        f"[red]Error:[/] Cannot read transcript '{path}': {detail}\n"
        '  Expected a JSON list of {"speaker", "text", "timestamp_ms"} objects.'
    )


def err_no_answer() -> str:
    """Both the retrieval and the context-window answer paths failed."""
    return (
        f"[red]{AnswerUnavailable.USER_MESSAGE}[/]\n"
        "  Run with --verbose to see the language model error."
    )
