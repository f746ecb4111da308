"""Decorators for bookview commands."""

import functools
import logging
from typing import Any, Callable

import typer
from rich.console import Console

from .rules.tree import EmptyRuleGroupError, MalformedRuleError

logger = logging.getLogger(__name__)
console = Console()


def handle_cli_errors(func: Callable) -> Callable:
    """
    Decorator to turn command errors into messages and exit codes.

    Centralizes handling for:
    - FileNotFoundError: library or shelf file doesn't exist
    - PermissionError: no access to files
    - MalformedRuleError / EmptyRuleGroupError: bad rule trees
    - ValueError: invalid data or arguments
    - General exceptions: unexpected errors
    """
    @functools.wraps(func)
    def wrapper(*args, **kwargs) -> Any:
        try:
            return func(*args, **kwargs)
        except FileNotFoundError as e:
            console.print(f"[bold red]Error:[/bold red] File not found: {e}")
            raise typer.Exit(code=1)
        except PermissionError as e:
            console.print(f"[bold red]Error:[/bold red] Permission denied: {e}")
            raise typer.Exit(code=1)
        except MalformedRuleError as e:
            console.print(f"[bold red]Error:[/bold red] Broken rule tree: {e}")
            raise typer.Exit(code=2)
        except EmptyRuleGroupError as e:
            console.print(f"[bold red]Error:[/bold red] {e}")
            raise typer.Exit(code=2)
        except ValueError as e:
            console.print(f"[bold red]Error:[/bold red] Invalid input: {e}")
            raise typer.Exit(code=1)
        except KeyboardInterrupt:
            console.print("\n[yellow]Operation cancelled by user[/yellow]")
            raise typer.Exit(code=130)
        except typer.Exit:
            raise
        except Exception as e:
            logger.error(f"Unexpected error in {func.__name__}: {e}", exc_info=True)
            console.print(f"[bold red]Unexpected error:[/bold red] {e}")
            raise typer.Exit(code=1)

    return wrapper
