# =============================================================================
# src/cli/__main__.py - Package Entry Point
# =============================================================================
#
# Enables running the CLI package itself as a module:
#     python -m src.cli retrieve --workspace acme-support --query "..."
#
# Delegates to the knowledge CLI (knowledge.py).
# =============================================================================

"""Allow ``python -m src.cli`` execution."""

from src.cli.knowledge import main

main()
