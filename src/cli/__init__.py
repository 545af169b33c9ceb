# =============================================================================
# src/cli/__init__.py - CLI Module Overview
# =============================================================================
#
# Command-line tools for operating the knowledge core outside of any
# embedding application:
#
#   knowledge.py - enqueue documents, run the queue workers, ingest
#                  synchronously, inspect chunk status and run retrieval
#                  queries against a workspace.
#
# Architecture Notes:
#   - argparse for argument parsing (not Click/Typer).
#   - The component graph is built through src.main.build_components(), so
#     the CLI shares providers, queues and databases with every other
#     entry point.
# =============================================================================

"""CLI tools for the workspace knowledge core.

- ``python -m src.cli.knowledge`` - ingestion pipeline and retrieval
  commands (also reachable as ``python -m src.cli``).
"""
