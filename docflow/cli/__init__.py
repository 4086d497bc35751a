"""
DocFlow - Command Line Interface

This package provides the CLI for inspecting and running document workflows.

Usage:
    docflow --help                               # Show help
    docflow classify "Summarize this document"   # Show the chosen template
    docflow plan "Make flashcards" -d doc-1      # Show the plan and its waves
    docflow run "Process this document"          # Run against simulated agents
"""

from docflow.cli.main import app

__all__ = ["app"]
