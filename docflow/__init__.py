"""
DocFlow - Main Package

DocFlow orchestrates the agents of a document-processing backend. A user
instruction is turned into a dependency graph of agent steps (ingestion,
analysis, knowledge extraction, pedagogy, synthesis) that is scheduled in
concurrent waves against a task execution gateway.
"""

__version__ = "0.1.0"
__author__ = "DocFlow Contributors"
__license__ = "Apache-2.0"
