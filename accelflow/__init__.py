"""
AccelFlow - Workflow execution engine for the AI Architect Accelerator.

Runs user-authored workflow graphs of LLM prompts, HTTP calls, conditions
and transforms, with per-node results and token/cost accounting.
"""

__version__ = "1.0.0"
