"""
skillguard — skill activation and guardrail enforcement hooks for AI coding assistants.
"""

__version__ = "0.1.0"
