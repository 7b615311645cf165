"""
Core modules for AI Model Selector.

This package contains the backend registry, scenario mapping store,
selection strategies, and the orchestrating model selector.
"""
