"""
vendor-intake: AI-assisted vendor product evaluation.

Scores vendor product submissions with a language model, falls back to a
deterministic verdict when the model reply is unusable, and admits approved
products to the catalog store.
"""

__version__ = "0.1.0"
