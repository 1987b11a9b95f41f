"""formbridge - reconcile Typeform webhook submissions into amoCRM leads and contacts."""

__version__ = "0.1.0"
