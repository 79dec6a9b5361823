"""fnruntimes — runtime delegates for function source directories."""

__version__ = "0.1.0"
