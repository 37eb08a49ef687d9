"""ElderCare API: user records and environment asset ingestion."""

__version__ = "0.1.0"
