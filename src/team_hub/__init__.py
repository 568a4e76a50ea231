"""Team hub: a shared team roster and dashboard kept in sync across clients."""

__version__ = "0.1.0"
