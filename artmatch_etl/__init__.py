"""ETL jobs for populating the ARTMATCH artwork corpus."""

__all__ = ["__version__"]

__version__ = "0.1.0"
