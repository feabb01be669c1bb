from . import case_study

__all__ = ["case_study"]
