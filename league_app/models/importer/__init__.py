from .schema import ImportKind, ImportRun, ImportRunStatus

__all__ = ["ImportKind", "ImportRun", "ImportRunStatus"]
