"""Schema package exports."""

from .sql import PlannerPlacement, ProductInfo, ProductSymbol, Project, ProjectArea, ProjectAreaRevision

__all__ = ["PlannerPlacement", "ProductInfo", "ProductSymbol", "Project", "ProjectArea", "ProjectAreaRevision"]
