"""Report dispatch: aggregation, breadcrumbs, publish/subscribe."""

from .aggregator import DispatchAggregator, DispatchEntry, DispatchLevel
from .breadcrumbs import BreadcrumbTrail
from .channel import PublishedReport, ReportChannel, Subscription
from .report import build_report, report_to_json

__all__ = [
    "DispatchAggregator",
    "DispatchEntry",
    "DispatchLevel",
    "BreadcrumbTrail",
    "PublishedReport",
    "ReportChannel",
    "Subscription",
    "build_report",
    "report_to_json",
]
