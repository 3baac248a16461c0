"""
apiavailability - Available condition controller for aggregated APIs.

Continuously decides whether each registered API group/version (an
APIService) is reachable through its backing service and publishes the
verdict as the ``Available`` status condition.

Key pieces:
- DependencyIndex maps a backing service to the APIServices using it
- RateLimitingQueue deduplicates names and retries failures with backoff
- AvailabilityEvaluator runs the layered checks and the discovery probe
- StatusWriter persists the condition only when it changed
- AvailabilityMetrics exports the per-APIService unavailability gauge

Example usage:
    from apiavailability import AvailableConditionController
    from apiavailability.storage import InMemoryStatusStore

    controller = AvailableConditionController(store=InMemoryStatusStore())
    controller.start()
"""

__version__ = "0.1.0"
__all__ = [
    "AvailableConditionController",
    "AvailabilityEvaluator",
    "AvailabilityMetrics",
    "DependencyIndex",
    "DiscoveryProbe",
    "RateLimitingQueue",
    "StatusWriter",
    "__version__",
]


# Lazy imports to avoid loading heavy dependencies at import time
def __getattr__(name: str):
    if name == "AvailableConditionController":
        from apiavailability.controller import AvailableConditionController
        return AvailableConditionController
    if name == "AvailabilityEvaluator":
        from apiavailability.evaluator import AvailabilityEvaluator
        return AvailabilityEvaluator
    if name == "AvailabilityMetrics":
        from apiavailability.metrics import AvailabilityMetrics
        return AvailabilityMetrics
    if name == "DependencyIndex":
        from apiavailability.index import DependencyIndex
        return DependencyIndex
    if name == "DiscoveryProbe":
        from apiavailability.probe import DiscoveryProbe
        return DiscoveryProbe
    if name == "RateLimitingQueue":
        from apiavailability.queue import RateLimitingQueue
        return RateLimitingQueue
    if name == "StatusWriter":
        from apiavailability.status import StatusWriter
        return StatusWriter
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
