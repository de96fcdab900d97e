from fuelpoints.modules.lifecycle.service import CANCELLABLE_KINDS, LifecycleService

__all__ = ["CANCELLABLE_KINDS", "LifecycleService"]
