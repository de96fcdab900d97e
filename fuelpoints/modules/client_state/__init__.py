from fuelpoints.modules.client_state.state import (
    LocalStateSnapshot,
    OptimisticClientState,
    OptimisticMutation,
)

__all__ = ["LocalStateSnapshot", "OptimisticClientState", "OptimisticMutation"]
