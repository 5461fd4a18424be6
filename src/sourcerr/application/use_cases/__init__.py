from .playback_failover import PlaybackFailoverSelector
from .request_coordinator import RequestCoordinator

__all__ = ["PlaybackFailoverSelector", "RequestCoordinator"]
