"""flowx: cold sequences, latest-value holders and broadcast channels for asyncio."""

from importlib.metadata import version as _version

__version__ = _version("flowx")

from flowx.subscription import Subscription, SubscriptionState
from flowx.buffer import OverflowPolicy, OverflowBuffer
from flowx.sequence import ColdSequence, cold, sequence_of
from flowx.state import LatestValueHolder, ReadOnlyValue, set_scheduler
from flowx.channel import BroadcastChannel, ChannelClosedError
from flowx.scope import Scope
from flowx.lifecycle import Lifecycle, collect_lifecycle, collect_latest_lifecycle
from flowx.offload import offload
# textual and demo NOT auto-imported: opt-in only

__all__ = [
    "Subscription",
    "SubscriptionState",
    "OverflowPolicy",
    "OverflowBuffer",
    "ColdSequence",
    "cold",
    "sequence_of",
    "LatestValueHolder",
    "ReadOnlyValue",
    "set_scheduler",
    "BroadcastChannel",
    "ChannelClosedError",
    "Scope",
    "Lifecycle",
    "collect_lifecycle",
    "collect_latest_lifecycle",
    "offload",
]
