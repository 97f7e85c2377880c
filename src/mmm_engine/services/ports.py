"""
Storage ports used by the engine.

The numerical routines never touch storage; the engine talks to these
protocols so any backing store (SQL, in-memory, remote) can be injected.
"""
from datetime import date
from typing import Dict, List, Optional, Protocol

from mmm_engine.data.aggregator import ChannelObservation
from mmm_engine.model.fitting import ChannelFit


class ObservationStore(Protocol):
    async def get(self, owner_id: str, channel: str, window_days: int,
                  as_of: Optional[date] = None) -> List[ChannelObservation]:
        ...

    async def current_spend(self, owner_id: str, window_days: int,
                            as_of: Optional[date] = None) -> Dict[str, float]:
        ...

    async def list_owners(self) -> List[str]:
        ...


class ParamsStore(Protocol):
    async def upsert(self, owner_id: str, fit: ChannelFit) -> None:
        ...

    async def get(self, owner_id: str, channel: str) -> Optional[ChannelFit]:
        ...

    async def list_for_owner(self, owner_id: str) -> List[ChannelFit]:
        ...
