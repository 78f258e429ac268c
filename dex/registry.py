"""
Static registry of DEX deployments.

Each component receives a ``DexRegistry`` instance at construction; there is
no process-wide registry.
"""

from typing import Dict, Iterable, List, Optional

from .pool_address import DEX_INIT_CODE_HASHES
from .types import DexInfo

MOONBEAM_CHAIN_ID = 1284

# Common DEX addresses on Moonbeam
MOONBEAM_DEXES: Dict[str, DexInfo] = {
    "stellaswap": DexInfo(
        name="StellaSwap",
        kind="uniswap-v2",
        router_address="0xd0A01ec574D1fC6652eDF79cb2F880fd47D34Ab1",
        factory_address="0x68A384D826D3678f78BB9FB1533c7E9577dACc0E",
        chain_id=MOONBEAM_CHAIN_ID,
        fee_bps=30,
        init_code_hash=DEX_INIT_CODE_HASHES["stellaswap"],
    ),
    "beamswap": DexInfo(
        name="BeamSwap",
        kind="uniswap-v2",
        router_address="0x96b244391D98B62D19aE89b1A4dCcf0fc56970C7",
        factory_address="0x985BcA32293A7A496300a48081947321177a86FD",
        chain_id=MOONBEAM_CHAIN_ID,
        fee_bps=30,
        init_code_hash=DEX_INIT_CODE_HASHES["beamswap"],
    ),
    "solarflare": DexInfo(
        name="Solarflare",
        kind="uniswap-v2",
        router_address="0x53b17e88bE5Cdf0FFF31BbA7050Cb1699A3D1C14",
        factory_address="0x19B85ae92947E0725d5265fFB3b8109B0B71186C",
        chain_id=MOONBEAM_CHAIN_ID,
        fee_bps=30,
        init_code_hash=DEX_INIT_CODE_HASHES["solarflare"],
    ),
}


class DexRegistry:
    """Name -> DexInfo lookup. Names are matched exactly, as configured."""

    def __init__(self, dexes: Optional[Iterable[DexInfo]] = None):
        if dexes is None:
            dexes = MOONBEAM_DEXES.values()
        self._dexes: Dict[str, DexInfo] = {dex.name: dex for dex in dexes}

    def get_dex(self, name: str) -> Optional[DexInfo]:
        return self._dexes.get(name)

    def get_all_dexes(self) -> List[DexInfo]:
        return list(self._dexes.values())

    def add_dex(self, dex: DexInfo) -> None:
        self._dexes[dex.name] = dex

    def remove_dex(self, name: str) -> None:
        self._dexes.pop(name, None)

    def __len__(self) -> int:
        return len(self._dexes)

    def __contains__(self, name: str) -> bool:
        return name in self._dexes
