"""
CREATE2 derivation of Uniswap V2 pair addresses.

A pair's address is fully determined by its factory, the sorted token
addresses and the factory's pair init code hash, so pools can be located
without any RPC call.
"""

from typing import Dict, Optional

from eth_utils import to_bytes
from web3 import Web3

from .types import Token

# Uniswap V2 init code hash (shared by most V2 forks)
UNISWAP_V2_INIT_CODE_HASH = (
    "0x96e8ac4277198ff8b6f785478aa9a39f403cb768dd02cbee326c3e7da348845f"
)

# Pair init code hashes of the Moonbeam DEX factories
DEX_INIT_CODE_HASHES: Dict[str, str] = {
    "stellaswap": "0x48a6ca3d52d0d0a6c53a83cc3c8688dd46ea4cb786b169ee959b95ad30f61643",
    "beamswap": "0x720ae8db0e46acdccab06fed98e5a80b53bb0eed66e34b2aa5a7ad0eff06ca77",
    "solarflare": "0xf187ed688403aa4f7acfada758d8d53698753b998a3071b06f1b777f4330eaf3",
}


def compute_pool_address(
    factory_address: str,
    token_a: Token,
    token_b: Token,
    init_code_hash: Optional[str] = None,
) -> str:
    """
    Compute the pair address a V2 factory deploys for two tokens.

    Formula:
        salt = keccak256(token0 ++ token1)            (tokens sorted by address)
        pair = keccak256(0xff ++ factory ++ salt ++ init_code_hash)[12:]

    Args:
        factory_address: Pair factory contract
        token_a: One token of the pair (any order)
        token_b: The other token
        init_code_hash: Factory init code hash (default: Uniswap V2)

    Returns:
        Checksummed pair address

    Raises:
        ValueError: If both tokens are the same
    """
    if token_a.address == token_b.address:
        raise ValueError(f"Identical pair tokens: {token_a.address}")

    token0, token1 = sorted((token_a.address, token_b.address))
    salt = Web3.keccak(to_bytes(hexstr=token0) + to_bytes(hexstr=token1))

    code_hash = to_bytes(hexstr=init_code_hash or UNISWAP_V2_INIT_CODE_HASH)
    digest = Web3.keccak(
        b"\xff" + to_bytes(hexstr=factory_address) + salt + code_hash
    )
    return Web3.to_checksum_address(digest[12:])
