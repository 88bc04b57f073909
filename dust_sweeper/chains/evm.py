from __future__ import annotations

from loguru import logger

from dust_sweeper.errors import NetworkMismatch, RouterNotDeployed


def verify_chain(wallet, accepted_chain_ids: set[int]) -> int:
    """Return the connected chain id, refusing anything outside the accepted set."""
    try:
        chain_id = wallet.get_chain_id()
    except Exception as e:
        logger.warning("Chain id lookup failed: {}", e)
        raise NetworkMismatch("Unable to verify the connected network") from e
    if chain_id not in accepted_chain_ids:
        raise NetworkMismatch(
            f"Connected to chain {chain_id}; switch to one of {sorted(accepted_chain_ids)}"
        )
    return chain_id


def verify_router(wallet, chain_id: int, router_address: str | None) -> None:
    if not router_address:
        raise RouterNotDeployed(f"No SplitRouter configured for chain {chain_id}")
    try:
        code = wallet.get_code(router_address)
    except Exception as e:
        logger.warning("get_code failed for router {}: {}", router_address, e)
        raise RouterNotDeployed("Unable to verify the SplitRouter deployment") from e
    if not code or code in (b"", b"\x00"):
        raise RouterNotDeployed(f"SplitRouter contract not deployed at {router_address}")
    logger.info("Network verified: chain {} router {}", chain_id, router_address)


def verify_network(wallet, accepted_chain_ids: set[int], router_address: str | None) -> int:
    """Check the connected chain and the router deployment before touching any token.

    Returns the connected chain id.
    """
    chain_id = verify_chain(wallet, accepted_chain_ids)
    verify_router(wallet, chain_id, router_address)
    return chain_id
