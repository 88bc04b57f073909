from unittest.mock import MagicMock

import pytest

from conftest import OWNER, ROUTER


def make_wallet(**kwargs):
    from dust_sweeper.execution.evm_wallet import EvmWallet

    w3 = MagicMock()
    w3.eth.get_transaction_count.return_value = 7
    w3.eth.estimate_gas.return_value = 60_000
    w3.eth.gas_price = 1_000_000_000
    w3.to_wei.side_effect = lambda v, unit: int(v * 10**9)
    w3.eth.account.sign_transaction.return_value = MagicMock(raw_transaction=b"\x02signed")
    w3.eth.send_raw_transaction.return_value = bytes.fromhex("ab" * 32)
    defaults = dict(w3=w3, chain_id=8453, private_key="0x" + "11" * 32, address=OWNER)
    defaults.update(kwargs)
    return EvmWallet(**defaults), w3


def test_send_tx_fills_nonce_gas_and_fees():
    wallet, w3 = make_wallet()

    tx_hash = wallet.send_tx({"to": ROUTER, "data": "0x"})

    assert tx_hash == "0x" + "ab" * 32
    w3.eth.get_transaction_count.assert_called_once_with(OWNER, "pending")
    signed_tx = w3.eth.account.sign_transaction.call_args[0][0]
    assert signed_tx["nonce"] == 7
    assert signed_tx["gas"] == 60_000
    assert signed_tx["chainId"] == 8453
    assert signed_tx["from"] == OWNER
    assert signed_tx["maxFeePerGas"] == 2_000_000_000
    w3.eth.send_raw_transaction.assert_called_once_with(b"\x02signed")


def test_send_tx_respects_configured_fees_and_gas():
    wallet, w3 = make_wallet(max_fee_gwei=3, max_priority_fee_gwei=1)

    wallet.send_tx({"to": ROUTER, "gas": 300_000})

    signed_tx = w3.eth.account.sign_transaction.call_args[0][0]
    assert signed_tx["gas"] == 300_000
    assert signed_tx["maxFeePerGas"] == 3 * 10**9
    assert signed_tx["maxPriorityFeePerGas"] == 10**9
    w3.eth.estimate_gas.assert_not_called()


def test_send_tx_requires_key():
    wallet, _ = make_wallet(private_key=None)
    with pytest.raises(RuntimeError):
        wallet.send_tx({"to": ROUTER})


def test_create_derives_address_from_key():
    from eth_account import Account

    from dust_sweeper.execution.evm_wallet import EvmWallet

    key = "0x" + "22" * 32
    wallet = EvmWallet.create(
        rpc_url="http://127.0.0.1:8545", chain_id=84532, private_key=key, explicit_address=None
    )
    assert wallet.address == Account.from_key(key).address
    assert wallet.chain_id == 84532


def test_contract_helpers_load_abis():
    from dust_sweeper.execution.evm_wallet import ERC20_ABI, SPLIT_ROUTER_ABI

    names = {item.get("name") for item in SPLIT_ROUTER_ABI}
    assert {"getSwapQuote", "getBulkSwapQuote", "executeBulkSwap"} <= names
    assert {"allowance", "approve"} <= {item.get("name") for item in ERC20_ABI}


def test_verify_network_checks_chain_and_code(chain):
    from dust_sweeper.chains.evm import verify_network
    from dust_sweeper.errors import NetworkMismatch, RouterNotDeployed

    assert verify_network(chain, {8453, 84532}, ROUTER) == 8453

    chain.chain_id = 10
    with pytest.raises(NetworkMismatch):
        verify_network(chain, {8453, 84532}, ROUTER)

    chain.chain_id = 8453
    with pytest.raises(RouterNotDeployed):
        verify_network(chain, {8453, 84532}, None)
    with pytest.raises(RouterNotDeployed):
        verify_network(chain, {8453, 84532}, "0x" + "00" * 19 + "02")


def test_verify_network_lookup_failure():
    from dust_sweeper.chains.evm import verify_network
    from dust_sweeper.errors import NetworkMismatch

    wallet = MagicMock()
    wallet.get_chain_id.side_effect = ConnectionError("down")
    with pytest.raises(NetworkMismatch):
        verify_network(wallet, {8453}, ROUTER)
