"""
Tests for the run_dex command line entry point.
"""

import pytest
import yaml

import run_dex
from conftest import POOL_A, POOL_B, USDC, WGLMR, FakeChainClient, usdc_wglmr_reserves
from dex.scheduler import build_scheduler


@pytest.fixture
def config_file(tmp_path):
    path = tmp_path / "bot.yaml"
    path.write_text(
        yaml.safe_dump(
            {
                "rpc_url": "http://localhost:8545",
                "tokens": {
                    "USDC": {"address": USDC.address, "decimals": 6},
                    "WGLMR": {"address": WGLMR.address, "decimals": 18},
                },
                "discover_pools": False,
                "pools": [
                    {"address": POOL_A, "dex": "StellaSwap"},
                    {"address": POOL_B, "dex": "BeamSwap"},
                ],
            }
        )
    )
    return path


def test_parse_args_defaults():
    args = run_dex.parse_args([])
    assert args.config == "configs/moonbeam.yaml"
    assert args.once is False
    assert args.live is False
    assert args.interval is None
    assert args.log_level == "INFO"


def test_parse_args_overrides():
    args = run_dex.parse_args(["--once", "--live", "--interval", "5", "--min-profit", "1.5"])
    assert args.once and args.live
    assert args.interval == 5
    assert args.min_profit == 1.5


@pytest.mark.asyncio
async def test_missing_config_exits_nonzero(tmp_path):
    args = run_dex.parse_args(["--config", str(tmp_path / "missing.yaml")])
    assert await run_dex.run(args) == 1


@pytest.mark.asyncio
async def test_live_without_key_exits_nonzero(config_file, monkeypatch):
    monkeypatch.delenv("ARBITES_PRIVATE_KEY", raising=False)
    args = run_dex.parse_args(["--config", str(config_file), "--live"])
    assert await run_dex.run(args) == 1


@pytest.mark.asyncio
async def test_single_cycle_dry_run(config_file, monkeypatch):
    chain = FakeChainClient(
        reserves={POOL_A: usdc_wglmr_reserves(0.050), POOL_B: usdc_wglmr_reserves(0.045)}
    )
    built = []

    def build_with_fake_chain(config, metrics=None):
        scheduler = build_scheduler(config, chain_client=chain, metrics=metrics)
        built.append(scheduler)
        return scheduler

    monkeypatch.setattr(run_dex, "build_scheduler", build_with_fake_chain)
    monkeypatch.setattr(run_dex, "install_signal_handlers", lambda scheduler: None)

    args = run_dex.parse_args(["--config", str(config_file), "--once", "--interval", "3"])

    assert await run_dex.run(args) == 0
    assert built[0].cycle_count == 1
    assert built[0].interval == 3
    assert chain.closed
    assert chain.sent == []


@pytest.mark.asyncio
async def test_unreachable_chain_exits_nonzero(config_file, monkeypatch):
    chain = FakeChainClient()
    chain.block_number = OSError("connection refused")
    monkeypatch.setattr(
        run_dex,
        "build_scheduler",
        lambda config, metrics=None: build_scheduler(config, chain_client=chain, metrics=metrics),
    )
    monkeypatch.setattr(run_dex, "install_signal_handlers", lambda scheduler: None)

    args = run_dex.parse_args(["--config", str(config_file), "--once"])

    assert await run_dex.run(args) == 1
    assert chain.closed
