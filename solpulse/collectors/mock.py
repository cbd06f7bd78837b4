"""Mock collectors for the sources that only run against synthetic data.

On-chain RPC and Realms governance feeds are consumed purely as async signal
producers; these stand-ins give mock mode and local demos a realistic mix of
sources, projects and tokens.
"""

from __future__ import annotations

import random

from solpulse.collectors.base import BaseCollector
from solpulse.models import Signal

_PROGRAMS = [
    ("Jupiter Aggregator v6", "jup-ag", "JUP"),
    ("Raydium CLMM", "raydium-io", "RAY"),
    ("Orca Whirlpools", "orca-so", "ORCA"),
    ("Drift v2", "drift-labs", None),
    ("Marinade", "marinade-finance", "MNDE"),
    ("Metaplex Bubblegum", "metaplex-foundation", None),
]


class MockOnChainCollector(BaseCollector):
    @property
    def source(self) -> str:
        return "onchain"

    async def collect(self) -> list[Signal]:
        tps = random.randint(2500, 5200)
        signals = [self._make_signal(
            signal_id="tps",
            category="Network Activity",
            metric="tps",
            value=tps,
            description=f"Solana network processing {tps:,} TPS",
            strength=min(100, tps / 60),
        )]
        for program, project, token in random.sample(_PROGRAMS, 4):
            txs = random.randint(800, 9000)
            signals.append(self._make_signal(
                signal_id=f"program-{project}",
                category="Program Activity",
                metric="recent_txs",
                value=txs,
                delta=round(random.uniform(-20, 60), 1),
                description=f"{program} handled {txs:,} transactions in the last sample window",
                strength=20 + txs / 150,
                related_projects=[project],
                related_tokens=[token] if token else [],
            ))
        return signals


_PROPOSALS = [
    ("Jupiter DAO", "jup-ag", "JUP", "Allocate 50M JUP to active staking rewards"),
    ("Marinade DAO", "marinade-finance", "MNDE", "Adjust validator delegation strategy"),
    ("Pyth DAO", "pyth-network", "PYTH", "Expand price feed publisher set"),
]


class MockGovernanceCollector(BaseCollector):
    @property
    def source(self) -> str:
        return "governance"

    async def collect(self) -> list[Signal]:
        signals: list[Signal] = []
        for dao, project, token, title in random.sample(_PROPOSALS, 2):
            votes = random.randint(200, 12000)
            signals.append(self._make_signal(
                signal_id=f"proposal-{project}",
                category="Governance",
                metric="active_votes",
                value=votes,
                description=f"{dao} proposal '{title}' has {votes:,} votes",
                strength=25 + votes / 300,
                related_projects=[project],
                related_tokens=[token],
            ))
        return signals
