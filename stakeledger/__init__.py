# MIT License
# Copyright (c) 2025 Hashborn

"""
StakeLedger: off-chain reimplementation of an ERC20-style token and a
time-gated token staking contract, with an execution host, node RPC and CLI.
"""

__version__ = "0.1.0"
