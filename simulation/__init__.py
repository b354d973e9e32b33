"""
simulation/ - Counterfactual swap simulation.

Modules:
- abi: selector registry and calldata encoding
- state_diff: immutable state overrides and their merge
- funding: ETH funding, approve, ERC-20 balance injection
- swap: buy and sell legs through the router

Submodules are imported explicitly; chains.trace_call depends on abi and
state_diff, so nothing is re-exported here.
"""
