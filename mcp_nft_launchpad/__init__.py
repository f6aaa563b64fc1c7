"""
NFT Launchpad Package Initialization

This package provides the pricing and sequencing engine of an NFT launch platform, together with
a Model Context Protocol (MCP) server that exposes it as tools. The engine prices NFT mints against
a constant-product bonding curve, prices post-reveal exchanges of NFTs for other tokens through
bridge liquidity pools, and hands out collision-free token identifiers.

The package includes:
- Overflow-checked fixed-point integer math
- Bonding curve quotes, commits and reveal tracking
- Bridge liquidity pools, swaps and liquidity positions
- Token ID sequencing with lock/unlock controls
- Trade guards (rate and size limits) and custom error handling
- JSON state persistence with optimistic versioning
- MCP server implementation for easy integration
"""
