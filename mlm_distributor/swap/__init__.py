"""Auxiliary token swaps into the reward token, gated by a price ceiling."""
