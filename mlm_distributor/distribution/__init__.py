"""Recommendation graph, payout calculation and the distribution cycle workflow."""
