"""
mlm_distributor.reporting — Plain-text rendering of cycle and swap results.

It does NOT send notifications; the CLI echoes the strings and any outer
notifier can reuse them.

Modules:
  formatters — distribution summary, swap report, price alert, report list.
"""
