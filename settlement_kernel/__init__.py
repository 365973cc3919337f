"""
Settlement Kernel - store models, typed errors and logging for the
host platform-fee settlement job.

- Integer minor-unit amounts, Decimal rates
- Explicit settlement state per transaction
- Structured JSON logging with run/host context
- Injectable clock and settlement periods
"""

__version__ = "0.1.0"
