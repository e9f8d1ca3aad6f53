#!/usr/bin/env python3
"""
Main entry point for Crypto Bulk Withdrawal.

Run directly from a checkout; the installed package also provides the
``bulk-withdraw`` console script.
"""
import sys

from bulk_withdraw.main_application import main

if __name__ == '__main__':
    sys.exit(main())
