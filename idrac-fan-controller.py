#!/usr/bin/env python3
"""Compatibility wrapper for running from a source checkout.

Delegates to the package entrypoint `idrac_fan_controller`.
"""

from idrac_fan_controller.__main__ import main

if __name__ == "__main__":
    main()
