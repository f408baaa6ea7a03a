"""
Core modules for Reseller Billing.

This package contains the usage file parser, the pricing calculator,
the invoice assembler and upload handling.
"""
