"""Billing: signature, attachment codec, product catalog, order lifecycle."""
